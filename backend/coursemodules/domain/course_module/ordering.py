"""Domain service — module ordering, batch workflow events and per-user progression."""
from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from coursemodules.domain.common.result import NO_MODULES_FOUND, Result
from coursemodules.domain.course_module.models import (
    BatchEvent,
    CourseModule,
    ItemStatus,
    ModuleItem,
    ModuleProgression,
    ProgressionState,
    WorkflowState,
)
from coursemodules.domain.course_module.rules import resolve_position, valid_prerequisites


class ItemProgressSource(ABC):
    """Item-level completion evaluator consulted by ``evaluate_for``."""

    @abstractmethod
    def items_for(self, module_id: int) -> List[ModuleItem]:
        """Return the module's items ordered by position."""
        ...

    @abstractmethod
    def statuses_for(self, module_id: int, user_id: str) -> Dict[int, ItemStatus]:
        """Return the user's status per item id; items never touched may be absent."""
        ...


def _sort_key(module: CourseModule) -> Tuple[int, int]:
    return (module.position, module.id)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ModuleOrderingService:
    """
    Pure domain operations over one course's modules — no I/O.
    Ordering methods mutate the passed modules in place and report what changed;
    the application layer persists the result.
    """

    def __init__(self, progress: Optional[ItemProgressSource] = None):
        self._progress = progress

    # ------------------------------------------------------------------
    # ORDERING
    # ------------------------------------------------------------------
    def insert_at_position(
        self,
        module: CourseModule,
        target_position: object,
        modules: Iterable[CourseModule],
    ) -> Result[Dict[int, int]]:
        """
        Move ``module`` to ``target_position`` (clamped into [1, count]) and
        renumber the course 1..N. Returns {module_id: new_position} for every
        module whose position changed.
        """
        resolved = resolve_position(target_position)
        if not resolved.is_success:
            return Result.propagate(resolved)

        others = sorted(
            (m for m in modules if not m.is_deleted and m.id != module.id),
            key=_sort_key,
        )
        slot = min(max(resolved.value, 1), len(others) + 1)
        others.insert(slot - 1, module)
        return Result.ok(self._renumber(others))

    def compact_positions(self, modules: Iterable[CourseModule]) -> Dict[int, int]:
        """Close the gaps left by deleted modules, keeping the current order."""
        remaining = sorted((m for m in modules if not m.is_deleted), key=_sort_key)
        return self._renumber(remaining)

    @staticmethod
    def _renumber(ordered: Sequence[CourseModule]) -> Dict[int, int]:
        changed: Dict[int, int] = {}
        for position, module in enumerate(ordered, start=1):
            if module.position != position:
                module.position = position
                changed[module.id] = position
        return changed

    # ------------------------------------------------------------------
    # BATCH WORKFLOW EVENTS
    # ------------------------------------------------------------------
    def apply_event(self, modules: Sequence[CourseModule], event: BatchEvent) -> Result[List[int]]:
        """Apply ``event`` to every module; no-op transitions still count as processed."""
        if not modules:
            return Result.fail("no modules found", code=NO_MODULES_FOUND)

        completed: List[int] = []
        for module in modules:
            if event is BatchEvent.PUBLISH:
                if module.workflow_state is not WorkflowState.ACTIVE:
                    module.workflow_state = WorkflowState.ACTIVE
            elif event is BatchEvent.UNPUBLISH:
                if module.workflow_state is not WorkflowState.UNPUBLISHED:
                    module.workflow_state = WorkflowState.UNPUBLISHED
            elif event is BatchEvent.DELETE:
                module.workflow_state = WorkflowState.DELETED
            completed.append(module.id)
        return Result.ok(completed)

    # ------------------------------------------------------------------
    # PROGRESSION
    # ------------------------------------------------------------------
    def evaluate_for(
        self,
        module: CourseModule,
        user_id: str,
        modules: Iterable[CourseModule],
        now: Optional[datetime] = None,
    ) -> ModuleProgression:
        """Derive the user's progression on ``module``. Never fails."""
        now = _as_aware(now or datetime.now(timezone.utc))
        course_modules = [m for m in modules if not m.is_deleted]
        memo: Dict[int, ModuleProgression] = {}
        return self._evaluate(module, user_id, course_modules, now, memo)

    def _evaluate(
        self,
        module: CourseModule,
        user_id: str,
        modules: List[CourseModule],
        now: datetime,
        memo: Dict[int, ModuleProgression],
    ) -> ModuleProgression:
        if module.id in memo:
            return memo[module.id]

        if module.unlock_at is not None and _as_aware(module.unlock_at) > now:
            progression = ModuleProgression(module.id, user_id, ProgressionState.LOCKED)
            memo[module.id] = progression
            return progression

        # Prerequisites sit strictly lower in the ordering, so the recursion terminates.
        for prereq in valid_prerequisites(module, modules):
            prereq_progression = self._evaluate(prereq, user_id, modules, now, memo)
            if not self._satisfies(prereq, prereq_progression):
                progression = ModuleProgression(module.id, user_id, ProgressionState.LOCKED)
                memo[module.id] = progression
                return progression

        progression = self._evaluate_requirements(module, user_id)
        memo[module.id] = progression
        return progression

    def _requirements(self, module: CourseModule) -> List[ModuleItem]:
        if self._progress is None:
            return []
        return [item for item in self._progress.items_for(module.id) if item.required]

    def _satisfies(self, prereq: CourseModule, progression: ModuleProgression) -> bool:
        """A reachable prerequisite with nothing required of it counts as done."""
        if progression.state is ProgressionState.COMPLETED:
            return True
        if progression.state is ProgressionState.LOCKED:
            return False
        return not self._requirements(prereq)

    def _evaluate_requirements(self, module: CourseModule, user_id: str) -> ModuleProgression:
        if self._progress is None:
            return ModuleProgression(module.id, user_id, ProgressionState.UNLOCKED)

        requirements = self._requirements(module)
        statuses = self._progress.statuses_for(module.id, user_id)

        satisfied: List[datetime] = []
        for item in requirements:
            status = statuses.get(item.id)
            if status is None or not status.completed:
                break
            satisfied.append(_as_aware(status.completed_at))

        if requirements and len(satisfied) == len(requirements):
            return ModuleProgression(
                module.id, user_id, ProgressionState.COMPLETED, completed_at=max(satisfied)
            )

        if any(s.started or s.completed for s in statuses.values()):
            return ModuleProgression(module.id, user_id, ProgressionState.STARTED)
        return ModuleProgression(module.id, user_id, ProgressionState.UNLOCKED)
