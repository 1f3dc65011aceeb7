"""Application service — orchestrates authorize → validate → domain op → persist for course modules."""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from coursemodules.application.authorization import AuthorizationService, Permission
from coursemodules.domain.common.result import (
    FORBIDDEN,
    LOCKED,
    MISSING_PARAMETER,
    NOT_FOUND,
    Result,
)
from coursemodules.domain.course_module.models import (
    BatchEvent,
    Course,
    CourseModule,
    ModuleItem,
    ModuleProgression,
    ModuleUpdate,
    ProgressionState,
    WorkflowState,
)
from coursemodules.domain.course_module.ordering import ModuleOrderingService
from coursemodules.domain.course_module.rules import (
    map_module_ids,
    normalize_prerequisite_ids,
    parse_event,
    resolve_position,
    validate_module_name,
)
from coursemodules.persistence.db import course_lock
from coursemodules.persistence.interfaces.course_repository import CourseRepository
from coursemodules.persistence.interfaces.item_repository import ItemRepository
from coursemodules.persistence.interfaces.module_repository import ModuleRepository, RepositoryError

logger = logging.getLogger(__name__)

ModuleEntry = Tuple[CourseModule, Optional[ModuleProgression]]


@dataclass
class ModulePage:
    entries: List[ModuleEntry]
    total: int
    page: int
    per_page: int


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ModuleAppService:
    def __init__(
        self,
        modules: ModuleRepository,
        courses: CourseRepository,
        items: ItemRepository,
        authorization: AuthorizationService,
    ):
        self._modules = modules
        self._courses = courses
        self._items = items
        self._auth = authorization
        self._domain = ModuleOrderingService(progress=items)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _authorize(self, user: Optional[dict], course_id: int, permission: Permission) -> Result[Course]:
        course = self._courses.get_by_id(course_id)
        if not course:
            return Result.fail(f"Course '{course_id}' not found.", code=NOT_FOUND)
        if not self._auth.grants_right(user, course_id, permission):
            logger.warning(
                "Denied %s on course %s for user %s",
                permission.value, course_id, (user or {}).get("sub"),
            )
            return Result.fail("user not authorized to perform that action", code=FORBIDDEN)
        return Result.ok(course)

    def _visible_modules(self, user: Optional[dict], course_id: int) -> List[CourseModule]:
        """Content managers see unpublished modules too; everyone else only active ones."""
        if self._auth.grants_right(user, course_id, Permission.MANAGE_CONTENT):
            return self._modules.list_for_course(course_id)
        return self._modules.list_for_course(course_id, states=[WorkflowState.ACTIVE.value])

    def _progression(
        self,
        user: Optional[dict],
        course_id: int,
        module: CourseModule,
        visible: List[CourseModule],
    ) -> Optional[ModuleProgression]:
        if not self._auth.grants_right(user, course_id, Permission.PARTICIPATE_AS_STUDENT):
            return None
        return self._domain.evaluate_for(module, user["sub"], visible)

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def list_modules(self, user: Optional[dict], course_id: int, page: int, per_page: int) -> Result[ModulePage]:
        auth = self._authorize(user, course_id, Permission.READ)
        if not auth.is_success:
            return Result.propagate(auth)

        visible = self._visible_modules(user, course_id)
        start = (page - 1) * per_page
        entries = [
            (m, self._progression(user, course_id, m, visible))
            for m in visible[start:start + per_page]
        ]
        return Result.ok(ModulePage(entries=entries, total=len(visible), page=page, per_page=per_page))

    def get_module(self, user: Optional[dict], course_id: int, module_id: int) -> Result[ModuleEntry]:
        auth = self._authorize(user, course_id, Permission.READ)
        if not auth.is_success:
            return Result.propagate(auth)

        visible = self._visible_modules(user, course_id)
        module = next((m for m in visible if m.id == module_id), None)
        if module is None:
            return Result.fail(f"Module '{module_id}' not found.", code=NOT_FOUND)
        return Result.ok((module, self._progression(user, course_id, module, visible)))

    # ------------------------------------------------------------------
    # CREATE
    # ------------------------------------------------------------------
    def create_module(self, user: Optional[dict], course_id: int, update: ModuleUpdate) -> Result[CourseModule]:
        auth = self._authorize(user, course_id, Permission.CREATE)
        if not auth.is_success:
            return Result.propagate(auth)
        course = auth.value

        name = validate_module_name(update.name)
        if not name.is_success:
            return Result.propagate(name)
        if update.position is not None:
            position = resolve_position(update.position)
            if not position.is_success:
                return Result.propagate(position)

        stamp = _now().isoformat()
        try:
            with course_lock(course_id), self._modules.transaction() as tx:
                existing = self._modules.list_for_course(course_id, tx=tx)
                module = CourseModule(
                    id=0,
                    course_id=course_id,
                    name=name.value,
                    position=len(existing) + 1,
                    workflow_state=WorkflowState.UNPUBLISHED if course.draft_mode else WorkflowState.ACTIVE,
                    unlock_at=update.unlock_at,
                    require_sequential_progress=bool(update.require_sequential_progress),
                    prerequisite_module_ids=normalize_prerequisite_ids(update.prerequisite_module_ids or []),
                    created_at=stamp,
                    updated_at=stamp,
                )
                self._modules.insert(module, tx=tx)
                if update.position is not None:
                    moved = self._domain.insert_at_position(module, update.position, existing + [module])
                    self._modules.save_positions(course_id, moved.value, tx=tx)
        except RepositoryError as e:
            logger.warning("Module create rejected in course %s: %s", course_id, e)
            return Result.fail(str(e))

        self._courses.touch(course_id)
        logger.info("Created module %s in course %s at position %s", module.id, course_id, module.position)
        return Result.ok(module)

    # ------------------------------------------------------------------
    # UPDATE
    # ------------------------------------------------------------------
    def update_module(
        self,
        user: Optional[dict],
        course_id: int,
        module_id: int,
        update: ModuleUpdate,
    ) -> Result[CourseModule]:
        auth = self._authorize(user, course_id, Permission.UPDATE)
        if not auth.is_success:
            return Result.propagate(auth)

        name: Optional[Result[str]] = None
        if update.name is not None:
            name = validate_module_name(update.name)
            if not name.is_success:
                return Result.propagate(name)

        try:
            with course_lock(course_id), self._modules.transaction() as tx:
                module = self._modules.get_by_id(course_id, module_id, tx=tx)
                if module is None:
                    return Result.fail(f"Module '{module_id}' not found.", code=NOT_FOUND)

                # Resolve the move before writing anything so a bad position commits nothing.
                moved = None
                if update.position is not None:
                    existing = self._modules.list_for_course(course_id, tx=tx)
                    moved = self._domain.insert_at_position(module, update.position, existing)
                    if not moved.is_success:
                        return Result.propagate(moved)

                if name is not None:
                    module.name = name.value
                if update.unlock_at is not None:
                    module.unlock_at = update.unlock_at
                elif update.clear_unlock_at:
                    module.unlock_at = None
                if update.require_sequential_progress is not None:
                    module.require_sequential_progress = update.require_sequential_progress
                if update.prerequisite_module_ids is not None:
                    module.prerequisite_module_ids = normalize_prerequisite_ids(update.prerequisite_module_ids)
                if update.publish:
                    module.workflow_state = WorkflowState.ACTIVE
                elif update.unpublish:
                    module.workflow_state = WorkflowState.UNPUBLISHED
                module.updated_at = _now().isoformat()

                self._modules.save(module, tx=tx)
                if moved is not None:
                    self._modules.save_positions(course_id, moved.value, tx=tx)
        except RepositoryError as e:
            logger.warning("Module %s update rejected: %s", module_id, e)
            return Result.fail(str(e))

        self._courses.touch(course_id)
        logger.info("Updated module %s in course %s", module_id, course_id)
        return Result.ok(module)

    # ------------------------------------------------------------------
    # DELETE
    # ------------------------------------------------------------------
    def delete_module(self, user: Optional[dict], course_id: int, module_id: int) -> Result[CourseModule]:
        auth = self._authorize(user, course_id, Permission.DELETE)
        if not auth.is_success:
            return Result.propagate(auth)

        with course_lock(course_id), self._modules.transaction() as tx:
            module = self._modules.get_by_id(course_id, module_id, tx=tx)
            if module is None:
                return Result.fail(f"Module '{module_id}' not found.", code=NOT_FOUND)
            self._domain.apply_event([module], BatchEvent.DELETE)
            module.updated_at = _now().isoformat()
            self._modules.save(module, tx=tx)
            remaining = self._modules.list_for_course(course_id, tx=tx)
            self._modules.save_positions(course_id, self._domain.compact_positions(remaining), tx=tx)

        self._courses.touch(course_id)
        logger.info("Deleted module %s in course %s", module_id, course_id)
        return Result.ok(module)

    # ------------------------------------------------------------------
    # BATCH UPDATE
    # ------------------------------------------------------------------
    def batch_update(
        self,
        user: Optional[dict],
        course_id: int,
        event: Optional[str],
        module_ids: Optional[List[Any]],
    ) -> Result[List[int]]:
        auth = self._authorize(user, course_id, Permission.MANAGE_CONTENT)
        if not auth.is_success:
            return Result.propagate(auth)

        parsed = parse_event(event)
        if not parsed.is_success:
            return Result.propagate(parsed)
        if not module_ids:
            return Result.fail("must specify module_ids[]", code=MISSING_PARAMETER, field="module_ids")

        with course_lock(course_id), self._modules.transaction() as tx:
            modules = self._modules.find_by_ids(course_id, map_module_ids(module_ids), tx=tx)
            result = self._domain.apply_event(modules, parsed.value)
            if not result.is_success:
                return result

            stamp = _now().isoformat()
            for module in modules:
                module.updated_at = stamp
                self._modules.save(module, tx=tx)
            if parsed.value is BatchEvent.DELETE:
                remaining = self._modules.list_for_course(course_id, tx=tx)
                self._modules.save_positions(course_id, self._domain.compact_positions(remaining), tx=tx)

        self._courses.touch(course_id)
        logger.info("Applied %s to modules %s in course %s", parsed.value.value, result.value, course_id)
        return result

    # ------------------------------------------------------------------
    # MODULE ITEMS
    # ------------------------------------------------------------------
    def add_item(
        self,
        user: Optional[dict],
        course_id: int,
        module_id: int,
        title: Optional[str],
        required: bool,
    ) -> Result[ModuleItem]:
        auth = self._authorize(user, course_id, Permission.MANAGE_CONTENT)
        if not auth.is_success:
            return Result.propagate(auth)
        if self._modules.get_by_id(course_id, module_id) is None:
            return Result.fail(f"Module '{module_id}' not found.", code=NOT_FOUND)

        cleaned = (title or "").strip()
        if not cleaned:
            return Result.fail("missing item title", code=MISSING_PARAMETER, field="title")
        return Result.ok(self._items.add_item(module_id, cleaned, required))

    def list_items(self, user: Optional[dict], course_id: int, module_id: int) -> Result[List[ModuleItem]]:
        found = self.get_module(user, course_id, module_id)
        if not found.is_success:
            return Result.propagate(found)
        return Result.ok(self._items.items_for(module_id))

    def record_item_progress(
        self,
        user: Optional[dict],
        course_id: int,
        module_id: int,
        item_id: int,
        completed: bool,
    ) -> Result[ModuleProgression]:
        """Record that the student started or completed an item, then re-evaluate the module."""
        auth = self._authorize(user, course_id, Permission.PARTICIPATE_AS_STUDENT)
        if not auth.is_success:
            return Result.propagate(auth)

        visible = self._visible_modules(user, course_id)
        module = next((m for m in visible if m.id == module_id), None)
        if module is None:
            return Result.fail(f"Module '{module_id}' not found.", code=NOT_FOUND)
        item = self._items.get_item(module_id, item_id)
        if item is None:
            return Result.fail(f"Item '{item_id}' not found.", code=NOT_FOUND)

        user_id = user["sub"]
        progression = self._domain.evaluate_for(module, user_id, visible)
        if progression.state is ProgressionState.LOCKED:
            return Result.fail("module is locked", code=LOCKED)

        if module.require_sequential_progress:
            statuses = self._items.statuses_for(module_id, user_id)
            for earlier in self._items.items_for(module_id):
                if earlier.position >= item.position:
                    break
                status = statuses.get(earlier.id)
                if earlier.required and (status is None or not status.completed):
                    return Result.fail("complete the previous items first", code=LOCKED)

        at = _now()
        if completed:
            self._items.record_completion(item_id, user_id, at)
        else:
            self._items.record_start(item_id, user_id, at)
        return Result.ok(self._domain.evaluate_for(module, user_id, visible))
