"""Abstract repository interface for course modules."""
from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Dict, Iterable, List, Optional

from coursemodules.domain.course_module.models import CourseModule


class RepositoryError(Exception):
    """A write was rejected by the store (constraint violation and the like)."""


class ModuleRepository(ABC):
    """
    Every method takes an optional ``tx`` obtained from ``transaction()``;
    without one it runs in its own autocommitted connection.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Any]:
        """Open a write transaction that later calls can join via ``tx``."""
        ...

    @abstractmethod
    def get_by_id(self, course_id: int, module_id: int, tx: Any = None) -> Optional[CourseModule]:
        """Return the non-deleted module, or None."""
        ...

    @abstractmethod
    def list_for_course(
        self,
        course_id: int,
        states: Optional[Iterable[str]] = None,
        tx: Any = None,
    ) -> List[CourseModule]:
        """Return the course's non-deleted modules ordered by position, optionally filtered by workflow state."""
        ...

    @abstractmethod
    def find_by_ids(self, course_id: int, module_ids: List[int], tx: Any = None) -> List[CourseModule]:
        """Return the non-deleted modules among ``module_ids``, ordered by position."""
        ...

    @abstractmethod
    def insert(self, module: CourseModule, tx: Any = None) -> CourseModule:
        """Persist a new module and return it with its id assigned."""
        ...

    @abstractmethod
    def save(self, module: CourseModule, tx: Any = None) -> None:
        """Write every column except the position."""
        ...

    @abstractmethod
    def save_positions(self, course_id: int, positions: Dict[int, int], tx: Any = None) -> None:
        """Apply {module_id: position} in one step without tripping the position uniqueness index."""
        ...
