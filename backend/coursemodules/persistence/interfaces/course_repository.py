"""Abstract repository interface for courses and enrollments."""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

from coursemodules.domain.course_module.models import Course


class CourseRepository(ABC):

    @abstractmethod
    def create(self, name: str, draft_mode: bool) -> Course:
        ...

    @abstractmethod
    def get_by_id(self, course_id: int) -> Optional[Course]:
        ...

    @abstractmethod
    def touch(self, course_id: int) -> None:
        """Bump the course's updated_at marker so cached course data is invalidated."""
        ...

    @abstractmethod
    def enroll(self, course_id: int, user_id: str, role: str) -> None:
        """Insert or replace the user's enrollment role in the course."""
        ...

    @abstractmethod
    def enrollment_role(self, course_id: int, user_id: str) -> Optional[str]:
        """Return 'teacher', 'student' or None."""
        ...
