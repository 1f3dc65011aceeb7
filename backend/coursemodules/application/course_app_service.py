"""Application service for the course context — courses and enrollments."""
from __future__ import annotations
import logging
from typing import Optional

from coursemodules.application.authorization import AuthorizationService, Permission
from coursemodules.domain.common.result import FORBIDDEN, MISSING_PARAMETER, NOT_FOUND, Result
from coursemodules.domain.course_module.models import Course
from coursemodules.persistence.interfaces.course_repository import CourseRepository
from coursemodules.persistence.interfaces.module_repository import RepositoryError

logger = logging.getLogger(__name__)

ENROLLMENT_ROLES = {"teacher", "student"}
COURSE_CREATOR_ROLES = {"admin", "teacher"}


class CourseAppService:
    def __init__(self, courses: CourseRepository, authorization: AuthorizationService):
        self._courses = courses
        self._auth = authorization

    def create_course(self, user: dict, name: Optional[str], draft_mode: bool) -> Result[Course]:
        if user.get("role") not in COURSE_CREATOR_ROLES:
            return Result.fail("user not authorized to perform that action", code=FORBIDDEN)
        cleaned = (name or "").strip()
        if not cleaned:
            return Result.fail("missing course name", code=MISSING_PARAMETER, field="name")

        course = self._courses.create(cleaned, draft_mode)
        # Whoever creates a course teaches it, unless they already manage every course.
        if user.get("role") != "admin":
            self._courses.enroll(course.id, user["sub"], "teacher")
        logger.info("Created course %s (draft_mode=%s)", course.id, draft_mode)
        return Result.ok(course)

    def get_course(self, user: dict, course_id: int) -> Result[Course]:
        course = self._courses.get_by_id(course_id)
        if not course:
            return Result.fail(f"Course '{course_id}' not found.", code=NOT_FOUND)
        if not self._auth.grants_right(user, course_id, Permission.READ):
            return Result.fail("user not authorized to perform that action", code=FORBIDDEN)
        return Result.ok(course)

    def enroll(self, user: dict, course_id: int, user_id: str, role: str) -> Result[str]:
        course = self._courses.get_by_id(course_id)
        if not course:
            return Result.fail(f"Course '{course_id}' not found.", code=NOT_FOUND)
        if not self._auth.grants_right(user, course_id, Permission.MANAGE_CONTENT):
            return Result.fail("user not authorized to perform that action", code=FORBIDDEN)
        if role not in ENROLLMENT_ROLES:
            return Result.fail(f"'{role}' is not a valid role. Must be one of {sorted(ENROLLMENT_ROLES)}.", field="role")

        try:
            self._courses.enroll(course_id, user_id, role)
        except RepositoryError:
            return Result.fail(f"User '{user_id}' not found.", code=NOT_FOUND)
        logger.info("Enrolled user %s in course %s as %s", user_id, course_id, role)
        return Result.ok(role)
