"""Course-level authorization — who may do what with a course's modules."""
from __future__ import annotations
from enum import Enum
from typing import Dict, FrozenSet, Optional

from coursemodules.persistence.interfaces.course_repository import CourseRepository


class Permission(str, Enum):
    READ = "read"
    MANAGE_CONTENT = "manage_content"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    PARTICIPATE_AS_STUDENT = "participate_as_student"


_CONTENT_PERMISSIONS: FrozenSet[Permission] = frozenset({
    Permission.READ,
    Permission.MANAGE_CONTENT,
    Permission.CREATE,
    Permission.UPDATE,
    Permission.DELETE,
})

# Rights granted by an enrollment role
ROLE_PERMISSIONS: Dict[str, FrozenSet[Permission]] = {
    "teacher": _CONTENT_PERMISSIONS,
    "student": frozenset({Permission.READ, Permission.PARTICIPATE_AS_STUDENT}),
}


class AuthorizationService:
    def __init__(self, courses: CourseRepository):
        self._courses = courses

    def grants_right(self, user: Optional[dict], course_id: int, permission: Permission) -> bool:
        """Site admins manage every course; everyone else needs an enrollment."""
        if not user:
            return False
        if user.get("role") == "admin":
            return permission in _CONTENT_PERMISSIONS
        role = self._courses.enrollment_role(course_id, user["sub"])
        if role is None:
            return False
        return permission in ROLE_PERMISSIONS.get(role, frozenset())
