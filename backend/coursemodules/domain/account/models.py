"""Site accounts — who can sign in and with which site-wide role."""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SiteRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


@dataclass
class User:
    id: str
    username: str
    password_hash: str
    role: SiteRole = SiteRole.STUDENT
    display_name: Optional[str] = None
    email: Optional[str] = None
    created_at: str = ""
