"""SQLite implementation of CourseRepository."""
from __future__ import annotations
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from typing import Optional

from coursemodules.domain.course_module.models import Course
from coursemodules.persistence.db import get_connection
from coursemodules.persistence.interfaces.course_repository import CourseRepository
from coursemodules.persistence.interfaces.module_repository import RepositoryError


def _row_to_course(row) -> Course:
    return Course(
        id=row["id"],
        name=row["name"],
        draft_mode=bool(row["draft_mode"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SqliteCourseRepository(CourseRepository):

    def create(self, name: str, draft_mode: bool) -> Course:
        now = datetime.now(timezone.utc).isoformat()
        with closing(get_connection()) as conn:
            cur = conn.execute(
                "INSERT INTO courses (name, draft_mode, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (name, int(draft_mode), now, now),
            )
        return Course(id=cur.lastrowid, name=name, draft_mode=draft_mode, created_at=now, updated_at=now)

    def get_by_id(self, course_id: int) -> Optional[Course]:
        with closing(get_connection()) as conn:
            row = conn.execute("SELECT * FROM courses WHERE id = ?", (course_id,)).fetchone()
        return _row_to_course(row) if row else None

    def touch(self, course_id: int) -> None:
        with closing(get_connection()) as conn:
            conn.execute(
                "UPDATE courses SET updated_at = ? WHERE id = ?",
                (datetime.now(timezone.utc).isoformat(), course_id),
            )

    def enroll(self, course_id: int, user_id: str, role: str) -> None:
        conn = get_connection()
        try:
            conn.execute(
                """
                INSERT INTO enrollments (course_id, user_id, role) VALUES (?, ?, ?)
                ON CONFLICT(course_id, user_id) DO UPDATE SET role = excluded.role
                """,
                (course_id, user_id, role),
            )
        except sqlite3.IntegrityError as e:
            raise RepositoryError(str(e)) from e
        finally:
            conn.close()

    def enrollment_role(self, course_id: int, user_id: str) -> Optional[str]:
        with closing(get_connection()) as conn:
            row = conn.execute(
                "SELECT role FROM enrollments WHERE course_id = ? AND user_id = ?",
                (course_id, user_id),
            ).fetchone()
        return row["role"] if row else None
