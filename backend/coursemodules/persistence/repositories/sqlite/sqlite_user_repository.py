"""SQLite implementation of UserRepository."""
from __future__ import annotations
import sqlite3
from contextlib import closing
from typing import Optional

from coursemodules.domain.account.models import SiteRole, User
from coursemodules.persistence.db import get_connection
from coursemodules.persistence.interfaces.module_repository import RepositoryError
from coursemodules.persistence.interfaces.user_repository import UserRepository


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        password_hash=row["password_hash"],
        role=SiteRole(row["role"]),
        display_name=row["display_name"],
        email=row["email"],
        created_at=row["created_at"],
    )


class SqliteUserRepository(UserRepository):

    def get_by_id(self, user_id: str) -> Optional[User]:
        with closing(get_connection()) as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None

    def get_by_username(self, username: str) -> Optional[User]:
        with closing(get_connection()) as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        return _row_to_user(row) if row else None

    def insert(self, user: User) -> User:
        with closing(get_connection()) as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, username, password_hash, role, display_name, email, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user.id,
                        user.username,
                        user.password_hash,
                        user.role.value,
                        user.display_name,
                        user.email,
                        user.created_at,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise RepositoryError(str(e)) from e
        return user
