"""SQLite connection, schema initialisation and per-course write serialization."""
from __future__ import annotations
import logging
import os
import sqlite3
import threading
import uuid
import weakref
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

import bcrypt

from coursemodules.core import config

logger = logging.getLogger(__name__)

_MIGRATIONS_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "migrations")

# Entries live only while some caller holds a reference to the lock.
_course_locks: weakref.WeakValueDictionary[int, threading.Lock] = weakref.WeakValueDictionary()
_course_locks_guard = threading.Lock()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Stored timestamps are ISO 8601; naive ones are UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def get_connection() -> sqlite3.Connection:
    conn = sqlite3.connect(config.DATABASE_PATH, check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """
    Yield a connection inside a ``BEGIN IMMEDIATE`` transaction.
    Commits on success, rolls back on any exception, always closes.
    """
    conn = get_connection()
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


@contextmanager
def course_lock(course_id: int) -> Iterator[None]:
    """Serialize ordering mutations of one course within this process."""
    with _course_locks_guard:
        lock = _course_locks.get(course_id)
        if lock is None:
            lock = threading.Lock()
            _course_locks[course_id] = lock
    with lock:
        yield


def init_db() -> None:
    """Run all migration SQL files against the database."""
    if config.DATABASE_PATH != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(config.DATABASE_PATH)), exist_ok=True)
    conn = get_connection()
    try:
        for name in sorted(os.listdir(_MIGRATIONS_DIR)):
            if not name.endswith(".sql"):
                continue
            with open(os.path.join(_MIGRATIONS_DIR, name), "r", encoding="utf-8") as f:
                conn.executescript(f.read())
    finally:
        conn.close()
    _seed_default_user()


def _seed_default_user() -> None:
    """Insert the site admin on an empty users table."""
    conn = get_connection()
    try:
        count = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        if count == 0:
            hashed = bcrypt.hashpw(config.ADMIN_PASSWORD.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
            conn.execute(
                """
                INSERT INTO users (id, username, password_hash, role, display_name, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()),
                    config.ADMIN_USERNAME,
                    hashed,
                    "admin",
                    "Administrator",
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            logger.info("Seeded site admin '%s'", config.ADMIN_USERNAME)
    finally:
        conn.close()
