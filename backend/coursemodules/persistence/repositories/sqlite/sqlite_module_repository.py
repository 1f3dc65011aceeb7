"""SQLite implementation of ModuleRepository."""
from __future__ import annotations
import json
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional

from coursemodules.domain.course_module.models import CourseModule, WorkflowState
from coursemodules.persistence.db import format_timestamp, get_connection, parse_timestamp, transaction
from coursemodules.persistence.interfaces.module_repository import ModuleRepository, RepositoryError


def _row_to_module(row) -> CourseModule:
    return CourseModule(
        id=row["id"],
        course_id=row["course_id"],
        name=row["name"],
        position=row["position"],
        workflow_state=WorkflowState(row["workflow_state"]),
        unlock_at=parse_timestamp(row["unlock_at"]),
        require_sequential_progress=bool(row["require_sequential_progress"]),
        prerequisite_module_ids=json.loads(row["prerequisite_module_ids"] or "[]"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _module_params(module: CourseModule) -> dict:
    return {
        "id": module.id,
        "course_id": module.course_id,
        "name": module.name,
        "position": module.position,
        "workflow_state": module.workflow_state.value,
        "unlock_at": format_timestamp(module.unlock_at),
        "require_sequential_progress": int(module.require_sequential_progress),
        "prerequisite_module_ids": json.dumps(module.prerequisite_module_ids),
        "created_at": module.created_at,
        "updated_at": module.updated_at,
    }


class SqliteModuleRepository(ModuleRepository):

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with transaction() as conn:
            yield conn

    @contextmanager
    def _connection(self, tx: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if tx is not None:
            yield tx
            return
        conn = get_connection()
        try:
            yield conn
        finally:
            conn.close()

    def get_by_id(self, course_id: int, module_id: int, tx: Any = None) -> Optional[CourseModule]:
        with self._connection(tx) as conn:
            row = conn.execute(
                """
                SELECT * FROM context_modules
                WHERE id = ? AND course_id = ? AND workflow_state != 'deleted'
                """,
                (module_id, course_id),
            ).fetchone()
        return _row_to_module(row) if row else None

    def list_for_course(
        self,
        course_id: int,
        states: Optional[Iterable[str]] = None,
        tx: Any = None,
    ) -> List[CourseModule]:
        sql = "SELECT * FROM context_modules WHERE course_id = ? AND workflow_state != 'deleted'"
        params: list = [course_id]
        if states is not None:
            states = list(states)
            sql += f" AND workflow_state IN ({', '.join('?' for _ in states)})"
            params.extend(states)
        sql += " ORDER BY position ASC, id ASC"
        with self._connection(tx) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_module(r) for r in rows]

    def find_by_ids(self, course_id: int, module_ids: List[int], tx: Any = None) -> List[CourseModule]:
        if not module_ids:
            return []
        placeholders = ", ".join("?" for _ in module_ids)
        with self._connection(tx) as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM context_modules
                WHERE course_id = ? AND workflow_state != 'deleted' AND id IN ({placeholders})
                ORDER BY position ASC, id ASC
                """,
                [course_id, *module_ids],
            ).fetchall()
        return [_row_to_module(r) for r in rows]

    def insert(self, module: CourseModule, tx: Any = None) -> CourseModule:
        params = _module_params(module)
        params.pop("id")
        with self._connection(tx) as conn:
            try:
                cur = conn.execute(
                    """
                    INSERT INTO context_modules (
                        course_id, name, position, workflow_state, unlock_at,
                        require_sequential_progress, prerequisite_module_ids,
                        created_at, updated_at
                    ) VALUES (
                        :course_id, :name, :position, :workflow_state, :unlock_at,
                        :require_sequential_progress, :prerequisite_module_ids,
                        :created_at, :updated_at
                    )
                    """,
                    params,
                )
            except sqlite3.IntegrityError as e:
                raise RepositoryError(str(e)) from e
        module.id = cur.lastrowid
        return module

    def save(self, module: CourseModule, tx: Any = None) -> None:
        with self._connection(tx) as conn:
            try:
                conn.execute(
                    """
                    UPDATE context_modules SET
                        name                        = :name,
                        workflow_state              = :workflow_state,
                        unlock_at                   = :unlock_at,
                        require_sequential_progress = :require_sequential_progress,
                        prerequisite_module_ids     = :prerequisite_module_ids,
                        updated_at                  = :updated_at
                    WHERE id = :id AND course_id = :course_id
                    """,
                    _module_params(module),
                )
            except sqlite3.IntegrityError as e:
                raise RepositoryError(str(e)) from e

    def save_positions(self, course_id: int, positions: Dict[int, int], tx: Any = None) -> None:
        if not positions:
            return
        with self._connection(tx) as conn:
            try:
                # Park the moved rows on negative slots first so no intermediate
                # state collides with the partial unique index on position.
                conn.executemany(
                    "UPDATE context_modules SET position = ? WHERE id = ? AND course_id = ?",
                    [(-position, module_id, course_id) for module_id, position in positions.items()],
                )
                conn.executemany(
                    "UPDATE context_modules SET position = ? WHERE id = ? AND course_id = ?",
                    [(position, module_id, course_id) for module_id, position in positions.items()],
                )
            except sqlite3.IntegrityError as e:
                raise RepositoryError(str(e)) from e
