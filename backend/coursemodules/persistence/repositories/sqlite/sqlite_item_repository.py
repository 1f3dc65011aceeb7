"""SQLite implementation of ItemRepository — module items and the item-level completion evaluator."""
from __future__ import annotations
from contextlib import closing
from datetime import datetime
from typing import Dict, List, Optional

from coursemodules.domain.course_module.models import ItemStatus, ModuleItem
from coursemodules.persistence.db import format_timestamp, get_connection, parse_timestamp
from coursemodules.persistence.interfaces.item_repository import ItemRepository


def _row_to_item(row) -> ModuleItem:
    return ModuleItem(
        id=row["id"],
        module_id=row["module_id"],
        title=row["title"],
        position=row["position"],
        required=bool(row["required"]),
    )


class SqliteItemRepository(ItemRepository):

    def items_for(self, module_id: int) -> List[ModuleItem]:
        with closing(get_connection()) as conn:
            rows = conn.execute(
                "SELECT * FROM module_items WHERE module_id = ? ORDER BY position ASC, id ASC",
                (module_id,),
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def statuses_for(self, module_id: int, user_id: str) -> Dict[int, ItemStatus]:
        with closing(get_connection()) as conn:
            rows = conn.execute(
                """
                SELECT p.item_id, p.started_at, p.completed_at
                FROM item_progress p
                JOIN module_items i ON i.id = p.item_id
                WHERE i.module_id = ? AND p.user_id = ?
                """,
                (module_id, user_id),
            ).fetchall()
        return {
            r["item_id"]: ItemStatus(
                started=r["started_at"] is not None,
                completed_at=parse_timestamp(r["completed_at"]),
            )
            for r in rows
        }

    def add_item(self, module_id: int, title: str, required: bool) -> ModuleItem:
        with closing(get_connection()) as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(position), 0) FROM module_items WHERE module_id = ?",
                (module_id,),
            ).fetchone()
            position = row[0] + 1
            cur = conn.execute(
                "INSERT INTO module_items (module_id, title, position, required) VALUES (?, ?, ?, ?)",
                (module_id, title, position, int(required)),
            )
        return ModuleItem(id=cur.lastrowid, module_id=module_id, title=title, position=position, required=required)

    def get_item(self, module_id: int, item_id: int) -> Optional[ModuleItem]:
        with closing(get_connection()) as conn:
            row = conn.execute(
                "SELECT * FROM module_items WHERE id = ? AND module_id = ?",
                (item_id, module_id),
            ).fetchone()
        return _row_to_item(row) if row else None

    def record_start(self, item_id: int, user_id: str, at: datetime) -> None:
        with closing(get_connection()) as conn:
            conn.execute(
                """
                INSERT INTO item_progress (item_id, user_id, started_at) VALUES (?, ?, ?)
                ON CONFLICT(item_id, user_id) DO UPDATE SET
                    started_at = COALESCE(item_progress.started_at, excluded.started_at)
                """,
                (item_id, user_id, format_timestamp(at)),
            )

    def record_completion(self, item_id: int, user_id: str, at: datetime) -> None:
        stamp = format_timestamp(at)
        with closing(get_connection()) as conn:
            conn.execute(
                """
                INSERT INTO item_progress (item_id, user_id, started_at, completed_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(item_id, user_id) DO UPDATE SET
                    started_at   = COALESCE(item_progress.started_at, excluded.started_at),
                    completed_at = COALESCE(item_progress.completed_at, excluded.completed_at)
                """,
                (item_id, user_id, stamp, stamp),
            )
