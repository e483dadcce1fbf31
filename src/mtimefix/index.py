"""
index.py — Paged, filtered, ordered search over a user's subtree of the catalog.

The index is read-only. It should be given its own connection: `snapshot()`
holds a read transaction on it for a whole target scan, and with the catalog
in WAL mode that view is unaffected by the corrections the store commits on
its connection in the meantime.
"""

import sqlite3
from contextlib import contextmanager
from typing import List, Optional

from mtimefix.errors import NotFound, Unexpected
from mtimefix.model import MTIME_DESCENDING, SearchOrder, StaleFileRecord, Target

ORDERABLE_FIELDS = {"mtime", "path", "size"}
DIRECTIONS = {"asc": "ASC", "desc": "DESC"}


def _order_clause(order: SearchOrder) -> str:
    direction = DIRECTIONS.get(order.direction.lower())
    if order.field not in ORDERABLE_FIELDS or direction is None:
        raise ValueError(f"Unsupported search order: {order.field} {order.direction}")
    # path breaks ties so paging over equal mtimes is deterministic
    if order.field == "path":
        return f"path {direction}"
    return f"{order.field} {direction}, path ASC"


class FileIndex:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @contextmanager
    def snapshot(self):
        """Pin the result set for the duration of one target's scan."""
        if self.conn.in_transaction:
            yield self
            return
        self.conn.execute("BEGIN")
        try:
            yield self
        finally:
            self.conn.rollback()

    def _require_root(self, target: Target, owner: str) -> None:
        row = self.conn.execute(
            "SELECT 1 FROM filecache WHERE path = ? AND user_id = ?",
            (target.root, owner),
        ).fetchone()
        if row is None:
            raise NotFound(target.root, f"{target.root} does not exist for user {owner}")

    def search(
        self,
        target: Target,
        threshold: float,
        page_size: int,
        offset: int,
        order: SearchOrder = MTIME_DESCENDING,
        owner: Optional[str] = None,
    ) -> List[StaleFileRecord]:
        """
        Return at most `page_size` entries under `target.root` with mtime <= threshold.

        An empty list means the result set is exhausted at this offset.

        Raises:
            NotFound: the target root has no catalog entry for `owner`
            Unexpected: the catalog query failed
        """
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        if offset < 0:
            raise ValueError(f"offset must not be negative, got {offset}")
        order_sql = _order_clause(order)
        owner = owner or target.user_id
        prefix = target.root.rstrip("/") + "/"

        try:
            self._require_root(target, owner)
            rows = self.conn.execute(
                f"""
                SELECT path, storage_id, mtime, user_id
                FROM filecache
                WHERE user_id = ?
                  AND substr(path, 1, ?) = ?
                  AND mtime <= ?
                ORDER BY {order_sql}
                LIMIT ? OFFSET ?
                """,
                (owner, len(prefix), prefix, threshold, page_size, offset),
            ).fetchall()
        except sqlite3.Error as e:
            raise Unexpected.wrap(e)

        return [
            StaleFileRecord(
                path=row["path"],
                storage_id=row["storage_id"],
                mtime=row["mtime"],
                user_id=row["user_id"],
            )
            for row in rows
        ]

    def count(self, target: Target, threshold: float, owner: Optional[str] = None) -> int:
        owner = owner or target.user_id
        prefix = target.root.rstrip("/") + "/"
        try:
            row = self.conn.execute(
                """
                SELECT COUNT(*) FROM filecache
                WHERE user_id = ? AND substr(path, 1, ?) = ? AND mtime <= ?
                """,
                (owner, len(prefix), prefix, threshold),
            ).fetchone()
        except sqlite3.Error as e:
            raise Unexpected.wrap(e)
        return row[0]
