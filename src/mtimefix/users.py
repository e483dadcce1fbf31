"""
users.py — User lookup and enumeration over the catalog `users` table.
"""

import sqlite3
from typing import List, Optional


def is_valid_user_id(user_id: str) -> bool:
    """A user id names one top-level directory: non-empty, no slashes."""
    return bool(user_id) and "/" not in user_id


class UserDirectory:
    """Known users of the store, backed by the catalog connection."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def exists(self, user_id: str) -> bool:
        if not is_valid_user_id(user_id):
            return False
        row = self.conn.execute("SELECT 1 FROM users WHERE uid = ?", (user_id,)).fetchone()
        return row is not None

    def search(self, pattern: str = "") -> List[str]:
        """Return user ids containing `pattern`, sorted. Empty pattern matches everyone."""
        rows = self.conn.execute(
            "SELECT uid FROM users WHERE instr(uid, ?) > 0 ORDER BY uid",
            (pattern,),
        ).fetchall()
        return [row["uid"] for row in rows]

    def register(self, user_id: str, display_name: Optional[str] = None) -> None:
        if not is_valid_user_id(user_id):
            raise ValueError(f"Invalid user id: {user_id!r}")
        self.conn.execute(
            "INSERT OR IGNORE INTO users (uid, display_name) VALUES (?, ?)",
            (user_id, display_name),
        )

    def entry_counts(self) -> List[tuple]:
        """(uid, number of catalog entries) for every known user."""
        rows = self.conn.execute("""
            SELECT u.uid, COUNT(f.path) AS entries
            FROM users u
            LEFT JOIN filecache f ON f.user_id = u.uid
            GROUP BY u.uid
            ORDER BY u.uid
        """).fetchall()
        return [(row["uid"], row["entries"]) for row in rows]
