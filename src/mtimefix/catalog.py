"""
catalog.py — Record a user's directory tree into the catalog.

Walks <data_dir>/<user_id>, storing every directory and file with its on-disk
mtime. Rows are written in batches, one commit per batch. Existing rows are
refreshed; rows whose path disappeared from disk are removed.
"""

import logging
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from mtimefix.errors import NotFound
from mtimefix.store import register_storage
from mtimefix.users import UserDirectory, is_valid_user_id

logger = logging.getLogger("mtimefix.catalog")

BATCH_SIZE = 500


@dataclass
class CatalogScanStats:
    """Statistics for one user's catalog scan."""
    entries: int = 0
    files: int = 0
    directories: int = 0
    removed: int = 0
    errors: int = 0


def _walk(user_root: Path):
    """Yield (path, is_dir) for the user root and everything below it."""
    yield user_root, True
    for dirpath, dirnames, filenames in os.walk(user_root, onerror=_log_walk_error):
        dirnames.sort()
        base = Path(dirpath)
        for name in dirnames:
            yield base / name, True
        for name in sorted(filenames):
            yield base / name, False


def _log_walk_error(exc: OSError) -> None:
    logger.warning("Could not read %s: %s", exc.filename, exc)


def _write_batch(conn: sqlite3.Connection, rows: list) -> None:
    conn.executemany(
        """
        INSERT INTO filecache (path, user_id, storage_id, kind, size, mtime, last_seen_at)
        VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT(path) DO UPDATE SET
            user_id = excluded.user_id,
            storage_id = excluded.storage_id,
            kind = excluded.kind,
            size = excluded.size,
            mtime = excluded.mtime,
            last_seen_at = CURRENT_TIMESTAMP
        """,
        rows,
    )
    conn.commit()


def scan_user(
    conn: sqlite3.Connection,
    data_dir: Path,
    user_id: str,
    backend: str = "local",
    batch_size: int = BATCH_SIZE,
) -> CatalogScanStats:
    """
    Register `user_id` and catalog everything under <data_dir>/<user_id>.

    Raises:
        NotFound: the user's directory does not exist
        ValueError: `user_id` is empty or contains a slash
    """
    if not is_valid_user_id(user_id):
        raise ValueError(f"Invalid user id: {user_id!r}")
    data_dir = Path(data_dir)
    user_root = data_dir / user_id
    if not user_root.is_dir():
        raise NotFound(str(user_root), f"No directory for user {user_id} at {user_root}")

    storage_id = register_storage(conn, str(data_dir.resolve()), backend)
    UserDirectory(conn).register(user_id)
    conn.commit()

    stats = CatalogScanStats()
    seen = set()
    batch = []

    for local_path, is_dir in _walk(user_root):
        rel = "/" + local_path.relative_to(data_dir).as_posix()
        try:
            st = local_path.stat()
        except OSError as e:
            stats.errors += 1
            logger.warning("Could not stat %s: %s", local_path, e)
            continue
        seen.add(rel)
        stats.entries += 1
        if is_dir:
            stats.directories += 1
        else:
            stats.files += 1
        batch.append((rel, user_id, storage_id, "dir" if is_dir else "file",
                      0 if is_dir else st.st_size, st.st_mtime))
        if len(batch) >= batch_size:
            _write_batch(conn, batch)
            batch.clear()

    if batch:
        _write_batch(conn, batch)

    known = conn.execute(
        "SELECT path FROM filecache WHERE user_id = ?", (user_id,)
    ).fetchall()
    gone = [(row["path"],) for row in known if row["path"] not in seen]
    if gone:
        conn.executemany("DELETE FROM filecache WHERE path = ?", gone)
        conn.commit()
        stats.removed = len(gone)

    logger.info(
        "Catalogued %s: %d files, %d directories, %d removed, %d errors",
        user_id, stats.files, stats.directories, stats.removed, stats.errors,
    )
    return stats
