"""
store.py — Transactional metadata writes and storage backend adapters.

A page of corrections is bracketed by begin()/commit(). Each touch() runs
inside a savepoint, so a file that fails halfway leaves neither its catalog
row nor its on-disk timestamp changed, and the rest of the page carries on.
"""

import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Dict, Optional

from mtimefix.errors import CommitFailed, Forbidden, NotFound, Unexpected
from mtimefix.model import StaleFileRecord

logger = logging.getLogger("mtimefix.store")


class Storage:
    """A backend holding catalog entries. Subclasses declare their capabilities."""

    backend = "abstract"

    def __init__(self, storage_id: int, location: str):
        self.storage_id = storage_id
        self.location = location

    def supports_mtime_write(self) -> bool:
        return False

    def touch(self, path: str, mtime: float) -> None:
        raise Unexpected(f"{self.backend} storage {self.storage_id} cannot set modification times")

    def __repr__(self):
        return f"{type(self).__name__}({self.storage_id}, {self.location!r})"


class LocalStorage(Storage):
    """Entries live in a directory on disk, `location` being the data directory."""

    backend = "local"

    def supports_mtime_write(self) -> bool:
        return True

    def local_path(self, path: str) -> Path:
        return Path(self.location) / path.lstrip("/")

    def touch(self, path: str, mtime: float) -> None:
        # Metadata only: os.utime never opens the content stream.
        try:
            os.utime(self.local_path(path), (mtime, mtime))
        except FileNotFoundError:
            raise NotFound(path, f"{path} no longer exists on disk")
        except PermissionError as e:
            raise Forbidden(path, f"{path}: {e.strerror or e}")
        except OSError as e:
            raise Unexpected.wrap(e)


class ObjectStorage(Storage):
    """Object stores (S3 and friends) keep their own timestamps; no mtime writes."""

    backend = "object"


BACKENDS = {cls.backend: cls for cls in (LocalStorage, ObjectStorage)}


def register_storage(conn: sqlite3.Connection, location: str, backend: str = "local") -> int:
    """Return the storage_id for `location`, creating the row if needed."""
    if backend not in BACKENDS:
        raise ValueError(f"Unknown storage backend: {backend}")
    conn.execute(
        "INSERT OR IGNORE INTO storages (backend, location) VALUES (?, ?)",
        (backend, str(location)),
    )
    row = conn.execute(
        "SELECT storage_id, backend FROM storages WHERE location = ?", (str(location),)
    ).fetchone()
    if row["backend"] != backend:
        raise ValueError(f"{location} is already registered as a {row['backend']} storage")
    return row["storage_id"]


class MetadataStore:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._storages: Dict[int, Storage] = {}

    def begin(self) -> None:
        if self.conn.in_transaction:
            raise Unexpected("a transaction is already open on the metadata store")
        self.conn.execute("BEGIN")

    def commit(self) -> None:
        try:
            self.conn.commit()
        except sqlite3.Error as e:
            raise CommitFailed(f"Commit failed: {e}") from e

    def rollback(self) -> None:
        try:
            self.conn.rollback()
        except sqlite3.Error:
            logger.exception("Rollback failed")

    def storage_for(self, storage_id: int) -> Storage:
        storage = self._storages.get(storage_id)
        if storage is not None:
            return storage
        try:
            row = self.conn.execute(
                "SELECT storage_id, backend, location FROM storages WHERE storage_id = ?",
                (storage_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise Unexpected.wrap(e)
        if row is None:
            raise NotFound(str(storage_id), f"Storage {storage_id} is not registered")
        cls = BACKENDS.get(row["backend"], Storage)
        storage = cls(row["storage_id"], row["location"])
        self._storages[storage_id] = storage
        return storage

    def touch(self, record: StaleFileRecord, mtime: Optional[float] = None) -> float:
        """
        Set the entry's mtime, by default to the current wall-clock time.

        Returns the mtime written.

        Raises:
            Forbidden: the location is not writable by this process
            NotFound: the entry vanished from the catalog or from its storage
            Unexpected: any other backend error
        """
        new_mtime = time.time() if mtime is None else mtime
        storage = self.storage_for(record.storage_id)

        try:
            self.conn.execute("SAVEPOINT touch")
        except sqlite3.Error as e:
            raise Unexpected.wrap(e)
        try:
            cur = self.conn.execute(
                "UPDATE filecache SET mtime = ? WHERE path = ? AND storage_id = ?",
                (new_mtime, record.path, record.storage_id),
            )
            if cur.rowcount == 0:
                raise NotFound(record.path, f"{record.path} is no longer in the catalog")
            storage.touch(record.path, new_mtime)
        except sqlite3.Error as e:
            self._undo_touch()
            raise Unexpected.wrap(e)
        except BaseException:
            self._undo_touch()
            raise
        try:
            self.conn.execute("RELEASE touch")
        except sqlite3.Error as e:
            self._undo_touch()
            raise Unexpected.wrap(e)
        return new_mtime

    def _undo_touch(self) -> None:
        try:
            self.conn.execute("ROLLBACK TO touch")
            self.conn.execute("RELEASE touch")
        except sqlite3.Error:
            logger.exception("Could not roll back savepoint")
