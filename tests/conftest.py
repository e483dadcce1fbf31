"""Shared fixtures: a temporary catalog and data directory."""

import os

import pytest

from mtimefix.catalog import scan_user
from mtimefix.engine import RepairEngine
from mtimefix.index import FileIndex
from mtimefix.model import connect_db
from mtimefix.store import MetadataStore


@pytest.fixture(autouse=True)
def _no_master_log(monkeypatch):
    monkeypatch.setenv("MTIMEFIX_LOG_DISABLED", "1")


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "catalog.db"


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def conn(db_path):
    conn = connect_db(db_path)
    yield conn
    conn.close()


@pytest.fixture
def index_conn(db_path, conn):
    index_conn = connect_db(db_path)
    yield index_conn
    index_conn.close()


@pytest.fixture
def make_user(conn, data_dir):
    """Create files for a user on disk with the given mtimes, then catalog them.

    `files` maps a path relative to <user>/files to its mtime.
    """
    def _make_user(user_id, files):
        files_dir = data_dir / user_id / "files"
        files_dir.mkdir(parents=True, exist_ok=True)
        for rel, mtime in files.items():
            path = files_dir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(rel)
            os.utime(path, (mtime, mtime))
        return scan_user(conn, data_dir, user_id)

    return _make_user


@pytest.fixture
def make_engine(conn, index_conn):
    def _make_engine(**kwargs):
        kwargs.setdefault("show_progress", False)
        return RepairEngine(FileIndex(index_conn), MetadataStore(conn), **kwargs)

    return _make_engine


@pytest.fixture
def catalog_mtimes(conn):
    """{path: mtime} of a user's files as the catalog currently has them."""
    def _catalog_mtimes(user_id):
        rows = conn.execute(
            "SELECT path, mtime FROM filecache WHERE user_id = ? AND kind = 'file'", (user_id,)
        ).fetchall()
        return {row["path"]: row["mtime"] for row in rows}

    return _catalog_mtimes
