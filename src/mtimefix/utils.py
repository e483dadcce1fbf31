# src/mtimefix/utils.py

import os
from pathlib import Path

DEFAULT_HOME = Path.home() / ".mtimefix"


def find_db_path(db_path=None):
    """
    Return a Path to the SQLite catalog.
    Explicit value first, then $MTIMEFIX_DB, then ~/.mtimefix/catalog.db.
    """
    if db_path:
        return Path(db_path).expanduser()
    env = os.environ.get("MTIMEFIX_DB")
    if env:
        return Path(env).expanduser()
    return DEFAULT_HOME / "catalog.db"


def find_data_dir(data_dir=None):
    """
    Return the data directory holding one subdirectory per user.
    Explicit value first, then $MTIMEFIX_DATA_DIR, then ~/.mtimefix/data.
    """
    if data_dir:
        return Path(data_dir).expanduser()
    env = os.environ.get("MTIMEFIX_DATA_DIR")
    if env:
        return Path(env).expanduser()
    return DEFAULT_HOME / "data"
