"""
logs.py — Master log file for CLI runs.

Every run appends to one log file so repairs can be audited after the fact:
$MTIMEFIX_LOG_FILE if set, else $MTIMEFIX_LOG_DIR/mtimefix.log, else
~/.logs/mtimefix/mtimefix.log. MTIMEFIX_LOG_DISABLED=1 turns it off.
"""

import logging
import os
import sys
import time
from pathlib import Path

import click

from mtimefix import __version__

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_LOG_SETUP = False
_LOG_PATH = None


def log_path_from_env():
    log_file = os.environ.get("MTIMEFIX_LOG_FILE")
    if log_file:
        return Path(os.path.expanduser(log_file))
    log_dir = os.environ.get("MTIMEFIX_LOG_DIR")
    base_dir = Path(os.path.expanduser(log_dir)) if log_dir else (Path.home() / ".logs" / "mtimefix")
    return base_dir / "mtimefix.log"


def setup_logging(verbose: bool = False):
    """Attach the master log handler once. Returns the log path, or None when disabled."""
    global _LOG_SETUP, _LOG_PATH
    logger = logging.getLogger("mtimefix")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if _LOG_SETUP:
        return _LOG_PATH
    _LOG_SETUP = True
    if os.environ.get("MTIMEFIX_LOG_DISABLED") == "1":
        return None
    try:
        log_path = log_path_from_env()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as e:
        click.echo(f"⚠️  Could not open log file: {e}", err=True)
        return None
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    _LOG_PATH = log_path
    return log_path


def emit_run_header(log_path=None) -> None:
    timestamp = time.strftime("%Y-%m-%dT%H:%M:%S%z")
    script = Path(sys.argv[0]).name or "mtimefix"
    click.echo(f"🧾 {script} v{__version__} @ {timestamp}")
    if log_path:
        click.echo(f"🧾 log: {log_path}")
    logging.getLogger("mtimefix").info("Run started: %s", " ".join(sys.argv))
