"""
errors.py — Typed failures raised at the catalog and storage boundaries.

Every I/O boundary (query, touch, commit) raises one of these instead of a raw
OSError or sqlite3.Error, so callers can decide per failure kind whether to
skip a file, abandon a target or stop the run.
"""

import traceback


class MtimeFixError(Exception):
    """Base class for all mtimefix failures."""


class NoTargets(MtimeFixError):
    """No user or path was selected for the run."""


class UnknownUser(MtimeFixError):
    def __init__(self, user_id: str):
        super().__init__(f"Unknown user {user_id}")
        self.user_id = user_id


class Forbidden(MtimeFixError):
    """The storage location is not writable by the current process."""

    def __init__(self, path: str, message: str = ""):
        super().__init__(message or f"Not writable: {path}")
        self.path = path


class NotFound(MtimeFixError):
    """A file or target root no longer exists."""

    def __init__(self, path: str, message: str = ""):
        super().__init__(message or path)
        self.path = path


class Unexpected(MtimeFixError):
    """Any other backend failure; keeps the formatted traceback for the log."""

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.detail = detail

    @classmethod
    def wrap(cls, exc: BaseException) -> "Unexpected":
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        err = cls(f"{type(exc).__name__}: {exc}", detail)
        err.__cause__ = exc
        return err


class CommitFailed(MtimeFixError):
    """Committing one page of corrections failed; fatal to the current target."""
