import sqlite3
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

# Anything at or below one day past the epoch is a sentinel, not a real mtime.
MTIME_THRESHOLD = 86400
PAGE_SIZE = 100


def connect_db(path: Path):
    from mtimefix.migrate import apply_migrations  # Lazy import
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    apply_migrations(path, Path(__file__).parent / "migrations")
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    # WAL lets a scan hold a read snapshot while page corrections commit.
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


@dataclass(frozen=True)
class Target:
    """One user-scoped subtree selected for a repair pass."""
    user_id: str
    root: str

    def __post_init__(self):
        home = f"/{self.user_id}"
        if self.root != home and not self.root.startswith(home + "/"):
            raise ValueError(f"Path {self.root!r} is not inside the namespace of {self.user_id!r}")

    @classmethod
    def for_user(cls, user_id: str) -> "Target":
        return cls(user_id, f"/{user_id}")


@dataclass(frozen=True)
class StaleFileRecord:
    path: str
    storage_id: int
    mtime: float
    user_id: str


@dataclass(frozen=True)
class SearchOrder:
    field: str
    direction: str = "desc"


MTIME_DESCENDING = SearchOrder("mtime", "desc")


class OutcomeKind(Enum):
    REPAIRED = "repaired"
    SKIPPED = "skipped"
    LISTED = "listed"


@dataclass
class RepairOutcome:
    kind: OutcomeKind
    path: str
    reason: Optional[str] = None


@dataclass
class TargetReport:
    """Result of one engine call for a single target."""
    target: Target
    queries: int = 0
    repaired: int = 0
    listed: int = 0
    skipped: int = 0
    cancelled: bool = False


@dataclass
class RunStats:
    """Counters for the whole process; owned by the run controller."""
    files_fixed: int = 0
    files_listed: int = 0
    files_skipped: int = 0
    unknown_users: List[str] = field(default_factory=list)
    failed_targets: List[str] = field(default_factory=list)
    cancelled: bool = False
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    def record(self, outcome: RepairOutcome) -> None:
        if outcome.kind is OutcomeKind.REPAIRED:
            self.files_fixed += 1
        elif outcome.kind is OutcomeKind.LISTED:
            self.files_listed += 1
        else:
            self.files_skipped += 1

    def finish(self) -> None:
        if self.finished_at is None:
            self.finished_at = time.monotonic()

    @property
    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at
