"""
runner.py — Resolve repair targets, run the engine over them, report totals.
"""

import logging
from typing import Callable, Iterable, List, Optional, Sequence

import click
from rich.console import Console
from rich.table import Table

from mtimefix.cancel import CancellationToken
from mtimefix.engine import RepairEngine
from mtimefix.errors import CommitFailed, NoTargets, Unexpected, UnknownUser
from mtimefix.model import RunStats, Target
from mtimefix.users import UserDirectory

logger = logging.getLogger("mtimefix.runner")

NO_TARGETS_MESSAGE = "Please specify the user id to scan, --all to scan for all users or --path=..."


def resolve_targets(
    users: UserDirectory,
    path: Optional[str] = None,
    all_users: bool = False,
    user_ids: Sequence[str] = (),
) -> List[Target]:
    """
    Build the ordered target list. A path wins over --all, which wins over ids.

    The owning user of a path is its first segment, e.g. /alice/files/Music
    belongs to alice. Raises NoTargets when nothing is selected.
    """
    if path and path.strip("/"):
        root = "/" + path.strip("/")
        user_id = root.split("/", 2)[1]
        return [Target(user_id, root)]
    if path:
        raise NoTargets(f"--path {path!r} does not name a user")

    if all_users:
        uids = users.search("")
    else:
        uids = list(user_ids)
    if not uids:
        raise NoTargets(NO_TARGETS_MESSAGE)
    return [Target.for_user(uid) for uid in uids]


def format_elapsed(seconds: float) -> str:
    """Seconds as HH:MM:SS, rounded to the nearest second."""
    secs = int(round(seconds))
    return "%02d:%02d:%02d" % (secs // 3600, secs // 60 % 60, secs % 60)


def render_stats(stats: RunStats, console: Optional[Console] = None) -> None:
    stats.finish()
    table = Table()
    table.add_column("Fixed files", justify="right")
    table.add_column("Elapsed time")
    table.add_row(str(stats.files_fixed), format_elapsed(stats.elapsed))
    (console or Console()).print(table)


class RunController:
    def __init__(
        self,
        users: UserDirectory,
        engine: RepairEngine,
        cancel: Optional[CancellationToken] = None,
        echo: Callable[..., None] = click.echo,
        verbose: bool = False,
    ):
        self.users = users
        self.engine = engine
        self.cancel = cancel or engine.cancel
        self.echo = echo
        self.verbose = verbose

    def run(self, targets: Iterable[Target], dry_run: bool = False, stats: Optional[RunStats] = None) -> RunStats:
        """Repair each target in order; stops early only on cancellation."""
        targets = list(targets)
        stats = stats if stats is not None else RunStats()
        total = len(targets)

        for i, target in enumerate(targets, start=1):
            try:
                self._run_target(i, total, target, stats, dry_run)
            except UnknownUser as e:
                self.echo(f"❌ Unknown user {i} {e.user_id}", err=True)
                logger.warning("%s", e)
                stats.unknown_users.append(e.user_id)

            if self.verbose:
                self.echo("")

            if self.cancel.is_cancelled():
                stats.cancelled = True
                remaining = total - i
                if remaining:
                    self.echo(f"⚠️  Cancelled; {remaining} target(s) not scanned", err=True)
                logger.warning("Run cancelled after %d of %d targets", i, total)
                break

        stats.finish()
        return stats

    def _run_target(self, i: int, total: int, target: Target, stats: RunStats, dry_run: bool) -> None:
        if not self.users.exists(target.user_id):
            raise UnknownUser(target.user_id)
        self.echo(f"Starting scan for user {i} out of {total} ({target.user_id})")
        logger.info("Starting scan for user %d out of %d (%s) at %s", i, total, target.user_id, target.root)

        try:
            report = self.engine.repair_target(target, stats, dry_run=dry_run)
        except (CommitFailed, Unexpected) as e:
            # A failed page is fatal to this target only.
            self.echo(f"❌ Repair of {target.root} aborted: {e}", err=True)
            logger.error("Repair of %s aborted: %s", target.root, e, exc_info=True)
            stats.failed_targets.append(target.user_id)
            return

        if self.verbose:
            action = "listed" if dry_run else "repaired"
            count = report.listed if dry_run else report.repaired
            self.echo(
                f"   {target.root}: {count} {action}, {report.skipped} skipped, {report.queries} queries"
            )
