"""
engine.py — The per-target scan-and-fix loop.

For one target the engine pages through stale entries (mtime at or below the
threshold, newest first), applies one transaction per page and polls the
cancellation token between pages.

Paging advances the offset by the full page size after every query, never by
the number of rows returned. The index reads from a snapshot taken when the
target scan starts, so entries repaired on earlier pages keep their place in
the result set and every page is visited exactly once.
"""

import logging
from typing import Optional

from mtimefix.cancel import CancellationToken
from mtimefix.errors import CommitFailed, Forbidden, NotFound, Unexpected
from mtimefix.index import FileIndex
from mtimefix.model import (
    MTIME_DESCENDING,
    MTIME_THRESHOLD,
    PAGE_SIZE,
    OutcomeKind,
    RepairOutcome,
    RunStats,
    StaleFileRecord,
    Target,
    TargetReport,
)
from mtimefix.progress import RepairProgress
from mtimefix.store import MetadataStore

logger = logging.getLogger("mtimefix.engine")


class RepairEngine:
    def __init__(
        self,
        index: FileIndex,
        store: MetadataStore,
        cancel: Optional[CancellationToken] = None,
        page_size: int = PAGE_SIZE,
        threshold: float = MTIME_THRESHOLD,
        show_progress: Optional[bool] = None,
    ):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.index = index
        self.store = store
        self.cancel = cancel or CancellationToken()
        self.page_size = page_size
        self.threshold = threshold
        self.show_progress = show_progress

    def repair_target(self, target: Target, stats: RunStats, dry_run: bool = False) -> TargetReport:
        """
        Repair every stale entry under `target.root`.

        Per-file failures are reported and skipped. Raises CommitFailed when a
        page cannot be committed; the caller decides what happens next.
        """
        report = TargetReport(target=target)

        with self.index.snapshot():
            try:
                total = self.index.count(target, self.threshold, owner=target.user_id)
            except Unexpected as e:
                logger.error("Counting stale entries under %s failed: %s\n%s", target.root, e, e.detail)
                total = None
            with RepairProgress(total=total, enabled=self._progress_enabled(dry_run)) as progress:
                self._scan(target, stats, dry_run, report, progress)

        logger.info(
            "Target %s done: %d queries, %d repaired, %d listed, %d skipped%s",
            target.root, report.queries, report.repaired, report.listed, report.skipped,
            " (cancelled)" if report.cancelled else "",
        )
        return report

    def _progress_enabled(self, dry_run: bool) -> Optional[bool]:
        # Dry-run prints every path; a bar would only get in the way.
        if dry_run:
            return False
        return self.show_progress

    def _scan(self, target, stats, dry_run, report, progress) -> None:
        offset = 0
        while True:
            try:
                page = self.index.search(
                    target,
                    self.threshold,
                    self.page_size,
                    offset,
                    MTIME_DESCENDING,
                    target.user_id,
                )
            except NotFound as e:
                progress.write(f"❌ Path not found: {e}", err=True)
                logger.warning("Path not found: %s", e)
                return
            except Unexpected as e:
                progress.write(f"❌ Exception during search: {e}", err=True)
                logger.error("Search under %s failed: %s\n%s", target.root, e, e.detail)
                return
            report.queries += 1
            offset += self.page_size

            if not page:
                return

            self._apply_page(page, target, stats, dry_run, report, progress)

            if self.cancel.is_cancelled():
                report.cancelled = True
                return
            if len(page) < self.page_size:
                return

    def _apply_page(self, page, target, stats, dry_run, report, progress) -> None:
        self.store.begin()
        try:
            for record in page:
                outcome = self._handle(record, target, dry_run, progress)
                stats.record(outcome)
                if outcome.kind is OutcomeKind.REPAIRED:
                    report.repaired += 1
                elif outcome.kind is OutcomeKind.LISTED:
                    report.listed += 1
                else:
                    report.skipped += 1
                progress.advance(record.path)
            self.store.commit()
        except CommitFailed as e:
            self.store.rollback()
            logger.error("Page commit failed for %s at %s: %s", target.user_id, target.root, e)
            raise
        except BaseException:
            self.store.rollback()
            raise

    def _handle(self, record: StaleFileRecord, target: Target, dry_run: bool, progress) -> RepairOutcome:
        if dry_run:
            progress.write(record.path)
            return RepairOutcome(OutcomeKind.LISTED, record.path)

        try:
            storage = self.store.storage_for(record.storage_id)
            if not storage.supports_mtime_write():
                reason = f"{storage.backend} storage does not support mtime writes"
                progress.write(f"⏭️  Skipping {record.path}: {reason}")
                logger.info("Skipping %s: %s", record.path, reason)
                return RepairOutcome(OutcomeKind.SKIPPED, record.path, reason)
            self.store.touch(record)
        except Forbidden as e:
            progress.write(f"❌ Home storage for user {target.user_id} not writable: {e}", err=True)
            progress.write(
                "Make sure you're running the repair only as the user that owns the data directory",
                err=True,
            )
            logger.warning("Forbidden: %s", e)
            return RepairOutcome(OutcomeKind.SKIPPED, record.path, "forbidden")
        except NotFound as e:
            progress.write(f"❌ Path not found: {e}", err=True)
            logger.warning("Path not found: %s", e)
            return RepairOutcome(OutcomeKind.SKIPPED, record.path, "not found")
        except Unexpected as e:
            progress.write(f"❌ Exception during repair of {record.path}: {e}", err=True)
            logger.error("Exception during repair of %s: %s\n%s", record.path, e, e.detail)
            return RepairOutcome(OutcomeKind.SKIPPED, record.path, str(e))

        logger.debug("Repaired %s (was %s)", record.path, record.mtime)
        return RepairOutcome(OutcomeKind.REPAIRED, record.path)
