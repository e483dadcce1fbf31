"""
cancel.py — Cooperative cancellation for long repair runs.

The token is only polled at page and target boundaries; a signal never
interrupts a page that is already being applied.
"""

import logging
import signal
import threading
from contextlib import contextmanager

import click

logger = logging.getLogger("mtimefix.cancel")


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


@contextmanager
def interrupt_cancels(token: CancellationToken, signals=(signal.SIGINT, signal.SIGTERM)):
    """
    Turn SIGINT/SIGTERM into a cancellation request while the block runs.

    Repeated signals only repeat the warning; the run still stops at the next
    page boundary with its transaction committed.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def handler(signum, frame):
        if token.is_cancelled():
            logger.warning("Received signal %s again, still finishing the current page", signum)
            click.echo("⚠️  Already stopping; waiting for the current page to commit", err=True)
            return
        token.cancel()
        logger.warning("Received signal %s, stopping after the current page", signum)
        click.echo("⚠️  Interrupted by user; finishing the current page", err=True)

    previous = {}
    for sig in signals:
        previous[sig] = signal.signal(sig, handler)
    try:
        yield token
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)
