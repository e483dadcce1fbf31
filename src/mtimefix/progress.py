"""Progress display for a target's repair pass."""

import sys
from typing import Optional

import click
from tqdm import tqdm


class RepairProgress:
    """tqdm bar over one target's stale entries.

    Example:
        with RepairProgress(total=250) as progress:
            for record in page:
                progress.advance(record.path)

    Lines written through `write()` go above the bar instead of through it.
    """

    def __init__(self, total: int, prefix: str = "🛠  Repairing", unit: str = "files", enabled: Optional[bool] = None):
        if enabled is None:
            enabled = sys.stdout.isatty()
        self.enabled = enabled
        self.bar = None
        if self.enabled:
            self.bar = tqdm(total=total, desc=prefix, unit=unit, leave=False, dynamic_ncols=True)

    def advance(self, path: Optional[str] = None, n: int = 1) -> None:
        if self.bar is None:
            return
        if path is not None:
            self.bar.set_postfix_str(path, refresh=False)
        self.bar.update(n)

    def write(self, line: str, err: bool = False) -> None:
        if self.bar is None:
            click.echo(line, err=err)
            return
        tqdm.write(line, file=sys.stderr if err else sys.stdout)

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
