# src/mtimefix/cli.py

import click

from mtimefix import __version__
from mtimefix.cancel import CancellationToken, interrupt_cancels
from mtimefix.catalog import scan_user
from mtimefix.engine import RepairEngine
from mtimefix.errors import NoTargets, NotFound
from mtimefix.index import FileIndex
from mtimefix.logs import emit_run_header, setup_logging
from mtimefix.model import RunStats, connect_db
from mtimefix.runner import NO_TARGETS_MESSAGE, RunController, render_stats, resolve_targets
from mtimefix.store import BACKENDS, MetadataStore
from mtimefix.users import UserDirectory
from mtimefix.utils import find_data_dir, find_db_path

DB_HELP = "SQLite catalog path (default: $MTIMEFIX_DB or ~/.mtimefix/catalog.db)."


@click.group()
@click.version_option(__version__)
def cli():
    """mtimefix — find and repair implausible file modification times"""
    emit_run_header(setup_logging())


@cli.command("repair-mtime")
@click.argument("user_ids", nargs=-1)
@click.option("--path", "-p", default=None,
              help="Limit repair to this path, eg. --path=/alice/files/Music. The user is taken "
                   "from the path; USER_IDS and --all are ignored.")
@click.option("--all", "all_users", is_flag=True, help="Repair all files of all known users.")
@click.option("--dry-run", is_flag=True, help="List files instead of repairing them.")
@click.option("--db", type=click.Path(dir_okay=False), default=None, help=DB_HELP)
@click.option("--verbose", "-v", is_flag=True, help="Per-target summaries and debug logging.")
@click.option("--progress/--no-progress", default=None,
              help="Show a progress bar (default: only on a terminal).")
@click.pass_context
def repair_mtime_cmd(ctx, user_ids, path, all_users, dry_run, db, verbose, progress):
    """Repair files' mtime for the given user(s)."""
    if not (path or all_users or user_ids):
        click.echo(f"❌ {NO_TARGETS_MESSAGE}", err=True)
        ctx.exit(1)
    if verbose:
        setup_logging(verbose=True)

    db_path = find_db_path(db)
    conn = connect_db(db_path)
    index_conn = connect_db(db_path)
    try:
        users = UserDirectory(conn)
        try:
            targets = resolve_targets(users, path=path, all_users=all_users, user_ids=user_ids)
        except (NoTargets, ValueError) as e:
            click.echo(f"❌ {e}", err=True)
            ctx.exit(1)

        if dry_run:
            click.echo("🧪 Dry run enabled – no changes will be made.")

        token = CancellationToken()
        engine = RepairEngine(FileIndex(index_conn), MetadataStore(conn), token, show_progress=progress)
        controller = RunController(users, engine, token, verbose=verbose)
        stats = RunStats()
        try:
            with interrupt_cancels(token):
                controller.run(targets, dry_run=dry_run, stats=stats)
        finally:
            render_stats(stats)
    finally:
        index_conn.close()
        conn.close()


@cli.command("scan")
@click.argument("user_ids", nargs=-1, required=True)
@click.option("--data-dir", type=click.Path(file_okay=False), default=None,
              help="Directory holding one folder per user (default: $MTIMEFIX_DATA_DIR or ~/.mtimefix/data).")
@click.option("--backend", type=click.Choice(sorted(BACKENDS)), default="local", show_default=True,
              help="Storage backend the data directory is served from.")
@click.option("--db", type=click.Path(dir_okay=False), default=None, help=DB_HELP)
@click.pass_context
def scan_cmd(ctx, user_ids, data_dir, backend, db):
    """Record every file of the given user(s) in the catalog."""
    data_path = find_data_dir(data_dir)
    conn = connect_db(find_db_path(db))
    scanned = 0
    try:
        for user_id in user_ids:
            try:
                stats = scan_user(conn, data_path, user_id, backend=backend)
            except (NotFound, ValueError) as e:
                click.echo(f"❌ {e}", err=True)
                continue
            scanned += 1
            click.echo(
                f"📦 {user_id}: {stats.files:,} files, {stats.directories:,} directories"
                f" ({stats.removed} removed, {stats.errors} errors)"
            )
    finally:
        conn.close()
    if scanned == 0:
        ctx.exit(1)


@cli.command("users")
@click.option("--db", type=click.Path(dir_okay=False), default=None, help=DB_HELP)
def users_cmd(db):
    """List known users and how many catalog entries each has."""
    conn = connect_db(find_db_path(db))
    try:
        rows = UserDirectory(conn).entry_counts()
    finally:
        conn.close()
    if not rows:
        click.echo("No users registered")
        return
    for uid, entries in rows:
        click.echo(f"{uid}\t{entries:,}")


if __name__ == "__main__":
    cli()
