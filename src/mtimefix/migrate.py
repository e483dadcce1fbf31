import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger("mtimefix.migrate")


def ensure_migration_table(conn):
    conn.execute("""
    CREATE TABLE IF NOT EXISTS schema_migrations (
        filename TEXT PRIMARY KEY,
        applied_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """)
    conn.commit()


def get_applied_migrations(conn):
    ensure_migration_table(conn)
    return {row["filename"] for row in conn.execute("SELECT filename FROM schema_migrations")}


def apply_migrations(db_path: Path, migrations_path: Path):
    """Apply every pending *.sql file in name order. Returns the names applied."""
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    applied = get_applied_migrations(conn)
    newly_applied = []

    try:
        for sql_file in sorted(migrations_path.glob("*.sql")):
            name = sql_file.name
            if name in applied:
                continue

            logger.info("Applying migration: %s", name)
            try:
                conn.executescript(sql_file.read_text())
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                if "duplicate column name" not in msg and "already exists" not in msg:
                    logger.error("Migration failed: %s: %s", name, e)
                    raise
                logger.warning("Skipping migration %s (already applied based on error: %s)", name, e)
            conn.execute(
                "INSERT OR IGNORE INTO schema_migrations (filename, applied_at) VALUES (?, ?)",
                (name, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
            newly_applied.append(name)
    finally:
        conn.close()
    return newly_applied
