"""Database commands for txsync CLI."""

import logging
from pathlib import Path

import typer

from txsync.config import get_settings
from txsync.storage.database import Database

app = typer.Typer(help="Database management commands")
logger = logging.getLogger(__name__)


def open_database(path: Path | None = None) -> Database:
    """Open the configured database with its schema in place.

    Args:
        path: Overrides ``database.path`` from the settings

    Returns:
        Database: Open handle; the caller closes it
    """
    settings = get_settings()
    db = Database(
        path or settings.database.path, create_dirs=settings.database.create_dirs
    )
    try:
        db.create_tables()
    except Exception:
        db.close()
        raise
    return db


@app.command("init")
def init_db(
    database: Path | None = typer.Option(
        None,
        "--database",
        "-d",
        help="Path to DuckDB database file (default: settings)",
    ),
) -> None:
    """Create the items, accounts and transactions tables."""
    database = database or get_settings().database.path
    try:
        with open_database(database):
            pass
    except Exception as e:
        logger.error(f"❌ Failed to initialize database {database}: {e}")
        raise typer.Exit(1) from e

    logger.info(f"✅ Database ready: {database}")
