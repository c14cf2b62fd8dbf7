"""Review commands for transactions flagged as potential duplicates."""

import logging

import polars as pl
import typer

from txsync.cli.commands.db import open_database
from txsync.storage.transactions import TransactionStore

app = typer.Typer(help="Review flagged transactions")
logger = logging.getLogger(__name__)


@app.command("duplicates")
def show_duplicates(
    item: str | None = typer.Option(None, "--item", "-i", help="Restrict to one item"),
    limit: int = typer.Option(50, "--limit", "-n", min=1, help="Rows to display"),
) -> None:
    """Print rows flagged as potential duplicates, newest first."""
    try:
        with open_database() as db:
            frame = TransactionStore(db).retrieve_potential_duplicates(item)
    except Exception as e:
        logger.error(f"❌ Failed to read transactions: {e}")
        raise typer.Exit(1) from e

    if frame.is_empty():
        typer.echo("No potential duplicates flagged")
        return

    with pl.Config(tbl_rows=limit):
        typer.echo(str(frame.head(limit)))
    typer.echo(f"{frame.height} potential duplicate(s)")
