"""Main CLI application for txsync.

This module provides the unified entry point for txsync CLI operations,
organizing commands into groups for the database, tracked items, sync runs
and duplicate review.
"""

import logging
from typing import Annotated

import typer

from ..logging import setup_logging
from .commands import db, items, review, sync

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="txsync",
    help="txsync: Incremental Plaid transaction sync into DuckDB",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose debug logging",
        ),
    ] = False,
) -> None:
    """Global options for txsync CLI.

    Examples:
      txsync db init                                   # Create tables
      txsync items add item-123 --access-token access-sandbox-xxx
      txsync sync run                                  # Sync every tracked item
      txsync review duplicates                         # List flagged rows
    """
    setup_logging(cli_mode=True, verbose=verbose)


app.add_typer(db.app, name="db", help="Database management commands")
app.add_typer(items.app, name="items", help="Tracked item commands")
app.add_typer(sync.app, name="sync", help="Sync transactions from Plaid")
app.add_typer(review.app, name="review", help="Review flagged transactions")


def main() -> None:
    """Entry point for the txsync CLI application."""
    app()


if __name__ == "__main__":
    main()
