"""Tracked item commands for txsync CLI.

Items are linked outside txsync (Plaid Link); these commands only record an
item's id and access token so it can be synced.
"""

import logging

import typer

from txsync.cli.commands.db import open_database
from txsync.storage.items import ItemStore

app = typer.Typer(help="Tracked item commands")
logger = logging.getLogger(__name__)


@app.command("add")
def add_item(
    item_id: str = typer.Argument(..., help="Plaid item id"),
    access_token: str = typer.Option(
        ..., "--access-token", "-t", help="Plaid access token for the item"
    ),
    institution: str | None = typer.Option(
        None, "--institution", help="Institution display name"
    ),
) -> None:
    """Register an item, or replace its access token. The cursor is kept."""
    try:
        with open_database() as db:
            ItemStore(db).add_item(item_id, access_token, institution)
    except Exception as e:
        logger.error(f"❌ Failed to add item {item_id}: {e}")
        raise typer.Exit(1) from e

    typer.echo(f"Added item {item_id}")


@app.command("list")
def list_items() -> None:
    """List tracked items and their sync state."""
    try:
        with open_database() as db:
            tracked = ItemStore(db).list_items()
    except Exception as e:
        logger.error(f"❌ Failed to list items: {e}")
        raise typer.Exit(1) from e

    if not tracked:
        typer.echo("No items tracked. Add one with: txsync items add ITEM_ID -t TOKEN")
        return

    for item in tracked:
        state = "never synced" if item.cursor is None else f"last sync {item.updated_at}"
        typer.echo(f"{item.item_id}\t{item.institution_name or '-'}\t{state}")
