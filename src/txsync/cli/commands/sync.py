"""Sync commands for txsync CLI.

This module runs the sync orchestrator for all or selected tracked items and
reports per-item counts.
"""

import logging

import typer

from txsync.config import get_settings
from txsync.logging import setup_logging
from txsync.sync.orchestrator import create_orchestrator

app = typer.Typer(help="Sync transactions from Plaid")
logger = logging.getLogger(__name__)


@app.command("run")
def sync_run(
    item: list[str] | None = typer.Option(
        None, "--item", "-i", help="Item id to sync (repeatable); default all"
    ),
    workers: int | None = typer.Option(
        None, "--workers", "-w", min=1, help="Items synced concurrently"
    ),
    upsert_only: bool = typer.Option(
        False,
        "--upsert-only",
        help="Skip pending/posted reconciliation and upsert by transaction id",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """Sync transactions for tracked items.

    Each item is synced from its last durable cursor. The cursor only advances
    after the item's change-set has been applied.

    Args:
        item: Item ids to sync; all tracked items when omitted
        workers: Concurrency limit override
        upsert_only: Use the plain upsert policy for this run
        verbose: Enable debug level logging
    """
    setup_logging(cli_mode=True, verbose=verbose)

    try:
        settings = get_settings()
        if upsert_only:
            settings = settings.model_copy(
                update={
                    "sync": settings.sync.model_copy(
                        update={"duplicate_detection": False}
                    )
                }
            )

        orchestrator = create_orchestrator(settings)
        try:
            report = orchestrator.sync_items(item or None, max_workers=workers)
        finally:
            orchestrator.db.close()
    except Exception as e:
        logger.error(f"❌ Sync failed: {e}")
        raise typer.Exit(1) from e

    for result in report.results:
        status = "✅" if result.ok else "❌"
        typer.echo(
            f"{status} {result.item_id}: added={result.added_count} "
            f"modified={result.modified_count} removed={result.removed_count}"
            + (f" error={result.error}" if result.error else "")
        )
        for failure in result.failures:
            typer.echo(
                f"   ⚠️  {failure.transaction_id or '-'} {failure.error_type}: {failure.reason}"
            )

    logger.info(report.summary())
    if report.failed:
        raise typer.Exit(1)
