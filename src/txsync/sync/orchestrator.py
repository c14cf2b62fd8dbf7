"""Sync orchestrator: one fetch, reconcile and cursor-advance cycle per item.

The cursor is persisted last, only after every mutation of the cycle has been
attempted. A crash before that point makes the next cycle re-fetch the same
pages, which is safe because reconciliation and deletion are idempotent.

Items are synced concurrently on a bounded thread pool; cycles for the same
item are serialized by a per-item lock.
"""

import logging
import threading
import weakref
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from ..config import SyncConfig, TxSyncSettings, get_settings
from ..connectors.plaid_client import ChangeFeedClient, PlaidClient
from ..connectors.plaid_schemas import AccountSchema, page_records, parse_account
from ..errors import MalformedRecordError
from ..storage.accounts import AccountStore
from ..storage.database import Database
from ..storage.items import ItemStore
from ..storage.transactions import TransactionStore
from .fetcher import ChangeSetFetcher
from .models import ReconcileResult, RecordFailure, SyncReport, SyncResult
from .reconcile import TransactionReconciler

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Drive sync cycles for tracked items."""

    def __init__(
        self,
        client: ChangeFeedClient,
        db: Database,
        config: SyncConfig | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            client: Provider client for change-feed and account calls
            db: Database holding items, accounts and transactions
            config: Sync engine configuration; defaults to application settings
        """
        self.client = client
        self.db = db
        self.config = config or get_settings().sync
        self.items = ItemStore(db)
        self.accounts = AccountStore(db)
        self.transactions = TransactionStore(db)
        self.fetcher = ChangeSetFetcher(
            client,
            self.items,
            page_size=self.config.page_size,
            max_pagination_restarts=self.config.max_pagination_restarts,
        )
        self.reconciler = TransactionReconciler.from_config(
            self.accounts, self.transactions, self.config
        )

        # Entries vanish once no cycle holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    def _item_lock(self, item_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(item_id, threading.Lock())

    def sync_item(self, item_id: str) -> SyncResult:
        """Run one full cycle for an item.

        A failed change-feed fetch is reported on the result and leaves the
        cursor untouched.

        Returns:
            SyncResult: Counts, record failures and whether the cursor advanced

        Raises:
            ItemNotFoundError: If the item is unknown
            ProviderError: If the account list cannot be fetched
        """
        with self._item_lock(item_id):
            return self._run_cycle(item_id)

    def _run_cycle(self, item_id: str) -> SyncResult:
        logger.info(f"🔄 Syncing transactions for item {item_id}")
        result = SyncResult(item_id=item_id)

        change_set = self.fetcher.fetch_change_set(item_id)
        result.cursor = change_set.cursor
        result.failures.extend(
            RecordFailure.from_malformed(e) for e in change_set.malformed
        )

        if not change_set.complete:
            # Accumulated records are advisory; the next cycle re-fetches them
            result.error = f"Change feed fetch failed: {change_set.error}"
            result.error_type = type(change_set.error).__name__
            return result

        accounts = self._fetch_accounts(change_set.access_token, result)
        self.accounts.upsert_accounts(item_id, accounts)

        reconcile = ReconcileResult()
        self.reconciler.reconcile([*change_set.added, *change_set.modified], reconcile)
        self.reconciler.delete_removed(change_set.removed, reconcile)
        result.reconcile = reconcile
        result.failures.extend(reconcile.failures)

        result.added_count = len(change_set.added)
        result.modified_count = len(change_set.modified)
        result.removed_count = len(change_set.removed)

        write_failures = reconcile.write_failures
        if write_failures and not self.config.advance_cursor_on_write_failure:
            result.cursor = self.items.get_item(item_id).cursor
            result.error = (
                f"{len(write_failures)} record write(s) failed; cursor not advanced"
            )
            result.error_type = "StorageWriteError"
            logger.error(f"❌ Item {item_id}: {result.error}")
            return result

        self.items.set_cursor(item_id, change_set.cursor)
        result.cursor_advanced = True

        logger.info(
            f"✅ Item {item_id}: {result.added_count} added, "
            f"{result.modified_count} modified, {result.removed_count} removed "
            f"({reconcile.promoted} promoted, {reconcile.flagged_duplicates} flagged)"
        )
        return result

    def _fetch_accounts(self, access_token: str, result: SyncResult) -> list[AccountSchema]:
        response: Any = self.client.accounts_get(access_token)
        accounts: list[AccountSchema] = []
        for raw in page_records(response, "accounts"):
            try:
                accounts.append(parse_account(raw))
            except MalformedRecordError as e:
                logger.warning(f"Skipping account: {e}")
                result.failures.append(RecordFailure.from_malformed(e))
        return accounts

    def sync_items(
        self,
        item_ids: Iterable[str] | None = None,
        max_workers: int | None = None,
    ) -> SyncReport:
        """Sync several items; one item's failure never stops the others.

        Args:
            item_ids: Items to sync; all tracked items when None
            max_workers: Concurrency limit; defaults to ``sync.max_workers``

        Returns:
            SyncReport: One result per requested item, in request order
        """
        ids = list(item_ids) if item_ids is not None else self.items.list_item_ids()
        if not ids:
            logger.info("No items found to sync transactions")
            return SyncReport()

        workers = min(max_workers or self.config.max_workers, len(ids))
        logger.info(f"Syncing {len(ids)} item(s) with {workers} worker(s)")

        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="txsync"
        ) as executor:
            futures = [executor.submit(self._sync_item_safely, i) for i in ids]
            report = SyncReport(results=[f.result() for f in futures])

        logger.info(report.summary())
        return report

    def _sync_item_safely(self, item_id: str) -> SyncResult:
        try:
            return self.sync_item(item_id)
        except Exception as e:
            logger.error(f"❌ Failed to sync item {item_id}: {e}")
            return SyncResult(
                item_id=item_id, error=str(e), error_type=type(e).__name__
            )


def create_orchestrator(
    settings: TxSyncSettings | None = None,
    client: ChangeFeedClient | None = None,
    db: Database | None = None,
) -> SyncOrchestrator:
    """Build an orchestrator from application settings.

    Args:
        settings: Settings to use; defaults to ``get_settings()``
        client: Provider client; a ``PlaidClient`` is created when omitted
        db: Database; opened at ``settings.database.path`` when omitted
    """
    settings = settings or get_settings()
    if client is None:
        settings.validate_required_credentials()
        client = PlaidClient(settings.plaid)
    if db is None:
        db = Database(settings.database.path, create_dirs=settings.database.create_dirs)
        db.create_tables()
    return SyncOrchestrator(client, db, settings.sync)
