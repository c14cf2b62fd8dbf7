"""Change-set fetcher for Plaid's /transactions/sync cursor protocol.

Pages are requested until the feed reports ``has_more=False``. The cursor only
moves forward when every page succeeded; on any page failure the change-set
keeps the item's original cursor so the next cycle re-fetches from the last
durable position.
"""

import logging
from typing import Any

from ..connectors.plaid_client import ChangeFeedClient
from ..connectors.plaid_schemas import (
    RemovedTransactionSchema,
    TransactionSchema,
    page_records,
    parse_removed,
    parse_sync_page,
    parse_transaction,
)
from ..errors import MalformedRecordError, PaginationMutationError
from ..storage.items import ItemStore, TrackedItem
from .models import ChangeSet

logger = logging.getLogger(__name__)


class ChangeSetFetcher:
    """Pull every pending page of an item's change feed."""

    def __init__(
        self,
        client: ChangeFeedClient,
        items: ItemStore,
        page_size: int = 100,
        max_pagination_restarts: int = 3,
    ):
        """Initialize the fetcher.

        Args:
            client: Provider client exposing ``transactions_sync``
            items: Cursor store
            page_size: Transactions requested per page
            max_pagination_restarts: Restarts allowed when the feed mutates mid-pagination
        """
        self.client = client
        self.items = items
        self.page_size = page_size
        self.max_pagination_restarts = max_pagination_restarts

    def fetch_change_set(self, item_id: str) -> ChangeSet:
        """Fetch all changes since the item's last durable cursor.

        Args:
            item_id: Tracked item id

        Returns:
            ChangeSet: ``complete`` is False when a page failed, in which case
            ``cursor`` is the original cursor

        Raises:
            ItemNotFoundError: If the item is unknown
        """
        item = self.items.get_item(item_id)
        restarts = 0

        while True:
            change_set = ChangeSet(
                item_id=item.item_id,
                access_token=item.access_token,
                cursor=item.cursor,
            )
            try:
                self._fetch_pages(item, change_set)
            except PaginationMutationError as e:
                if restarts < self.max_pagination_restarts:
                    restarts += 1
                    logger.warning(
                        f"Change feed for item {item_id} mutated during pagination; "
                        f"restarting from last cursor ({restarts}/{self.max_pagination_restarts})"
                    )
                    continue
                self._abort(item, change_set, e)
            except Exception as e:
                self._abort(item, change_set, e)
            return change_set

    def _fetch_pages(self, item: TrackedItem, change_set: ChangeSet) -> None:
        cursor = item.cursor
        has_more = True

        while has_more:
            response = self.client.transactions_sync(
                item.access_token, cursor, self.page_size
            )
            page = parse_sync_page(response)

            # Validate the whole page before accumulating so pages are all-or-nothing
            added = self._parse_transactions(response, "added", change_set)
            modified = self._parse_transactions(response, "modified", change_set)
            removed = self._parse_removed(response, change_set)

            change_set.added.extend(added)
            change_set.modified.extend(modified)
            change_set.removed.extend(removed)
            change_set.pages += 1

            cursor = page.next_cursor
            has_more = page.has_more
            logger.debug(
                f"Item {item.item_id} page {change_set.pages}: "
                f"+{len(added)} ~{len(modified)} -{len(removed)} has_more={has_more}"
            )

        change_set.cursor = cursor
        logger.info(
            f"Fetched {change_set.size} changes for item {item.item_id} "
            f"in {change_set.pages} page(s)"
        )

    @staticmethod
    def _parse_transactions(
        response: Any, field: str, change_set: ChangeSet
    ) -> list[TransactionSchema]:
        parsed: list[TransactionSchema] = []
        for raw in page_records(response, field):
            try:
                parsed.append(parse_transaction(raw))
            except MalformedRecordError as e:
                logger.warning(f"Skipping {field} record: {e}")
                change_set.malformed.append(e)
        return parsed

    @staticmethod
    def _parse_removed(
        response: Any, change_set: ChangeSet
    ) -> list[RemovedTransactionSchema]:
        parsed: list[RemovedTransactionSchema] = []
        for raw in page_records(response, "removed"):
            try:
                parsed.append(parse_removed(raw))
            except MalformedRecordError as e:
                logger.warning(f"Skipping removed record: {e}")
                change_set.malformed.append(e)
        return parsed

    @staticmethod
    def _abort(item: TrackedItem, change_set: ChangeSet, error: Exception) -> None:
        logger.error(
            f"❌ Error fetching transactions for item {item.item_id} after "
            f"{change_set.pages} page(s): {error}"
        )
        change_set.cursor = item.cursor
        change_set.complete = False
        change_set.error = error
