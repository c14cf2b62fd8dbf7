"""Tracked item (cursor) store.

Persists, per Plaid item, the access token and the last durable
/transactions/sync cursor. A NULL cursor means the item has never completed a
sync; it is never stored as an empty string.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from ..errors import ItemNotFoundError
from .database import Database

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackedItem:
    """One linked Plaid item."""

    item_id: str
    access_token: str
    cursor: str | None
    institution_name: str | None = None
    updated_at: datetime | None = None


class ItemStore:
    """Read and advance item cursors."""

    def __init__(self, db: Database):
        self.db = db

    def add_item(
        self,
        item_id: str,
        access_token: str,
        institution_name: str | None = None,
    ) -> TrackedItem:
        """Register an item, or replace the access token of an existing one.

        The cursor of an existing item is preserved.
        """
        with self.db.cursor() as cur:
            cur.execute(
                """
                INSERT INTO items (item_id, access_token, institution_name)
                VALUES (?, ?, ?)
                ON CONFLICT (item_id) DO UPDATE SET
                    access_token = excluded.access_token,
                    institution_name = coalesce(excluded.institution_name, institution_name),
                    updated_at = now()
                """,
                [item_id, access_token, institution_name],
            )
        logger.info(f"Registered item {item_id}")
        return self.get_item(item_id)

    def get_item(self, item_id: str) -> TrackedItem:
        """Load an item.

        Raises:
            ItemNotFoundError: If no item has this id
        """
        with self.db.cursor() as cur:
            row = cur.execute(
                """
                SELECT item_id, access_token, transactions_cursor, institution_name, updated_at
                FROM items
                WHERE item_id = ?
                """,
                [item_id],
            ).fetchone()

        if row is None:
            raise ItemNotFoundError(item_id)

        return TrackedItem(
            item_id=row[0],
            access_token=row[1],
            cursor=row[2],
            institution_name=row[3],
            updated_at=row[4],
        )

    def set_cursor(self, item_id: str, cursor: str | None) -> None:
        """Persist the cursor reached by a successful cycle.

        Raises:
            ItemNotFoundError: If no item has this id
        """
        with self.db.cursor() as cur:
            updated = cur.execute(
                """
                UPDATE items
                SET transactions_cursor = ?, updated_at = current_timestamp
                WHERE item_id = ?
                RETURNING item_id
                """,
                [cursor, item_id],
            ).fetchall()

        if not updated:
            raise ItemNotFoundError(item_id)
        logger.debug(f"Advanced cursor for item {item_id}")

    def list_item_ids(self) -> list[str]:
        """Return all item ids in registration order."""
        with self.db.cursor() as cur:
            rows = cur.execute(
                "SELECT item_id FROM items ORDER BY created_at, item_id"
            ).fetchall()
        return [row[0] for row in rows]

    def list_items(self) -> list[TrackedItem]:
        """Return every tracked item."""
        return [self.get_item(item_id) for item_id in self.list_item_ids()]
