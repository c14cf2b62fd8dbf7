"""Shared pytest fixtures for txsync tests.

Provides a temporary DuckDB database with the txsync schema, the three stores,
a fake Plaid change feed and factories for Plaid-shaped payloads.
"""

import threading
from collections.abc import Callable, Generator
from decimal import Decimal
from typing import Any

import pytest

from txsync.config import SyncConfig, clear_settings_cache
from txsync.connectors.plaid_schemas import AccountSchema
from txsync.storage.accounts import AccountStore
from txsync.storage.database import Database
from txsync.storage.items import ItemStore
from txsync.storage.transactions import TransactionStore

ITEM_ID = "item_1"
ACCESS_TOKEN = "access-sandbox-1"
ACCOUNT_ID = "acc_1"


class FakeChangeFeed:
    """In-memory stand-in for the Plaid client.

    Pages are queued per access token; an Exception in the queue is raised
    instead of returned. Every transactions_sync call records the cursor it
    was given.
    """

    def __init__(
        self,
        pages: dict[str, list[Any]] | None = None,
        accounts: dict[str, list[dict[str, Any]]] | None = None,
    ):
        self.pages = {token: list(queue) for token, queue in (pages or {}).items()}
        self.accounts = accounts or {}
        self.cursors: dict[str, list[str | None]] = {}
        self.counts: list[int] = []
        self._lock = threading.Lock()

    def transactions_sync(self, access_token: str, cursor: str | None, count: int) -> Any:
        with self._lock:
            self.cursors.setdefault(access_token, []).append(cursor)
            self.counts.append(count)
            page = self.pages[access_token].pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    def accounts_get(self, access_token: str) -> Any:
        accounts = self.accounts.get(access_token)
        if isinstance(accounts, Exception):
            raise accounts
        return {"accounts": accounts or [], "request_id": "req"}


def make_transaction(
    transaction_id: str,
    amount: str | float = "10.00",
    date: str = "2024-01-05",
    pending: bool = False,
    account_id: str = ACCOUNT_ID,
    **extra: Any,
) -> dict[str, Any]:
    """Build a Plaid-shaped transaction payload."""
    payload: dict[str, Any] = {
        "transaction_id": transaction_id,
        "account_id": account_id,
        "amount": amount,
        "iso_currency_code": "USD",
        "unofficial_currency_code": None,
        "date": date,
        "name": f"Merchant {transaction_id}",
        "personal_finance_category": {"primary": "FOOD_AND_DRINK", "detailed": "x"},
        "transaction_type": "place",
        "pending": pending,
        "account_owner": None,
    }
    payload.update(extra)
    return payload


def make_page(
    added: list[dict[str, Any]] | None = None,
    modified: list[dict[str, Any]] | None = None,
    removed: list[str] | None = None,
    has_more: bool = False,
    next_cursor: str = "cursor",
) -> dict[str, Any]:
    """Build a /transactions/sync response page."""
    return {
        "added": added or [],
        "modified": modified or [],
        "removed": [{"transaction_id": t} for t in (removed or [])],
        "has_more": has_more,
        "next_cursor": next_cursor,
        "request_id": "req",
    }


def make_account(account_id: str = ACCOUNT_ID, name: str = "Checking") -> dict[str, Any]:
    """Build a Plaid-shaped account payload."""
    return {
        "account_id": account_id,
        "balances": {"available": 100.0, "current": 110.0, "iso_currency_code": "USD"},
        "mask": "0000",
        "name": name,
        "official_name": f"{name} Account",
        "subtype": "checking",
        "type": "depository",
    }


@pytest.fixture(autouse=True)
def clean_settings_state() -> Generator[None, None, None]:
    """Clear the settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def db(tmp_path: Any) -> Generator[Database, None, None]:
    """Temporary DuckDB database with the txsync schema."""
    database = Database(tmp_path / "test.duckdb")
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def item_store(db: Database) -> ItemStore:
    return ItemStore(db)


@pytest.fixture
def account_store(db: Database) -> AccountStore:
    return AccountStore(db)


@pytest.fixture
def transaction_store(db: Database) -> TransactionStore:
    return TransactionStore(db)


@pytest.fixture
def local_account_id(item_store: ItemStore, account_store: AccountStore) -> int:
    """Register ITEM_ID with one account and return its local account id."""
    item_store.add_item(ITEM_ID, ACCESS_TOKEN, "Test Bank")
    account_store.upsert_accounts(ITEM_ID, [AccountSchema.model_validate(make_account())])
    return account_store.resolve_local_account_id(ACCOUNT_ID)


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(
        page_size=100,
        duplicate_detection=True,
        duplicate_amount_tolerance=Decimal("1.00"),
        max_workers=2,
    )


@pytest.fixture
def txn() -> Callable[..., dict[str, Any]]:
    """Factory for Plaid transaction payloads."""
    return make_transaction


@pytest.fixture
def page() -> Callable[..., dict[str, Any]]:
    """Factory for /transactions/sync pages."""
    return make_page


@pytest.fixture
def account() -> Callable[..., dict[str, Any]]:
    """Factory for Plaid account payloads."""
    return make_account


@pytest.fixture
def feed_factory() -> Callable[..., FakeChangeFeed]:
    """Factory for fake change feeds."""
    return FakeChangeFeed
