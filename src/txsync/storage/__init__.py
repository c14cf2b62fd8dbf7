"""DuckDB-backed stores for items, accounts and transactions."""

from .accounts import AccountStore
from .database import Database
from .items import ItemStore, TrackedItem
from .transactions import TransactionRecord, TransactionStore

__all__ = [
    "AccountStore",
    "Database",
    "ItemStore",
    "TrackedItem",
    "TransactionRecord",
    "TransactionStore",
]
