"""Exception hierarchy for the sync engine.

Page-level failures (``ProviderError`` and subclasses) are recovered by cursor
rollback. Record-level failures (``UnresolvedAccountError``,
``StorageWriteError``, ``MalformedRecordError``) are isolated to the record and
reported, never allowed to abort sibling records.
"""


class SyncError(Exception):
    """Base class for all txsync errors."""


class ItemNotFoundError(SyncError):
    """Raised when a tracked item id is not present in the item store."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found in the database")


class ProviderError(SyncError):
    """Raised when a Plaid API call fails and retrying will not help."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status: int | None = None,
    ):
        self.error_code = error_code
        self.status = status
        super().__init__(message)


class TransientNetworkError(ProviderError):
    """Timeout, connection failure, rate limit or 5xx. Safe to retry later."""


class PaginationMutationError(ProviderError):
    """The change feed was mutated mid-pagination; restart from the original cursor."""


class UnresolvedAccountError(SyncError):
    """Raised when a transaction references an account not known locally."""

    def __init__(self, plaid_account_id: str):
        self.plaid_account_id = plaid_account_id
        super().__init__(f"No local account for Plaid account {plaid_account_id}")


class StorageWriteError(SyncError):
    """Raised when a single-record insert, update or delete fails."""

    def __init__(self, transaction_id: str, operation: str, cause: Exception):
        self.transaction_id = transaction_id
        self.operation = operation
        super().__init__(f"Failed to {operation} transaction {transaction_id}: {cause}")


class MalformedRecordError(SyncError):
    """Raised when a provider record fails schema validation."""

    def __init__(self, kind: str, record_id: str | None, detail: str):
        self.kind = kind
        self.record_id = record_id
        self.detail = detail
        label = record_id or "<unknown id>"
        super().__init__(f"Malformed {kind} record {label}: {detail}")
