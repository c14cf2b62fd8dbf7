"""In-memory results passed between the fetcher, reconciler and orchestrator."""

from dataclasses import dataclass, field
from typing import Any

from ..connectors.plaid_schemas import RemovedTransactionSchema, TransactionSchema
from ..errors import MalformedRecordError, StorageWriteError


@dataclass
class ChangeSet:
    """One cycle's aggregated added/modified/removed records.

    ``cursor`` is the cursor reached after the last page when ``complete`` is
    true, and the item's original cursor otherwise. Records of an incomplete
    change-set are advisory only.
    """

    item_id: str
    access_token: str
    cursor: str | None
    added: list[TransactionSchema] = field(default_factory=list)
    modified: list[TransactionSchema] = field(default_factory=list)
    removed: list[RemovedTransactionSchema] = field(default_factory=list)
    malformed: list[MalformedRecordError] = field(default_factory=list)
    pages: int = 0
    complete: bool = True
    error: Exception | None = None

    @property
    def size(self) -> int:
        return len(self.added) + len(self.modified) + len(self.removed)


@dataclass(frozen=True)
class RecordFailure:
    """A single record that could not be applied."""

    transaction_id: str | None
    error_type: str
    reason: str

    @classmethod
    def from_error(cls, transaction_id: str | None, error: Exception) -> "RecordFailure":
        return cls(
            transaction_id=transaction_id,
            error_type=type(error).__name__,
            reason=str(error),
        )

    @classmethod
    def from_malformed(cls, error: MalformedRecordError) -> "RecordFailure":
        return cls.from_error(error.record_id, error)


@dataclass
class ReconcileResult:
    """Counts of storage mutations applied for one change-set."""

    inserted: int = 0
    updated: int = 0
    promoted: int = 0
    flagged_duplicates: int = 0
    upserted: int = 0
    deleted: int = 0
    already_absent: int = 0
    failures: list[RecordFailure] = field(default_factory=list)

    @property
    def write_failures(self) -> list[RecordFailure]:
        """Failures caused by a storage write, as opposed to unusable input."""
        return [
            f for f in self.failures if f.error_type == StorageWriteError.__name__
        ]


@dataclass
class SyncResult:
    """Outcome of one item's sync cycle."""

    item_id: str
    added_count: int = 0
    modified_count: int = 0
    removed_count: int = 0
    cursor: str | None = None
    cursor_advanced: bool = False
    reconcile: ReconcileResult | None = None
    failures: list[RecordFailure] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "added_count": self.added_count,
            "modified_count": self.modified_count,
            "removed_count": self.removed_count,
            "cursor_advanced": self.cursor_advanced,
            "failures": len(self.failures),
            "error": self.error,
        }


@dataclass
class SyncReport:
    """Aggregate of one sync run over several items."""

    results: list[SyncResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[SyncResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[SyncResult]:
        return [r for r in self.results if not r.ok]

    @property
    def added_count(self) -> int:
        return sum(r.added_count for r in self.results)

    @property
    def modified_count(self) -> int:
        return sum(r.modified_count for r in self.results)

    @property
    def removed_count(self) -> int:
        return sum(r.removed_count for r in self.results)

    def summary(self) -> str:
        return (
            f"{len(self.succeeded)}/{len(self.results)} items synced: "
            f"{self.added_count} added, {self.modified_count} modified, "
            f"{self.removed_count} removed"
        )
