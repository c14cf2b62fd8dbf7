"""Reconciliation of incoming transactions against the local store.

Two policies share one engine:

``DUPLICATE_AWARE`` (default) decides per record, in order:

0. A row with the same Plaid transaction id exists: update it in place.
1. No row on the same account and date within the amount tolerance: insert.
2. The best candidate is pending and the incoming record is posted: promote
   the candidate in place to the posted transaction.
3. Otherwise: insert a new row flagged ``potential_duplicate``.

Plaid can briefly report the same purchase as a pending hold and a posted
settlement whose amounts differ by a tip or adjustment. Rule 2 collapses that
pair; rule 3 leaves genuinely separate look-alike transactions for review.

``UPSERT`` writes every record with ``INSERT ... ON CONFLICT DO UPDATE`` keyed
by Plaid transaction id. It is idempotent but does no pending/posted matching.

Every mutation is one single-record write. Record-level problems are recorded
on the result and never stop the rest of the batch.
"""

import logging
from collections.abc import Iterable
from decimal import Decimal
from enum import Enum
from typing import Any

import duckdb

from ..config import SyncConfig
from ..connectors.plaid_schemas import RemovedTransactionSchema, TransactionSchema
from ..errors import StorageWriteError, UnresolvedAccountError
from ..storage.accounts import AccountStore
from ..storage.transactions import TransactionRecord, TransactionStore
from .models import ReconcileResult, RecordFailure

logger = logging.getLogger(__name__)


class ReconciliationPolicy(str, Enum):
    """How incoming records are written."""

    DUPLICATE_AWARE = "duplicate_aware"
    UPSERT = "upsert"


class Outcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    PROMOTED = "promoted"
    FLAGGED_DUPLICATE = "flagged_duplicates"
    UPSERTED = "upserted"


def to_record(txn: TransactionSchema, account_id: int) -> TransactionRecord:
    """Map a validated Plaid transaction onto a transactions row."""
    return TransactionRecord(
        account_id=account_id,
        plaid_transaction_id=txn.transaction_id,
        category=txn.primary_category,
        type=txn.transaction_type,
        name=txn.name,
        amount=txn.amount,
        iso_currency_code=txn.iso_currency_code,
        unofficial_currency_code=txn.unofficial_currency_code,
        date=txn.transaction_date,
        pending=txn.pending,
        account_owner=txn.account_owner,
    )


def promotion_values(record: TransactionRecord) -> dict[str, Any]:
    """Fields copied onto a pending row when its posted counterpart arrives."""
    return {
        "plaid_transaction_id": record.plaid_transaction_id,
        "category": record.category,
        "type": record.type,
        "name": record.name,
        "amount": record.amount,
        "iso_currency_code": record.iso_currency_code,
        "unofficial_currency_code": record.unofficial_currency_code,
        "account_owner": record.account_owner,
        "pending": False,
        "potential_duplicate": False,
    }


class TransactionReconciler:
    """Apply added, modified and removed records to the transaction store."""

    def __init__(
        self,
        accounts: AccountStore,
        transactions: TransactionStore,
        policy: ReconciliationPolicy = ReconciliationPolicy.DUPLICATE_AWARE,
        amount_tolerance: Decimal = Decimal("1.00"),
    ):
        self.accounts = accounts
        self.transactions = transactions
        self.policy = policy
        self.amount_tolerance = amount_tolerance

    @classmethod
    def from_config(
        cls,
        accounts: AccountStore,
        transactions: TransactionStore,
        config: SyncConfig,
    ) -> "TransactionReconciler":
        policy = (
            ReconciliationPolicy.DUPLICATE_AWARE
            if config.duplicate_detection
            else ReconciliationPolicy.UPSERT
        )
        return cls(
            accounts,
            transactions,
            policy=policy,
            amount_tolerance=config.duplicate_amount_tolerance,
        )

    def reconcile(
        self,
        records: Iterable[TransactionSchema],
        result: ReconcileResult | None = None,
    ) -> ReconcileResult:
        """Write added and modified records.

        Args:
            records: Validated transactions, in change-set order
            result: Result to accumulate into; a new one is created if omitted

        Returns:
            ReconcileResult: Mutation counts and per-record failures
        """
        result = result or ReconcileResult()

        for txn in records:
            try:
                account_id = self.accounts.resolve_local_account_id(txn.account_id)
                outcome = self._apply(
                    to_record(txn, account_id), txn.pending_transaction_id
                )
            except UnresolvedAccountError as e:
                logger.warning(f"Skipping transaction {txn.transaction_id}: {e}")
                result.failures.append(RecordFailure.from_error(txn.transaction_id, e))
                continue
            except duckdb.Error as e:
                error = StorageWriteError(txn.transaction_id, "write", e)
                logger.error(f"❌ {error}")
                result.failures.append(RecordFailure.from_error(txn.transaction_id, error))
                continue

            setattr(result, outcome.value, getattr(result, outcome.value) + 1)
            logger.debug(f"{outcome.value}: {txn.name} ({txn.transaction_id})")

        return result

    def delete_removed(
        self,
        removed: Iterable[RemovedTransactionSchema | str],
        result: ReconcileResult | None = None,
    ) -> ReconcileResult:
        """Delete removed transactions by Plaid id. Missing ids are a no-op."""
        result = result or ReconcileResult()

        for entry in removed:
            transaction_id = entry if isinstance(entry, str) else entry.transaction_id
            try:
                found = self.transactions.delete_by_plaid_id(transaction_id)
            except duckdb.Error as e:
                error = StorageWriteError(transaction_id, "delete", e)
                logger.error(f"❌ {error}")
                result.failures.append(RecordFailure.from_error(transaction_id, error))
                continue

            if found:
                result.deleted += 1
            else:
                result.already_absent += 1
                logger.debug(f"Removed transaction {transaction_id} was not stored")

        return result

    def _apply(
        self, record: TransactionRecord, pending_transaction_id: str | None = None
    ) -> Outcome:
        if self.policy is ReconciliationPolicy.UPSERT:
            self.transactions.upsert(record)
            return Outcome.UPSERTED

        existing = self.transactions.find_by_plaid_id(record.plaid_transaction_id)
        if existing is not None:
            assert existing.id is not None
            values = record.column_values()
            values.pop("plaid_transaction_id")
            # A flagged row stays flagged until reviewed
            values.pop("potential_duplicate")
            self.transactions.update_in_place(existing.id, values)
            return Outcome.UPDATED

        candidate = self._best_candidate(record, pending_transaction_id)
        if candidate is None:
            self.transactions.insert(record)
            return Outcome.INSERTED

        if candidate.pending and not record.pending:
            assert candidate.id is not None
            self.transactions.update_in_place(candidate.id, promotion_values(record))
            logger.info(
                f"Promoted pending {candidate.plaid_transaction_id} to posted "
                f"{record.plaid_transaction_id}"
            )
            return Outcome.PROMOTED

        record.potential_duplicate = True
        self.transactions.insert(record)
        logger.info(
            f"Flagged {record.plaid_transaction_id} as a potential duplicate of "
            f"{candidate.plaid_transaction_id}"
        )
        return Outcome.FLAGGED_DUPLICATE

    def _best_candidate(
        self, record: TransactionRecord, pending_transaction_id: str | None
    ) -> TransactionRecord | None:
        candidates = self.transactions.find_duplicate_candidates(
            record.account_id, record.amount, record.date, self.amount_tolerance
        )
        if pending_transaction_id:
            for candidate in candidates:
                if candidate.plaid_transaction_id == pending_transaction_id:
                    return candidate
        return candidates[0] if candidates else None
