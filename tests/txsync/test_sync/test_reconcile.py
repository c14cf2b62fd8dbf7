"""Tests for TransactionReconciler against a real DuckDB store."""

from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import Any

import duckdb
import pytest
from pytest_mock import MockerFixture

from txsync.connectors.plaid_schemas import AccountSchema, TransactionSchema
from txsync.storage.accounts import AccountStore
from txsync.storage.transactions import TransactionRecord, TransactionStore
from txsync.sync.reconcile import ReconciliationPolicy, TransactionReconciler

TxnFactory = Callable[..., dict[str, Any]]


def _records(*payloads: dict[str, Any]) -> list[TransactionSchema]:
    return [TransactionSchema.model_validate(p) for p in payloads]


@pytest.fixture
def reconciler(
    account_store: AccountStore,
    transaction_store: TransactionStore,
    local_account_id: int,
) -> TransactionReconciler:
    return TransactionReconciler(account_store, transaction_store)


@pytest.fixture
def upsert_reconciler(
    account_store: AccountStore,
    transaction_store: TransactionStore,
    local_account_id: int,
) -> TransactionReconciler:
    return TransactionReconciler(
        account_store, transaction_store, policy=ReconciliationPolicy.UPSERT
    )


class TestDuplicateAwarePolicy:
    """Decision table of the duplicate-aware policy."""

    @pytest.mark.unit
    def test_inserts_when_no_candidate(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        """A record with no near match becomes a new, unflagged row."""
        result = reconciler.reconcile(_records(txn("t1")))

        assert result.inserted == 1
        row = transaction_store.find_by_plaid_id("t1")
        assert row is not None
        assert row.amount == Decimal("10.00")
        assert row.date == date(2024, 1, 5)
        assert row.category == "FOOD_AND_DRINK"
        assert row.type == "place"
        assert row.potential_duplicate is False

    @pytest.mark.unit
    def test_promotes_pending_to_posted(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        """Pending 10.00 and posted 10.50 on the same day collapse into one posted row."""
        reconciler.reconcile(_records(txn("p1", amount="10.00", pending=True)))
        pending_row = transaction_store.find_by_plaid_id("p1")
        assert pending_row is not None

        result = reconciler.reconcile(
            _records(txn("t1", amount="10.50", pending=False, name="Coffee + tip"))
        )

        assert result.promoted == 1
        assert result.inserted == 0
        assert transaction_store.count() == 1
        assert transaction_store.find_by_plaid_id("p1") is None

        posted = transaction_store.find_by_plaid_id("t1")
        assert posted is not None
        assert posted.id == pending_row.id
        assert posted.pending is False
        assert posted.potential_duplicate is False
        assert posted.amount == Decimal("10.50")
        assert posted.name == "Coffee + tip"

    @pytest.mark.unit
    def test_flags_genuine_duplicate_of_posted_row(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        """Posted 10.00 then posted 10.40 the same day adds a flagged second row."""
        reconciler.reconcile(_records(txn("t1", amount="10.00")))

        result = reconciler.reconcile(_records(txn("t2", amount="10.40")))

        assert result.flagged_duplicates == 1
        assert transaction_store.count() == 2

        original = transaction_store.find_by_plaid_id("t1")
        assert original is not None
        assert original.amount == Decimal("10.00")
        assert original.potential_duplicate is False

        flagged = transaction_store.find_by_plaid_id("t2")
        assert flagged is not None
        assert flagged.potential_duplicate is True
        assert flagged.amount == Decimal("10.40")

    @pytest.mark.unit
    def test_incoming_pending_next_to_posted_is_flagged(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        reconciler.reconcile(_records(txn("t1", amount="20.00")))

        result = reconciler.reconcile(_records(txn("p2", amount="20.00", pending=True)))

        assert result.flagged_duplicates == 1
        flagged = transaction_store.find_by_plaid_id("p2")
        assert flagged is not None
        assert flagged.pending is True
        assert flagged.potential_duplicate is True

    @pytest.mark.unit
    def test_two_pending_records_are_not_merged(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        reconciler.reconcile(_records(txn("p1", pending=True)))
        result = reconciler.reconcile(_records(txn("p2", pending=True)))

        assert result.flagged_duplicates == 1
        assert transaction_store.count() == 2

    @pytest.mark.unit
    def test_tolerance_boundary_is_inclusive(
        self,
        reconciler: TransactionReconciler,
        txn: TxnFactory,
    ) -> None:
        """A difference of exactly 1.00 is still a candidate."""
        reconciler.reconcile(_records(txn("t1", amount="10.00")))

        result = reconciler.reconcile(_records(txn("t2", amount="11.00")))

        assert result.flagged_duplicates == 1

    @pytest.mark.unit
    def test_outside_tolerance_inserts(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        reconciler.reconcile(_records(txn("p1", amount="10.00", pending=True)))

        result = reconciler.reconcile(_records(txn("t1", amount="11.01")))

        assert result.inserted == 1
        assert result.promoted == 0
        pending_row = transaction_store.find_by_plaid_id("p1")
        assert pending_row is not None
        assert pending_row.pending is True

    @pytest.mark.unit
    def test_different_date_inserts(
        self,
        reconciler: TransactionReconciler,
        txn: TxnFactory,
    ) -> None:
        reconciler.reconcile(_records(txn("p1", date="2024-01-05", pending=True)))

        result = reconciler.reconcile(_records(txn("t1", date="2024-01-06")))

        assert result.inserted == 1
        assert result.promoted == 0

    @pytest.mark.unit
    def test_candidates_are_scoped_to_the_account(
        self,
        reconciler: TransactionReconciler,
        account_store: AccountStore,
        transaction_store: TransactionStore,
        txn: TxnFactory,
        account: TxnFactory,
    ) -> None:
        account_store.upsert_accounts(
            "item_1", [AccountSchema.model_validate(account("acc_2", "Savings"))]
        )
        reconciler.reconcile(_records(txn("p1", pending=True)))

        result = reconciler.reconcile(_records(txn("t1", account_id="acc_2")))

        assert result.inserted == 1
        assert transaction_store.count() == 2

    @pytest.mark.unit
    def test_pending_transaction_id_link_wins_over_closer_amount(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        """The pending row Plaid links to is promoted even if another is closer."""
        reconciler.reconcile(
            _records(
                txn("p1", amount="10.00", pending=True),
                txn("p2", amount="10.20", pending=True),
            )
        )

        result = reconciler.reconcile(
            _records(txn("t1", amount="10.25", pending_transaction_id="p1"))
        )

        assert result.promoted == 1
        assert transaction_store.find_by_plaid_id("p1") is None
        remaining = transaction_store.find_by_plaid_id("p2")
        assert remaining is not None
        assert remaining.pending is True

    @pytest.mark.unit
    def test_closest_pending_candidate_is_promoted(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        reconciler.reconcile(
            _records(
                txn("p1", amount="10.00", pending=True),
                txn("p2", amount="10.20", pending=True),
            )
        )

        reconciler.reconcile(_records(txn("t1", amount="10.25")))

        assert transaction_store.find_by_plaid_id("p2") is None
        assert transaction_store.find_by_plaid_id("p1") is not None

    @pytest.mark.unit
    def test_modified_record_updates_in_place(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        reconciler.reconcile(_records(txn("t1", amount="10.00")))
        before = transaction_store.find_by_plaid_id("t1")

        result = reconciler.reconcile(
            _records(txn("t1", amount="12.00", name="Corrected"))
        )

        assert result.updated == 1
        after = transaction_store.find_by_plaid_id("t1")
        assert before is not None and after is not None
        assert after.id == before.id
        assert after.amount == Decimal("12.00")
        assert after.name == "Corrected"
        assert transaction_store.count() == 1

    @pytest.mark.unit
    def test_replaying_a_batch_creates_no_rows(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        """Reprocessing after a crash before the cursor advance is harmless."""
        batch = _records(
            txn("t1", amount="10.00"),
            txn("t2", amount="10.40"),
            txn("t3", amount="55.00", date="2024-01-07"),
        )
        reconciler.reconcile(batch)
        first = {
            r: transaction_store.find_by_plaid_id(r) for r in ("t1", "t2", "t3")
        }

        result = reconciler.reconcile(batch)

        assert result.updated == 3
        assert transaction_store.count() == 3
        for plaid_id, row in first.items():
            again = transaction_store.find_by_plaid_id(plaid_id)
            assert again is not None and row is not None
            assert again.potential_duplicate == row.potential_duplicate
            assert again.amount == row.amount


class TestUpsertPolicy:
    """Plain upsert keyed by Plaid transaction id."""

    @pytest.mark.unit
    def test_replay_is_idempotent(
        self,
        upsert_reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        batch = _records(
            txn("t1", amount="10.00"),
            txn("t2", amount="10.40"),
            txn("t3", amount="99.99", pending=True),
        )

        upsert_reconciler.reconcile(batch)
        snapshot = transaction_store.retrieve_by_item_id("item_1").sort("id")
        result = upsert_reconciler.reconcile(batch)
        replayed = transaction_store.retrieve_by_item_id("item_1").sort("id")

        assert result.upserted == 3
        assert transaction_store.count() == 3
        columns = ["id", "plaid_transaction_id", "pending", "potential_duplicate"]
        assert replayed.select(columns).equals(snapshot.select(columns))

    @pytest.mark.unit
    def test_overwrites_mutable_fields(
        self,
        upsert_reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        upsert_reconciler.reconcile(_records(txn("t1", amount="10.00", pending=True)))
        upsert_reconciler.reconcile(
            _records(txn("t1", amount="11.00", pending=False, name="Posted"))
        )

        row = transaction_store.find_by_plaid_id("t1")
        assert row is not None
        assert row.amount == Decimal("11.00")
        assert row.pending is False
        assert row.name == "Posted"

    @pytest.mark.unit
    def test_does_not_promote(
        self,
        upsert_reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        upsert_reconciler.reconcile(_records(txn("p1", pending=True)))
        upsert_reconciler.reconcile(_records(txn("t1", amount="10.50")))

        assert transaction_store.count() == 2
        flagged = transaction_store.retrieve_potential_duplicates()
        assert flagged.is_empty()


class TestRecordFailures:
    """Record-level failures are isolated from the rest of the batch."""

    @pytest.mark.unit
    def test_unresolved_account_is_skipped(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        result = reconciler.reconcile(
            _records(txn("t1", account_id="acc_unknown"), txn("t2", date="2024-02-01"))
        )

        assert result.inserted == 1
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.transaction_id == "t1"
        assert failure.error_type == "UnresolvedAccountError"
        assert result.write_failures == []
        assert transaction_store.find_by_plaid_id("t2") is not None

    @pytest.mark.unit
    def test_storage_write_error_is_isolated(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
        mocker: MockerFixture,
    ) -> None:
        real_insert = transaction_store.insert

        def _insert(record: TransactionRecord) -> int:
            if record.plaid_transaction_id == "t1":
                raise duckdb.IOException("disk full")
            return real_insert(record)

        mocker.patch.object(transaction_store, "insert", side_effect=_insert)

        result = reconciler.reconcile(
            _records(txn("t1"), txn("t2", date="2024-02-01"))
        )

        assert result.inserted == 1
        assert [f.transaction_id for f in result.write_failures] == ["t1"]
        assert transaction_store.find_by_plaid_id("t1") is None
        assert transaction_store.find_by_plaid_id("t2") is not None


class TestDeleteRemoved:
    """Deletion by Plaid transaction id."""

    @pytest.mark.unit
    def test_deletes_existing_row(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        reconciler.reconcile(_records(txn("t1")))

        result = reconciler.delete_removed(["t1"])

        assert result.deleted == 1
        assert transaction_store.count() == 0

    @pytest.mark.unit
    def test_deleting_missing_id_is_a_noop(
        self,
        reconciler: TransactionReconciler,
        transaction_store: TransactionStore,
        txn: TxnFactory,
    ) -> None:
        reconciler.reconcile(_records(txn("t1")))
        reconciler.delete_removed(["t1"])

        result = reconciler.delete_removed(["t1", "never-seen"])

        assert result.deleted == 0
        assert result.already_absent == 2
        assert result.failures == []
        assert transaction_store.count() == 0
