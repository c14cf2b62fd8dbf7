"""Transaction store: single-record writes and review queries.

Every mutation here touches exactly one row. Callers decide how to react to a
failed write; this module lets ``duckdb.Error`` propagate.
"""

import logging
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Any

import polars as pl

from .database import Database

logger = logging.getLogger(__name__)

# Columns a promotion or upsert may overwrite; local id and created_at never change
MUTABLE_COLUMNS = (
    "account_id",
    "plaid_transaction_id",
    "category",
    "type",
    "name",
    "amount",
    "iso_currency_code",
    "unofficial_currency_code",
    "date",
    "pending",
    "account_owner",
    "potential_duplicate",
)


@dataclass
class TransactionRecord:
    """One row of the transactions table."""

    account_id: int
    plaid_transaction_id: str
    amount: Decimal
    date: date
    category: str | None = None
    type: str | None = None
    name: str | None = None
    iso_currency_code: str | None = None
    unofficial_currency_code: str | None = None
    pending: bool = False
    account_owner: str | None = None
    potential_duplicate: bool = False
    id: int | None = None

    def column_values(self) -> dict[str, Any]:
        """Values for the mutable columns, keyed by column name."""
        return {column: getattr(self, column) for column in MUTABLE_COLUMNS}


_RECORD_COLUMNS = tuple(f.name for f in fields(TransactionRecord))
_SELECT_RECORD = f"SELECT {', '.join(_RECORD_COLUMNS)} FROM transactions"


def _to_record(row: tuple[Any, ...]) -> TransactionRecord:
    return TransactionRecord(**dict(zip(_RECORD_COLUMNS, row, strict=True)))


def _frame(cur: Any, rows: list[tuple[Any, ...]]) -> pl.DataFrame:
    columns = [d[0] for d in cur.description]
    return pl.DataFrame(rows, schema=columns, orient="row")


class TransactionStore:
    """Rows of the transactions table."""

    def __init__(self, db: Database):
        self.db = db

    def find_by_plaid_id(self, plaid_transaction_id: str) -> TransactionRecord | None:
        """Return the row with this Plaid transaction id, if any."""
        with self.db.cursor() as cur:
            row = cur.execute(
                f"{_SELECT_RECORD} WHERE plaid_transaction_id = ?",
                [plaid_transaction_id],
            ).fetchone()
        return _to_record(row) if row else None

    def find_duplicate_candidates(
        self,
        account_id: int,
        amount: Decimal,
        on_date: date,
        tolerance: Decimal = Decimal("1.00"),
    ) -> list[TransactionRecord]:
        """Rows on the same account and date whose amount is within tolerance.

        Pending rows sort first, then the closest amount, then the oldest row.
        """
        with self.db.cursor() as cur:
            rows = cur.execute(
                f"""
                {_SELECT_RECORD}
                WHERE account_id = ?
                  AND date = ?
                  AND abs(amount - CAST(? AS DECIMAL(18, 2))) <= CAST(? AS DECIMAL(18, 2))
                ORDER BY pending DESC,
                         abs(amount - CAST(? AS DECIMAL(18, 2))) ASC,
                         id ASC
                """,
                [account_id, on_date, amount, tolerance, amount],
            ).fetchall()
        return [_to_record(row) for row in rows]

    def insert(self, record: TransactionRecord) -> int:
        """Insert a new row and return its local id."""
        values = record.column_values()
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self.db.cursor() as cur:
            row = cur.execute(
                f"INSERT INTO transactions ({columns}) VALUES ({placeholders}) RETURNING id",  # noqa: S608  # column names are module constants
                list(values.values()),
            ).fetchone()
        assert row is not None
        return int(row[0])

    def update_in_place(self, local_id: int, values: dict[str, Any]) -> None:
        """Overwrite the given mutable columns of one row."""
        unknown = set(values) - set(MUTABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Not mutable transaction columns: {sorted(unknown)}")

        assignments = ", ".join(f"{column} = ?" for column in values)
        with self.db.cursor() as cur:
            cur.execute(
                f"UPDATE transactions SET {assignments}, updated_at = current_timestamp WHERE id = ?",  # noqa: S608  # column names checked against MUTABLE_COLUMNS
                [*values.values(), local_id],
            )

    def upsert(self, record: TransactionRecord) -> None:
        """Insert or overwrite every mutable field, keyed by Plaid transaction id."""
        values = record.column_values()
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        assignments = ", ".join(
            f"{column} = excluded.{column}"
            for column in values
            if column != "plaid_transaction_id"
        )
        with self.db.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO transactions ({columns}) VALUES ({placeholders})
                ON CONFLICT (plaid_transaction_id) DO UPDATE SET
                    {assignments},
                    updated_at = now()
                """,  # noqa: S608  # column names are module constants
                list(values.values()),
            )

    def delete_by_plaid_id(self, plaid_transaction_id: str) -> bool:
        """Delete by Plaid transaction id.

        Returns:
            bool: False when no row matched; deleting a missing id is not an error
        """
        with self.db.cursor() as cur:
            deleted = cur.execute(
                "DELETE FROM transactions WHERE plaid_transaction_id = ? RETURNING id",
                [plaid_transaction_id],
            ).fetchall()
        return bool(deleted)

    def count(self) -> int:
        """Total number of transaction rows."""
        with self.db.cursor() as cur:
            row = cur.execute("SELECT COUNT(*) FROM transactions").fetchone()
        return int(row[0]) if row else 0

    def retrieve_by_account_id(self, account_id: int) -> pl.DataFrame:
        """All transactions of one local account, newest first."""
        with self.db.cursor() as cur:
            rows = cur.execute(
                """
                SELECT t.*
                FROM transactions t
                WHERE t.account_id = ?
                ORDER BY t.date DESC, t.id DESC
                """,
                [account_id],
            ).fetchall()
            return _frame(cur, rows)

    def retrieve_by_item_id(self, item_id: str) -> pl.DataFrame:
        """All transactions of every account of one item, newest first."""
        with self.db.cursor() as cur:
            rows = cur.execute(
                """
                SELECT t.*, a.plaid_account_id, a.name AS account_name
                FROM transactions t
                JOIN accounts a ON a.id = t.account_id
                WHERE a.item_id = ?
                ORDER BY t.date DESC, t.id DESC
                """,
                [item_id],
            ).fetchall()
            return _frame(cur, rows)

    def retrieve_potential_duplicates(self, item_id: str | None = None) -> pl.DataFrame:
        """Rows flagged for review, optionally restricted to one item."""
        query = """
            SELECT t.id, a.item_id, a.plaid_account_id, t.plaid_transaction_id,
                   t.date, CAST(t.amount AS DOUBLE) AS amount, t.name, t.pending
            FROM transactions t
            JOIN accounts a ON a.id = t.account_id
            WHERE t.potential_duplicate
        """
        params: list[Any] = []
        if item_id is not None:
            query += " AND a.item_id = ?"
            params.append(item_id)
        query += " ORDER BY t.date DESC, t.id"

        with self.db.cursor() as cur:
            rows = cur.execute(query, params).fetchall()
            return _frame(cur, rows)
