"""DuckDB database handle and schema for the sync store.

One ``Database`` owns a single DuckDB connection. Every store operation runs on
its own cursor (``connection.cursor()``), which DuckDB allows to be used from
different threads, so concurrent item cycles share one database file.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType

import duckdb

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    "CREATE SEQUENCE IF NOT EXISTS accounts_id_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS transactions_id_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS items (
        item_id VARCHAR PRIMARY KEY,
        access_token VARCHAR NOT NULL,
        transactions_cursor VARCHAR,
        institution_name VARCHAR,
        created_at TIMESTAMP DEFAULT current_timestamp,
        updated_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id INTEGER PRIMARY KEY DEFAULT nextval('accounts_id_seq'),
        item_id VARCHAR NOT NULL,
        plaid_account_id VARCHAR NOT NULL UNIQUE,
        name VARCHAR,
        official_name VARCHAR,
        mask VARCHAR,
        type VARCHAR,
        subtype VARCHAR,
        current_balance DECIMAL(18, 2),
        available_balance DECIMAL(18, 2),
        iso_currency_code VARCHAR,
        unofficial_currency_code VARCHAR,
        updated_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY DEFAULT nextval('transactions_id_seq'),
        account_id INTEGER NOT NULL,
        plaid_transaction_id VARCHAR NOT NULL UNIQUE,
        category VARCHAR,
        type VARCHAR,
        name VARCHAR,
        amount DECIMAL(18, 2) NOT NULL,
        iso_currency_code VARCHAR,
        unofficial_currency_code VARCHAR,
        date DATE NOT NULL,
        pending BOOLEAN NOT NULL DEFAULT FALSE,
        account_owner VARCHAR,
        potential_duplicate BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMP DEFAULT current_timestamp,
        updated_at TIMESTAMP DEFAULT current_timestamp
    )
    """,
)


class Database:
    """Shared DuckDB connection for the item, account and transaction stores."""

    def __init__(self, path: Path | str, create_dirs: bool = True):
        """Open (or create) the database.

        Args:
            path: Database file path, or ":memory:"
            create_dirs: Create the parent directory of a file database
        """
        self.path = Path(path) if str(path) != ":memory:" else path
        if create_dirs and isinstance(self.path, Path):
            self.path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = duckdb.connect(str(path))
        logger.debug(f"Connected to DuckDB database: {path}")

    @contextmanager
    def cursor(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Yield a thread-local cursor that is closed afterwards."""
        cur = self._conn.cursor()
        try:
            yield cur
        finally:
            cur.close()

    def create_tables(self) -> None:
        """Create sequences and tables if they do not exist."""
        with self.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
        logger.debug("Ensured txsync schema exists")

    def close(self) -> None:
        """Close the underlying connection."""
        self._conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
