"""Account store: upsert Plaid accounts and resolve local account ids."""

import logging
from collections.abc import Iterable

from ..connectors.plaid_schemas import AccountSchema
from ..errors import UnresolvedAccountError
from .database import Database

logger = logging.getLogger(__name__)


class AccountStore:
    """Accounts belonging to tracked items."""

    def __init__(self, db: Database):
        self.db = db

    def upsert_accounts(self, item_id: str, accounts: Iterable[AccountSchema]) -> int:
        """Insert new accounts and refresh metadata of known ones.

        Args:
            item_id: Owning item
            accounts: Validated Plaid accounts

        Returns:
            int: Number of accounts written
        """
        count = 0
        with self.db.cursor() as cur:
            for account in accounts:
                balances = account.balances
                cur.execute(
                    """
                    INSERT INTO accounts (
                        item_id, plaid_account_id, name, official_name, mask,
                        type, subtype, current_balance, available_balance,
                        iso_currency_code, unofficial_currency_code
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (plaid_account_id) DO UPDATE SET
                        item_id = excluded.item_id,
                        name = excluded.name,
                        official_name = excluded.official_name,
                        mask = excluded.mask,
                        type = excluded.type,
                        subtype = excluded.subtype,
                        current_balance = excluded.current_balance,
                        available_balance = excluded.available_balance,
                        iso_currency_code = excluded.iso_currency_code,
                        unofficial_currency_code = excluded.unofficial_currency_code,
                        updated_at = now()
                    """,
                    [
                        item_id,
                        account.account_id,
                        account.name,
                        account.official_name,
                        account.mask,
                        account.type,
                        account.subtype,
                        balances.current if balances else None,
                        balances.available if balances else None,
                        balances.iso_currency_code if balances else None,
                        balances.unofficial_currency_code if balances else None,
                    ],
                )
                count += 1

        logger.info(f"Upserted {count} accounts for item {item_id}")
        return count

    def resolve_local_account_id(self, plaid_account_id: str) -> int:
        """Map a Plaid account id to the local account id.

        Raises:
            UnresolvedAccountError: If the account has not been stored yet
        """
        with self.db.cursor() as cur:
            row = cur.execute(
                "SELECT id FROM accounts WHERE plaid_account_id = ?",
                [plaid_account_id],
            ).fetchone()

        if row is None:
            raise UnresolvedAccountError(plaid_account_id)
        return int(row[0])
