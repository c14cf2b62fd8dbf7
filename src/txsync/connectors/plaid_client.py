"""Thin Plaid SDK wrapper for the two calls the sync engine needs.

``transactions_sync`` pulls one page of the change feed and ``accounts_get``
lists the accounts behind an access token. SDK exceptions are translated into
the txsync error taxonomy; transient failures are retried with a fixed delay
before surfacing as ``TransientNetworkError``.
"""

import json
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from plaid.api import plaid_api
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.exceptions import ApiException
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.transactions_sync_request import TransactionsSyncRequest
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from ..config import PlaidConfig, get_plaid_config
from ..errors import PaginationMutationError, ProviderError, TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PLAID_HOSTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

# Plaid error codes that are worth retrying within the same call
RETRYABLE_ERROR_CODES = frozenset({
    "PRODUCT_NOT_READY",
    "INTERNAL_SERVER_ERROR",
    "PLANNED_MAINTENANCE",
    "RATE_LIMIT_EXCEEDED",
    "TRANSACTIONS_LIMIT",
    "ACCOUNTS_LIMIT",
    "INSTITUTION_DOWN",
    "INSTITUTION_NOT_RESPONDING",
})

MUTATION_DURING_PAGINATION = "TRANSACTIONS_SYNC_MUTATION_DURING_PAGINATION"


class ChangeFeedClient(Protocol):
    """The provider calls consumed by the fetcher and the orchestrator."""

    def transactions_sync(
        self, access_token: str, cursor: str | None, count: int
    ) -> Any: ...

    def accounts_get(self, access_token: str) -> Any: ...


def _error_code(exc: ApiException) -> str | None:
    body = getattr(exc, "body", None)
    if isinstance(body, (str, bytes)):
        try:
            details = json.loads(body)
        except ValueError:
            return None
        if isinstance(details, dict):
            code = details.get("error_code")
            return code if isinstance(code, str) else None
    return None


def translate_api_exception(exc: ApiException) -> ProviderError:
    """Map a Plaid ApiException onto the txsync error taxonomy."""
    code = _error_code(exc)
    status = getattr(exc, "status", None)
    message = f"Plaid API error {status}: {code or getattr(exc, 'reason', exc)}"

    if code == MUTATION_DURING_PAGINATION:
        return PaginationMutationError(message, error_code=code, status=status)
    if code in RETRYABLE_ERROR_CODES or status == 429 or (
        isinstance(status, int) and status >= 500
    ):
        return TransientNetworkError(message, error_code=code, status=status)
    return ProviderError(message, error_code=code, status=status)


class PlaidClient:
    """Plaid API client used by the sync engine."""

    def __init__(self, config: PlaidConfig | None = None):
        """Initialize the Plaid client from configuration.

        Args:
            config: Plaid configuration; defaults to the application settings

        Raises:
            ValueError: If client id or secret are missing
        """
        self.config = config or get_plaid_config()
        if not self.config.client_id or not self.config.secret:
            raise ValueError("PLAID_CLIENT_ID and PLAID_SECRET are required")

        configuration = Configuration(
            host=PLAID_HOSTS[self.config.environment],
            api_key={
                "clientId": self.config.client_id,
                "secret": self.config.secret,
            },
        )
        # Type as Any to avoid pyright partial-unknowns from the SDK stubs
        self.client: Any = plaid_api.PlaidApi(ApiClient(configuration))

        logger.info(f"Initialized Plaid client for {self.config.environment} environment")

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        """Run an SDK call, retrying transient failures.

        Raises:
            TransientNetworkError: When retries are exhausted
            PaginationMutationError: When the feed changed during pagination
            ProviderError: For non-retryable API errors
        """
        last_error: ProviderError | None = None
        for attempt in range(self.config.max_retries + 1):
            try:
                return fn()
            except ApiException as api_exc:
                error = translate_api_exception(api_exc)
            except (OSError, Urllib3HTTPError) as net_exc:
                error = TransientNetworkError(f"{operation} failed: {net_exc}")

            if not isinstance(error, TransientNetworkError):
                raise error

            last_error = error
            if attempt < self.config.max_retries:
                logger.warning(
                    f"{operation} attempt {attempt + 1} failed ({error}); retrying"
                )
                time.sleep(self.config.retry_delay)

        assert last_error is not None
        raise last_error

    def transactions_sync(
        self, access_token: str, cursor: str | None, count: int
    ) -> Any:
        """Request one page of the transaction change feed.

        Args:
            access_token: Item access token
            cursor: Cursor from the previous page; None starts from the beginning
            count: Maximum number of transactions per page

        Returns:
            The SDK TransactionsSyncResponse
        """
        kwargs: dict[str, Any] = {"access_token": access_token, "count": count}
        # Plaid rejects an empty cursor; omitting it means "from the beginning"
        if cursor is not None:
            kwargs["cursor"] = cursor
        request = TransactionsSyncRequest(**kwargs)
        return self._call(
            "transactions_sync", lambda: self.client.transactions_sync(request)
        )

    def accounts_get(self, access_token: str) -> Any:
        """List the accounts linked to an access token.

        Returns:
            The SDK AccountsGetResponse
        """
        request = AccountsGetRequest(access_token=access_token)
        return self._call("accounts_get", lambda: self.client.accounts_get(request))
