"""Pydantic schemas for Plaid /transactions/sync and /accounts/get payloads.

Provider records are validated here, at the boundary, so the rest of the engine
works with typed objects. Both plain dicts and Plaid SDK model objects are
accepted (``from_attributes``). Validation failures are raised as
``MalformedRecordError``.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_EVEN, Decimal
from enum import Enum
from typing import Any, cast

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import MalformedRecordError

_CENTS = Decimal("0.01")


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        extra="ignore",
        use_enum_values=True,
        str_strip_whitespace=True,
        from_attributes=True,
        populate_by_name=True,
    )


def _coerce_enum(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, Enum):
        return v.value
    # Plaid SDK string enums expose their raw value on .value
    value = getattr(v, "value", None)
    if isinstance(value, str):
        return value
    return str(v)


def _to_plain_dict(v: Any) -> dict[str, Any] | None:
    """Convert Plaid SDK sub-objects into plain dicts."""
    if v is None:
        return None
    if isinstance(v, dict):
        return cast(dict[str, Any], v)
    to_dict = getattr(v, "to_dict", None)
    if callable(to_dict):
        converted = to_dict()
        if isinstance(converted, dict):
            return cast(dict[str, Any], converted)
    raise ValueError(f"Expected a mapping, got {type(v).__name__}")


class BalanceSchema(BaseSchema):
    """Schema for account balance information."""

    available: Decimal | None = None
    current: Decimal | None = None
    limit: Decimal | None = None
    iso_currency_code: str | None = Field(None, max_length=3)
    unofficial_currency_code: str | None = None
    last_updated_datetime: datetime | None = None


class AccountSchema(BaseSchema):
    """Schema for Plaid account data."""

    account_id: str = Field(..., min_length=1, description="Plaid account ID")
    balances: BalanceSchema | None = None
    mask: str | None = Field(None, max_length=4)
    name: str = Field(..., description="Account name")
    official_name: str | None = None
    subtype: str | None = None
    type: str

    @field_validator("type", "subtype", mode="before")
    @classmethod
    def coerce_account_enums(cls, v: Any) -> Any:
        """Accept Plaid SDK enum or string and convert to string."""
        return _coerce_enum(v)


class TransactionSchema(BaseSchema):
    """Schema for a Plaid transaction in the added or modified list."""

    transaction_id: str = Field(..., min_length=1, description="Plaid transaction ID")
    account_id: str = Field(..., min_length=1, description="Associated account ID")
    amount: Decimal = Field(..., description="Signed transaction amount")
    iso_currency_code: str | None = Field(None, max_length=3)
    unofficial_currency_code: str | None = None

    transaction_date: date = Field(..., description="Transaction date", alias="date")
    authorized_date: date | None = None

    name: str | None = None
    merchant_name: str | None = None
    account_owner: str | None = None

    category: list[str] = Field(default_factory=list)
    personal_finance_category: dict[str, Any] | None = None

    payment_channel: str | None = None
    transaction_type: str | None = None

    pending: bool = False
    pending_transaction_id: str | None = None

    @field_validator("payment_channel", "transaction_type", mode="before")
    @classmethod
    def coerce_transaction_enums(cls, v: Any) -> Any:
        """Coerce Plaid SDK enums for transaction fields into strings."""
        return _coerce_enum(v)

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> Any:
        """Ensure category is a list of strings; Plaid may return None."""
        if v is None:
            return []
        if isinstance(v, list):
            items = cast(list[object], v)
            return [str(x) for x in items]
        return [str(v)]

    @field_validator("personal_finance_category", mode="before")
    @classmethod
    def coerce_personal_finance_category(cls, v: Any) -> Any:
        """Convert Plaid SDK PersonalFinanceCategory objects into dicts."""
        return _to_plain_dict(v)

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        """Round to cents and reject implausible values."""
        if abs(v) > Decimal("1000000000"):
            raise ValueError("Transaction amount exceeds reasonable limit")
        return v.quantize(_CENTS, rounding=ROUND_HALF_EVEN)

    @property
    def primary_category(self) -> str | None:
        """Primary personal finance category, falling back to the legacy category."""
        if self.personal_finance_category:
            primary = self.personal_finance_category.get("primary")
            if primary:
                return str(primary)
        return self.category[0] if self.category else None


class RemovedTransactionSchema(BaseSchema):
    """Schema for an entry in the removed list."""

    transaction_id: str = Field(..., min_length=1)
    account_id: str | None = None


class SyncPageSchema(BaseSchema):
    """Envelope fields of one /transactions/sync response page.

    The record lists are validated one by one so a single bad record does not
    discard the page.
    """

    has_more: bool
    next_cursor: str


def _record_id(raw: Any, key: str) -> str | None:
    value = raw.get(key) if isinstance(raw, dict) else getattr(raw, key, None)
    return value if isinstance(value, str) else None


def _validation_detail(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


def parse_transaction(raw: Any) -> TransactionSchema:
    """Validate one added/modified record.

    Raises:
        MalformedRecordError: If required fields are missing or invalid
    """
    try:
        return TransactionSchema.model_validate(raw)
    except ValidationError as e:
        raise MalformedRecordError(
            "transaction", _record_id(raw, "transaction_id"), _validation_detail(e)
        ) from e


def parse_removed(raw: Any) -> RemovedTransactionSchema:
    """Validate one removed record. Bare id strings are accepted."""
    if isinstance(raw, str):
        raw = {"transaction_id": raw}
    try:
        return RemovedTransactionSchema.model_validate(raw)
    except ValidationError as e:
        raise MalformedRecordError(
            "removed transaction",
            _record_id(raw, "transaction_id"),
            _validation_detail(e),
        ) from e


def parse_account(raw: Any) -> AccountSchema:
    """Validate one account record.

    Raises:
        MalformedRecordError: If required fields are missing or invalid
    """
    try:
        return AccountSchema.model_validate(raw)
    except ValidationError as e:
        raise MalformedRecordError(
            "account", _record_id(raw, "account_id"), _validation_detail(e)
        ) from e


def parse_sync_page(raw: Any) -> SyncPageSchema:
    """Validate the envelope of a sync page.

    Raises:
        MalformedRecordError: If has_more or next_cursor is missing
    """
    try:
        return SyncPageSchema.model_validate(raw)
    except ValidationError as e:
        raise MalformedRecordError(
            "sync page", _record_id(raw, "request_id"), _validation_detail(e)
        ) from e


def page_records(raw: Any, field: str) -> list[Any]:
    """Return a record list from a page, treating a missing list as empty."""
    value = raw.get(field) if isinstance(raw, dict) else getattr(raw, field, None)
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedRecordError("sync page", None, f"{field} is not a list")
    return cast(list[Any], value)
