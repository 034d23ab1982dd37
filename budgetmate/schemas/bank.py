"""Incoming bank-feed record."""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from budgetmate.exceptions import InvalidBankTransactionError
from budgetmate.schemas.base import quantize_cents

UNKNOWN_MERCHANT = "Unknown Merchant"


class BankTransactionIn(BaseModel):
    """One transaction as delivered by the bank-aggregation feed.

    ``date`` may be an ISO date or an ISO datetime; only the calendar date is kept.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    amount: Decimal = Field(allow_inf_nan=False)
    txn_date: date = Field(validation_alias=AliasChoices("txn_date", "date"))
    merchant: str = UNKNOWN_MERCHANT
    description: str | None = None
    bank_transaction_id: str = Field(validation_alias=AliasChoices("bank_transaction_id", "bankTransactionId"))
    reference: str | None = None
    memo: str | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_float_amount(cls, value: Any) -> Any:
        # str() keeps the shortest repr, not the binary expansion.
        if isinstance(value, float):
            return str(value)
        return value

    @field_validator("amount")
    @classmethod
    def round_to_cents(cls, value: Decimal) -> Decimal:
        return quantize_cents(value)

    @field_validator("merchant", mode="before")
    @classmethod
    def default_missing_merchant(cls, value: Any) -> Any:
        # Transfers often arrive with a null or blank merchant.
        if value is None or (isinstance(value, str) and not value.strip()):
            return UNKNOWN_MERCHANT
        return value

    @field_validator("txn_date", mode="before")
    @classmethod
    def parse_datetime_to_date(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and len(value.strip()) > 10:
            try:
                return datetime.fromisoformat(value.strip()).date()
            except ValueError:
                return value
        return value

    @classmethod
    def parse(cls, raw: "BankTransactionIn | Mapping[str, Any]") -> "BankTransactionIn":
        """Validate a raw feed record, raising InvalidBankTransactionError on bad input."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise InvalidBankTransactionError(f"Invalid bank transaction: {exc}") from exc
