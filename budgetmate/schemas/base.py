"""Base schema classes."""

from decimal import Decimal, InvalidOperation

from pydantic import BaseModel, ConfigDict

CENTS = Decimal("0.01")


def quantize_cents(value: Decimal) -> Decimal:
    """Round a money amount to cents, as the relational ledger stores it."""
    try:
        return value.quantize(CENTS)
    except InvalidOperation as exc:
        raise ValueError(f"amount out of range: {value}") from exc


class BaseRecord(BaseModel):
    """Base for ledger records; readable straight from ORM rows."""

    model_config = ConfigDict(from_attributes=True)
