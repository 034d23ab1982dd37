"""Transaction fingerprint used as the exact-duplicate lookup key."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from budgetmate.exceptions import InvalidBankTransactionError
from budgetmate.services.merchant import normalize_merchant

_CENTS = Decimal("0.01")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def canonical_amount(amount: Decimal | str) -> str:
    """Render an amount with exactly two decimals (``-45`` -> ``-45.00``)."""
    try:
        value = Decimal(amount)
        if value.is_finite():
            return str(value.quantize(_CENTS))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise InvalidBankTransactionError(f"Invalid amount: {amount!r}") from exc
    raise InvalidBankTransactionError(f"Invalid amount: {amount!r}")


def canonical_date(value: date | str) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(value[:10]).isoformat()
    except ValueError as exc:
        raise InvalidBankTransactionError(f"Invalid date: {value!r}") from exc


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def rolling_hash(text: str) -> str:
    """32-bit ``h = h * 31 + code_unit`` hash, absolute value, base 36.

    Iterates UTF-16 code units and wraps to a signed 32-bit integer after every
    step, so fingerprints stay stable with rows hashed by other clients.
    """
    value = 0
    encoded = text.encode("utf-16-le")
    for index in range(0, len(encoded), 2):
        code_unit = encoded[index] | (encoded[index + 1] << 8)
        value = (value * 31 + code_unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(abs(value))


def transaction_hash(amount: Decimal | str, txn_date: date | str, merchant: str) -> str:
    """Fingerprint of ``amount|date|normalized merchant``.

    Collisions are possible; treat equality as strong evidence, not proof.
    """
    canonical = f"{canonical_amount(amount)}|{canonical_date(txn_date)}|{normalize_merchant(merchant)}"
    return rolling_hash(canonical)
