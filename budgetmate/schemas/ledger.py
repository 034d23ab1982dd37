"""Records exchanged with every ledger backend.

Money is always ``Decimal`` and dates are ``datetime.date``. Records are
treated as immutable values: updates produce a new record via ``model_copy``.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from budgetmate.models.transaction import DuplicateStatus, SourceType
from budgetmate.schemas.base import BaseRecord, quantize_cents


class AccountCreate(BaseModel):
    user_id: int
    name: str
    balance: Decimal = Decimal("0.00")
    is_active: bool = True


class AccountRecord(BaseRecord):
    id: int
    user_id: int
    name: str
    balance: Decimal
    is_active: bool = True


class EnvelopeCreate(BaseModel):
    user_id: int
    name: str
    current_balance: Decimal = Decimal("0.00")
    budgeted_amount: Decimal = Decimal("0.00")
    category_id: int | None = None
    is_active: bool = True
    is_monitored: bool = False


class EnvelopeRecord(BaseRecord):
    id: int
    user_id: int
    name: str
    current_balance: Decimal
    budgeted_amount: Decimal = Decimal("0.00")
    category_id: int | None = None
    is_active: bool = True
    is_monitored: bool = False


class EnvelopeSplit(BaseRecord):
    """Amount of a transaction (or expected income) allocated to one envelope."""

    envelope_id: int
    amount: Decimal


class TransactionCreate(BaseModel):
    user_id: int
    account_id: int
    merchant: str
    amount: Decimal
    txn_date: date
    description: str | None = None
    is_approved: bool = False
    source_type: SourceType = SourceType.MANUAL
    duplicate_status: DuplicateStatus = DuplicateStatus.NONE
    duplicate_of_id: int | None = None
    bank_transaction_id: str | None = None
    bank_hash: str | None = None
    bank_reference: str | None = None
    bank_memo: str | None = None

    @field_validator("amount")
    @classmethod
    def round_to_cents(cls, value: Decimal) -> Decimal:
        return quantize_cents(value)


class TransactionRecord(BaseRecord):
    id: int
    user_id: int
    account_id: int
    merchant: str
    amount: Decimal
    txn_date: date
    description: str | None = None
    is_approved: bool = False
    source_type: SourceType = SourceType.MANUAL
    duplicate_status: DuplicateStatus = DuplicateStatus.NONE
    duplicate_of_id: int | None = None
    bank_transaction_id: str | None = None
    bank_hash: str | None = None
    bank_reference: str | None = None
    bank_memo: str | None = None


class TransactionEnvelopeRecord(BaseRecord):
    id: int
    transaction_id: int
    envelope_id: int
    amount: Decimal


class RecurringIncomeCreate(BaseModel):
    user_id: int
    name: str
    amount: Decimal
    splits: list[EnvelopeSplit] = Field(default_factory=list)
    surplus_envelope_id: int | None = None


class RecurringIncomeRecord(BaseRecord):
    id: int
    user_id: int
    name: str
    amount: Decimal
    splits: list[EnvelopeSplit] = Field(default_factory=list)
    surplus_envelope_id: int | None = None


# Fields a caller may change through Ledger.update_transaction
UPDATABLE_TRANSACTION_FIELDS = frozenset(TransactionCreate.model_fields) - {"user_id"}
