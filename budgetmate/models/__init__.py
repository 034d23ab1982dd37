"""SQLAlchemy models package."""

from budgetmate.models.account import Account
from budgetmate.models.envelope import Envelope
from budgetmate.models.recurring import RecurringIncome, RecurringIncomeSplit
from budgetmate.models.transaction import (
    DuplicateStatus,
    SourceType,
    Transaction,
    TransactionEnvelope,
)

__all__ = [
    "Account",
    "DuplicateStatus",
    "Envelope",
    "RecurringIncome",
    "RecurringIncomeSplit",
    "SourceType",
    "Transaction",
    "TransactionEnvelope",
]
