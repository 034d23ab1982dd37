"""Pydantic schemas package."""

from budgetmate.schemas.bank import BankTransactionIn
from budgetmate.schemas.ledger import (
    AccountCreate,
    AccountRecord,
    EnvelopeCreate,
    EnvelopeRecord,
    EnvelopeSplit,
    RecurringIncomeCreate,
    RecurringIncomeRecord,
    TransactionCreate,
    TransactionEnvelopeRecord,
    TransactionRecord,
)

__all__ = [
    "AccountCreate",
    "AccountRecord",
    "BankTransactionIn",
    "EnvelopeCreate",
    "EnvelopeRecord",
    "EnvelopeSplit",
    "RecurringIncomeCreate",
    "RecurringIncomeRecord",
    "TransactionCreate",
    "TransactionEnvelopeRecord",
    "TransactionRecord",
]
