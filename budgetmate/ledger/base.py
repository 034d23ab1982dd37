"""Ledger contract shared by every storage backend.

The reconciliation services only talk to this interface. Backends are picked
once at startup by ``budgetmate.ledger.create_ledger``.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

from budgetmate.exceptions import LedgerError
from budgetmate.schemas.ledger import (
    UPDATABLE_TRANSACTION_FIELDS,
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


def validate_transaction_updates(fields: dict[str, Any]) -> None:
    """Reject updates to unknown or immutable transaction fields."""
    unknown = set(fields) - UPDATABLE_TRANSACTION_FIELDS
    if unknown:
        raise LedgerError(f"Cannot update transaction fields: {sorted(unknown)}")


class Ledger(ABC):
    """Async storage collaborator for the reconciliation core."""

    # --- transactions -------------------------------------------------

    @abstractmethod
    async def transactions_for_user(self, user_id: int) -> list[TransactionRecord]:
        """All transactions owned by ``user_id`` in creation order."""

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> TransactionRecord | None: ...

    @abstractmethod
    async def create_transaction(
        self,
        data: TransactionCreate,
        splits: Sequence[EnvelopeSplit] = (),
    ) -> TransactionRecord:
        """Insert a transaction and its envelope splits as one write."""

    @abstractmethod
    async def update_transaction(self, transaction_id: int, **fields: Any) -> None:
        """Copy-on-write update; raises RecordNotFoundError for unknown ids."""

    @abstractmethod
    async def delete_transaction(self, transaction_id: int) -> None:
        """Delete a transaction together with its envelope splits."""

    @abstractmethod
    async def create_transaction_envelope_split(
        self,
        transaction_id: int,
        envelope_id: int,
        amount: Decimal,
    ) -> None: ...

    @abstractmethod
    async def transaction_envelopes(self, transaction_id: int) -> list[TransactionEnvelopeRecord]: ...

    # --- envelopes / accounts ----------------------------------------

    @abstractmethod
    async def create_envelope(self, data: EnvelopeCreate) -> EnvelopeRecord: ...

    @abstractmethod
    async def get_envelope(self, envelope_id: int) -> EnvelopeRecord | None: ...

    @abstractmethod
    async def update_envelope_balance(self, envelope_id: int, balance: Decimal) -> None: ...

    @abstractmethod
    async def create_account(self, data: AccountCreate) -> AccountRecord: ...

    @abstractmethod
    async def get_account(self, account_id: int) -> AccountRecord | None: ...

    @abstractmethod
    async def update_account_balance(self, account_id: int, balance: Decimal) -> None: ...

    # --- recurring income --------------------------------------------

    @abstractmethod
    async def create_recurring_income(self, data: RecurringIncomeCreate) -> RecurringIncomeRecord: ...

    @abstractmethod
    async def recurring_income_for_user(self, user_id: int) -> list[RecurringIncomeRecord]:
        """Definitions in storage order; matching is first-fit over this order."""

    # --- lifecycle ----------------------------------------------------

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """Group several writes so they succeed or fail together.

        Backends override this with their own unit of work. Nested use joins
        the outer unit.
        """
        yield

    async def close(self) -> None:
        """Release connections held by the backend."""
