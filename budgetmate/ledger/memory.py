"""In-process ledger backed by dictionaries.

Used for tests, demos and single-process deployments. ``atomic`` snapshots
every table and restores it if the block raises.
"""

import asyncio
import copy
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from decimal import Decimal
from itertools import count
from typing import Any

from budgetmate.exceptions import RecordNotFoundError
from budgetmate.ledger.base import Ledger, validate_transaction_updates
from budgetmate.logger import get_logger
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

logger = get_logger(__name__)


class MemoryLedger(Ledger):
    def __init__(self) -> None:
        self._ids = count(1)
        self._transactions: dict[int, TransactionRecord] = {}
        self._splits: dict[int, TransactionEnvelopeRecord] = {}
        self._envelopes: dict[int, EnvelopeRecord] = {}
        self._accounts: dict[int, AccountRecord] = {}
        self._recurring: dict[int, RecurringIncomeRecord] = {}
        self._unit_lock = asyncio.Lock()
        self._in_unit: ContextVar[bool] = ContextVar(f"memory_ledger_unit_{id(self)}", default=False)

    def _tables(self) -> tuple[dict, ...]:
        return (self._transactions, self._splits, self._envelopes, self._accounts, self._recurring)

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._in_unit.get():
            yield
            return

        # Units are serialized so a rollback never discards another task's writes.
        async with self._unit_lock:
            # Records are immutable pydantic values, so shallow dict copies suffice.
            snapshot = [copy.copy(table) for table in self._tables()]
            token = self._in_unit.set(True)
            try:
                yield
            except BaseException:
                for table, saved in zip(self._tables(), snapshot, strict=True):
                    table.clear()
                    table.update(saved)
                logger.warning("Rolled back in-memory ledger changes")
                raise
            finally:
                self._in_unit.reset(token)

    # --- transactions -------------------------------------------------

    async def transactions_for_user(self, user_id: int) -> list[TransactionRecord]:
        return [txn for txn in self._transactions.values() if txn.user_id == user_id]

    async def get_transaction(self, transaction_id: int) -> TransactionRecord | None:
        return self._transactions.get(transaction_id)

    async def create_transaction(
        self,
        data: TransactionCreate,
        splits: Sequence[EnvelopeSplit] = (),
    ) -> TransactionRecord:
        async with self.atomic():
            record = TransactionRecord(id=next(self._ids), **data.model_dump())
            self._transactions[record.id] = record
            for split in splits:
                await self.create_transaction_envelope_split(record.id, split.envelope_id, split.amount)
        return record

    async def update_transaction(self, transaction_id: int, **fields: Any) -> None:
        validate_transaction_updates(fields)
        existing = self._transactions.get(transaction_id)
        if existing is None:
            raise RecordNotFoundError("Transaction", transaction_id)
        self._transactions[transaction_id] = existing.model_copy(update=fields)

    async def delete_transaction(self, transaction_id: int) -> None:
        if self._transactions.pop(transaction_id, None) is None:
            raise RecordNotFoundError("Transaction", transaction_id)
        for split_id in [s.id for s in self._splits.values() if s.transaction_id == transaction_id]:
            del self._splits[split_id]

    async def create_transaction_envelope_split(
        self,
        transaction_id: int,
        envelope_id: int,
        amount: Decimal,
    ) -> None:
        if transaction_id not in self._transactions:
            raise RecordNotFoundError("Transaction", transaction_id)
        if envelope_id not in self._envelopes:
            raise RecordNotFoundError("Envelope", envelope_id)
        split = TransactionEnvelopeRecord(
            id=next(self._ids),
            transaction_id=transaction_id,
            envelope_id=envelope_id,
            amount=amount,
        )
        self._splits[split.id] = split

    async def transaction_envelopes(self, transaction_id: int) -> list[TransactionEnvelopeRecord]:
        return [s for s in self._splits.values() if s.transaction_id == transaction_id]

    # --- envelopes / accounts ----------------------------------------

    async def create_envelope(self, data: EnvelopeCreate) -> EnvelopeRecord:
        record = EnvelopeRecord(id=next(self._ids), **data.model_dump())
        self._envelopes[record.id] = record
        return record

    async def get_envelope(self, envelope_id: int) -> EnvelopeRecord | None:
        return self._envelopes.get(envelope_id)

    async def update_envelope_balance(self, envelope_id: int, balance: Decimal) -> None:
        envelope = self._envelopes.get(envelope_id)
        if envelope is None:
            raise RecordNotFoundError("Envelope", envelope_id)
        self._envelopes[envelope_id] = envelope.model_copy(update={"current_balance": balance})

    async def create_account(self, data: AccountCreate) -> AccountRecord:
        record = AccountRecord(id=next(self._ids), **data.model_dump())
        self._accounts[record.id] = record
        return record

    async def get_account(self, account_id: int) -> AccountRecord | None:
        return self._accounts.get(account_id)

    async def update_account_balance(self, account_id: int, balance: Decimal) -> None:
        account = self._accounts.get(account_id)
        if account is None:
            raise RecordNotFoundError("Account", account_id)
        self._accounts[account_id] = account.model_copy(update={"balance": balance})

    # --- recurring income --------------------------------------------

    async def create_recurring_income(self, data: RecurringIncomeCreate) -> RecurringIncomeRecord:
        record = RecurringIncomeRecord(id=next(self._ids), **data.model_dump())
        self._recurring[record.id] = record
        return record

    async def recurring_income_for_user(self, user_id: int) -> list[RecurringIncomeRecord]:
        return [r for r in self._recurring.values() if r.user_id == user_id]
