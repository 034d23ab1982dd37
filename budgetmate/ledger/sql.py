"""Relational ledger on SQLAlchemy 2.0 async ORM.

Each call runs in its own database transaction unless it happens inside
``atomic()``, in which case every call shares the unit's session and commits
together.
"""

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from budgetmate.config import Settings
from budgetmate.database import create_engine_from_settings, create_session_maker
from budgetmate.exceptions import LedgerError, RecordNotFoundError
from budgetmate.ledger.base import Ledger, validate_transaction_updates
from budgetmate.logger import get_logger
from budgetmate.models import (
    Account,
    Envelope,
    RecurringIncome,
    RecurringIncomeSplit,
    Transaction,
    TransactionEnvelope,
)
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


class SqlLedger(Ledger):
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_maker = session_maker
        # Only engines created by from_settings are disposed on close().
        self._engine = engine
        self._current: ContextVar[AsyncSession | None] = ContextVar(f"sql_ledger_session_{id(self)}", default=None)

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "SqlLedger":
        engine = create_engine_from_settings(app_settings)
        return cls(create_session_maker(engine), engine=engine)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        current = self._current.get()
        if current is not None:
            yield current
            return

        try:
            async with self._session_maker() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            raise LedgerError(f"Database operation failed: {exc}") from exc

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        if self._current.get() is not None:
            yield
            return

        async with self._session() as session:
            token = self._current.set(session)
            try:
                yield
            finally:
                self._current.reset(token)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    # --- transactions -------------------------------------------------

    async def transactions_for_user(self, user_id: int) -> list[TransactionRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(Transaction).where(Transaction.user_id == user_id).order_by(Transaction.id)
            )
            return [TransactionRecord.model_validate(row) for row in result.scalars().all()]

    async def get_transaction(self, transaction_id: int) -> TransactionRecord | None:
        async with self._session() as session:
            row = await session.get(Transaction, transaction_id)
            return TransactionRecord.model_validate(row) if row else None

    async def create_transaction(
        self,
        data: TransactionCreate,
        splits: Sequence[EnvelopeSplit] = (),
    ) -> TransactionRecord:
        async with self._session() as session:
            row = Transaction(**data.model_dump())
            session.add(row)
            await session.flush()
            for split in splits:
                await self._add_split(session, row.id, split.envelope_id, split.amount)
            return TransactionRecord.model_validate(row)

    async def update_transaction(self, transaction_id: int, **fields: Any) -> None:
        validate_transaction_updates(fields)
        async with self._session() as session:
            row = await session.get(Transaction, transaction_id)
            if row is None:
                raise RecordNotFoundError("Transaction", transaction_id)
            updated = TransactionRecord.model_validate(row).model_copy(update=fields)
            for name, value in updated.model_dump(exclude={"id", "user_id"}).items():
                setattr(row, name, value)
            await session.flush()

    async def delete_transaction(self, transaction_id: int) -> None:
        async with self._session() as session:
            result = await session.execute(
                select(Transaction)
                .where(Transaction.id == transaction_id)
                .options(selectinload(Transaction.splits))
            )
            row = result.scalar_one_or_none()
            if row is None:
                raise RecordNotFoundError("Transaction", transaction_id)
            await session.delete(row)
            await session.flush()

    async def _add_split(
        self,
        session: AsyncSession,
        transaction_id: int,
        envelope_id: int,
        amount: Decimal,
    ) -> None:
        if await session.get(Envelope, envelope_id) is None:
            raise RecordNotFoundError("Envelope", envelope_id)
        session.add(TransactionEnvelope(transaction_id=transaction_id, envelope_id=envelope_id, amount=amount))
        await session.flush()

    async def create_transaction_envelope_split(
        self,
        transaction_id: int,
        envelope_id: int,
        amount: Decimal,
    ) -> None:
        async with self._session() as session:
            if await session.get(Transaction, transaction_id) is None:
                raise RecordNotFoundError("Transaction", transaction_id)
            await self._add_split(session, transaction_id, envelope_id, amount)

    async def transaction_envelopes(self, transaction_id: int) -> list[TransactionEnvelopeRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(TransactionEnvelope)
                .where(TransactionEnvelope.transaction_id == transaction_id)
                .order_by(TransactionEnvelope.id)
            )
            return [TransactionEnvelopeRecord.model_validate(row) for row in result.scalars().all()]

    # --- envelopes / accounts ----------------------------------------

    async def create_envelope(self, data: EnvelopeCreate) -> EnvelopeRecord:
        async with self._session() as session:
            row = Envelope(**data.model_dump())
            session.add(row)
            await session.flush()
            return EnvelopeRecord.model_validate(row)

    async def get_envelope(self, envelope_id: int) -> EnvelopeRecord | None:
        async with self._session() as session:
            row = await session.get(Envelope, envelope_id)
            return EnvelopeRecord.model_validate(row) if row else None

    async def update_envelope_balance(self, envelope_id: int, balance: Decimal) -> None:
        async with self._session() as session:
            row = await session.get(Envelope, envelope_id)
            if row is None:
                raise RecordNotFoundError("Envelope", envelope_id)
            row.current_balance = balance
            await session.flush()

    async def create_account(self, data: AccountCreate) -> AccountRecord:
        async with self._session() as session:
            row = Account(**data.model_dump())
            session.add(row)
            await session.flush()
            return AccountRecord.model_validate(row)

    async def get_account(self, account_id: int) -> AccountRecord | None:
        async with self._session() as session:
            row = await session.get(Account, account_id)
            return AccountRecord.model_validate(row) if row else None

    async def update_account_balance(self, account_id: int, balance: Decimal) -> None:
        async with self._session() as session:
            row = await session.get(Account, account_id)
            if row is None:
                raise RecordNotFoundError("Account", account_id)
            row.balance = balance
            await session.flush()

    # --- recurring income --------------------------------------------

    async def create_recurring_income(self, data: RecurringIncomeCreate) -> RecurringIncomeRecord:
        async with self._session() as session:
            row = RecurringIncome(
                user_id=data.user_id,
                name=data.name,
                amount=data.amount,
                surplus_envelope_id=data.surplus_envelope_id,
                splits=[
                    RecurringIncomeSplit(envelope_id=split.envelope_id, amount=split.amount, position=index)
                    for index, split in enumerate(data.splits)
                ],
            )
            session.add(row)
            await session.flush()
            return RecurringIncomeRecord.model_validate(row)

    async def recurring_income_for_user(self, user_id: int) -> list[RecurringIncomeRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(RecurringIncome)
                .where(RecurringIncome.user_id == user_id)
                .order_by(RecurringIncome.id)
                .options(selectinload(RecurringIncome.splits))
            )
            return [RecurringIncomeRecord.model_validate(row) for row in result.scalars().all()]
