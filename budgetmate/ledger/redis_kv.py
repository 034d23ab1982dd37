"""Key-value ledger on Redis.

Records are stored as JSON strings under namespaced keys::

    {prefix}:ids                          global id counter
    {prefix}:transaction:{id}             TransactionRecord
    {prefix}:transaction:{id}:splits      list of TransactionEnvelopeRecord
    {prefix}:user:{user_id}:transactions  list of transaction ids, creation order
    {prefix}:envelope:{id} / account:{id} / recurring:{id}
    {prefix}:user:{user_id}:recurring     list of recurring income ids

A transaction and its splits are written in one MULTI/EXEC pipeline.
``atomic()`` is the base no-op: Redis cannot roll back across reads, so
multi-call units here are best effort.
"""

from collections.abc import Sequence
from decimal import Decimal
from typing import Any, TypeVar

from pydantic import BaseModel
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from budgetmate.config import Settings
from budgetmate.exceptions import LedgerError, RecordNotFoundError
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

RecordT = TypeVar("RecordT", bound=BaseModel)


class RedisLedger(Ledger):
    def __init__(self, client: aioredis.Redis, *, prefix: str = "budgetmate") -> None:
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "RedisLedger":
        client = aioredis.from_url(app_settings.redis_url, decode_responses=True)
        return cls(client, prefix=app_settings.redis_key_prefix)

    async def close(self) -> None:
        await self._redis.aclose()

    # --- key helpers --------------------------------------------------

    def _key(self, *parts: object) -> str:
        return ":".join([self._prefix, *(str(part) for part in parts)])

    async def _next_id(self) -> int:
        return int(await self._call("incr", self._key("ids")))

    async def _call(self, command: str, *args: Any) -> Any:
        try:
            return await getattr(self._redis, command)(*args)
        except RedisError as exc:
            raise LedgerError(f"Redis {command} failed: {exc}") from exc

    async def _load(self, model: type[RecordT], *parts: object) -> RecordT | None:
        raw = await self._call("get", self._key(*parts))
        return model.model_validate_json(raw) if raw else None

    async def _load_many(self, model: type[RecordT], kind: str, ids: Sequence[str]) -> list[RecordT]:
        if not ids:
            return []
        raws = await self._call("mget", [self._key(kind, record_id) for record_id in ids])
        return [model.model_validate_json(raw) for raw in raws if raw]

    async def _store(self, record: BaseModel, *parts: object) -> None:
        await self._call("set", self._key(*parts), record.model_dump_json())

    async def _require_envelope(self, envelope_id: int) -> None:
        if not await self._call("exists", self._key("envelope", envelope_id)):
            raise RecordNotFoundError("Envelope", envelope_id)

    # --- transactions -------------------------------------------------

    async def transactions_for_user(self, user_id: int) -> list[TransactionRecord]:
        ids = await self._call("lrange", self._key("user", user_id, "transactions"), 0, -1)
        return await self._load_many(TransactionRecord, "transaction", ids)

    async def get_transaction(self, transaction_id: int) -> TransactionRecord | None:
        return await self._load(TransactionRecord, "transaction", transaction_id)

    async def create_transaction(
        self,
        data: TransactionCreate,
        splits: Sequence[EnvelopeSplit] = (),
    ) -> TransactionRecord:
        for split in splits:
            await self._require_envelope(split.envelope_id)

        record = TransactionRecord(id=await self._next_id(), **data.model_dump())
        split_records = [
            TransactionEnvelopeRecord(
                id=await self._next_id(),
                transaction_id=record.id,
                envelope_id=split.envelope_id,
                amount=split.amount,
            )
            for split in splits
        ]

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(self._key("transaction", record.id), record.model_dump_json())
                pipe.rpush(self._key("user", record.user_id, "transactions"), record.id)
                if split_records:
                    pipe.rpush(
                        self._key("transaction", record.id, "splits"),
                        *(split.model_dump_json() for split in split_records),
                    )
                await pipe.execute()
        except RedisError as exc:
            raise LedgerError(f"Redis transaction write failed: {exc}") from exc
        return record

    async def update_transaction(self, transaction_id: int, **fields: Any) -> None:
        validate_transaction_updates(fields)
        existing = await self.get_transaction(transaction_id)
        if existing is None:
            raise RecordNotFoundError("Transaction", transaction_id)
        await self._store(existing.model_copy(update=fields), "transaction", transaction_id)

    async def delete_transaction(self, transaction_id: int) -> None:
        existing = await self.get_transaction(transaction_id)
        if existing is None:
            raise RecordNotFoundError("Transaction", transaction_id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(self._key("transaction", transaction_id), self._key("transaction", transaction_id, "splits"))
                pipe.lrem(self._key("user", existing.user_id, "transactions"), 0, transaction_id)
                await pipe.execute()
        except RedisError as exc:
            raise LedgerError(f"Redis transaction delete failed: {exc}") from exc

    async def create_transaction_envelope_split(
        self,
        transaction_id: int,
        envelope_id: int,
        amount: Decimal,
    ) -> None:
        if await self.get_transaction(transaction_id) is None:
            raise RecordNotFoundError("Transaction", transaction_id)
        await self._require_envelope(envelope_id)
        split = TransactionEnvelopeRecord(
            id=await self._next_id(),
            transaction_id=transaction_id,
            envelope_id=envelope_id,
            amount=amount,
        )
        await self._call("rpush", self._key("transaction", transaction_id, "splits"), split.model_dump_json())

    async def transaction_envelopes(self, transaction_id: int) -> list[TransactionEnvelopeRecord]:
        raws = await self._call("lrange", self._key("transaction", transaction_id, "splits"), 0, -1)
        return [TransactionEnvelopeRecord.model_validate_json(raw) for raw in raws]

    # --- envelopes / accounts ----------------------------------------

    async def create_envelope(self, data: EnvelopeCreate) -> EnvelopeRecord:
        record = EnvelopeRecord(id=await self._next_id(), **data.model_dump())
        await self._store(record, "envelope", record.id)
        return record

    async def get_envelope(self, envelope_id: int) -> EnvelopeRecord | None:
        return await self._load(EnvelopeRecord, "envelope", envelope_id)

    async def update_envelope_balance(self, envelope_id: int, balance: Decimal) -> None:
        envelope = await self.get_envelope(envelope_id)
        if envelope is None:
            raise RecordNotFoundError("Envelope", envelope_id)
        await self._store(envelope.model_copy(update={"current_balance": balance}), "envelope", envelope_id)

    async def create_account(self, data: AccountCreate) -> AccountRecord:
        record = AccountRecord(id=await self._next_id(), **data.model_dump())
        await self._store(record, "account", record.id)
        return record

    async def get_account(self, account_id: int) -> AccountRecord | None:
        return await self._load(AccountRecord, "account", account_id)

    async def update_account_balance(self, account_id: int, balance: Decimal) -> None:
        account = await self.get_account(account_id)
        if account is None:
            raise RecordNotFoundError("Account", account_id)
        await self._store(account.model_copy(update={"balance": balance}), "account", account_id)

    # --- recurring income --------------------------------------------

    async def create_recurring_income(self, data: RecurringIncomeCreate) -> RecurringIncomeRecord:
        record = RecurringIncomeRecord(id=await self._next_id(), **data.model_dump())
        await self._store(record, "recurring", record.id)
        await self._call("rpush", self._key("user", record.user_id, "recurring"), record.id)
        return record

    async def recurring_income_for_user(self, user_id: int) -> list[RecurringIncomeRecord]:
        ids = await self._call("lrange", self._key("user", user_id, "recurring"), 0, -1)
        return await self._load_many(RecurringIncomeRecord, "recurring", ids)
