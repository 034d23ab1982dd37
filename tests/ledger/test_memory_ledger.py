"""Tests specific to the in-memory ledger."""

import asyncio
from decimal import Decimal

import pytest

from tests.factories import EnvelopeCreateFactory, TransactionCreateFactory


@pytest.mark.asyncio
async def test_ids_are_unique_across_tables(memory_ledger):
    envelope = await EnvelopeCreateFactory.create_async(memory_ledger)
    txn = await TransactionCreateFactory.create_async(memory_ledger)
    assert envelope.id != txn.id


@pytest.mark.asyncio
async def test_rollback_does_not_discard_other_tasks_writes(memory_ledger):
    """GIVEN: One task inside a unit that will fail and another writing concurrently
    WHEN: The first unit rolls back
    THEN: The second task's write survives"""
    envelope = await EnvelopeCreateFactory.create_async(memory_ledger)
    entered = asyncio.Event()

    async def failing_unit():
        async with memory_ledger.atomic():
            await memory_ledger.update_envelope_balance(envelope.id, Decimal("50.00"))
            entered.set()
            await asyncio.sleep(0.01)
            raise RuntimeError("abort")

    async def other_writer():
        await entered.wait()
        await TransactionCreateFactory.create_async(memory_ledger, merchant="Concurrent")

    results = await asyncio.gather(failing_unit(), other_writer(), return_exceptions=True)

    assert isinstance(results[0], RuntimeError)
    assert [t.merchant for t in await memory_ledger.transactions_for_user(1)] == ["Concurrent"]
    assert (await memory_ledger.get_envelope(envelope.id)).current_balance == Decimal("0.00")
