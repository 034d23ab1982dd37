"""Tests for the bank transaction processor.

GIVEN: A ledger with manual entries and recurring income definitions
WHEN: Bank-feed records are processed
THEN: Each record is merged, flagged or created with the right side effects
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from budgetmate.exceptions import InvalidBankTransactionError, RecordNotFoundError
from budgetmate.ledger import MemoryLedger
from budgetmate.models.transaction import DuplicateStatus, SourceType
from budgetmate.services.approval import approve_transaction
from budgetmate.services.backfill import backfill_transaction_hashes
from budgetmate.services.hashing import transaction_hash
from budgetmate.services.processor import BankTransactionProcessor, ProcessAction
from tests.factories import (
    AccountCreateFactory,
    BankTransactionFactory,
    RecurringIncomeCreateFactory,
    TransactionCreateFactory,
    split,
)


@pytest.fixture
def processor(ledger, reconciliation_config):
    return BankTransactionProcessor(ledger, reconciliation_config)


@pytest.mark.asyncio
class TestMergeBranch:
    async def test_scenario_exact_match_merges_manual_entry(self, ledger, household, processor):
        """GIVEN: An unapproved manual entry for Countdown with its fingerprint stored
        WHEN: The bank reports COUNTDOWN AUCKLAND 123 for the same amount and day
        THEN: The manual entry absorbs the bank identity and becomes approved"""
        manual = await TransactionCreateFactory.create_async(
            ledger,
            account_id=household.account.id,
            merchant="Countdown",
            amount=Decimal("-45.00"),
            txn_date=date(2025, 1, 10),
        )
        assert await backfill_transaction_hashes(ledger, household.user_id) == 1

        outcome = await processor.process(
            BankTransactionFactory.build(bank_transaction_id="akahu-001", reference="REF-9"),
            household.user_id,
            household.account.id,
        )

        assert outcome.action == ProcessAction.MERGED
        assert outcome.transaction.id == manual.id
        assert outcome.transaction.is_approved is True
        assert outcome.transaction.source_type == SourceType.MANUAL
        assert outcome.transaction.duplicate_status == DuplicateStatus.CONFIRMED
        assert outcome.transaction.bank_transaction_id == "akahu-001"
        assert outcome.transaction.bank_reference == "REF-9"
        assert outcome.transaction.bank_hash == transaction_hash("-45.00", "2025-01-10", "Countdown")
        assert outcome.merged_with is not None
        assert outcome.merged_with.is_approved is False
        assert outcome.merged_with.bank_transaction_id is None
        assert outcome.message == "Matched with existing manual entry for COUNTDOWN AUCKLAND 123"

        # No second row, and the approval moved the account balance once
        assert len(await ledger.transactions_for_user(household.user_id)) == 1
        assert (await ledger.get_account(household.account.id)).balance == Decimal("955.00")

    async def test_merge_of_approved_entry_does_not_double_count(self, ledger, household, processor):
        await TransactionCreateFactory.create_async(
            ledger,
            account_id=household.account.id,
            is_approved=True,
            bank_hash=transaction_hash("-45.00", "2025-01-10", "Countdown"),
        )

        outcome = await processor.process(BankTransactionFactory.build(), household.user_id, household.account.id)

        assert outcome.action == ProcessAction.MERGED
        assert (await ledger.get_account(household.account.id)).balance == Decimal("1000.00")

    async def test_merge_applies_existing_splits(self, ledger, household, processor):
        manual = await ledger.create_transaction(
            TransactionCreateFactory.build(
                account_id=household.account.id,
                bank_hash=transaction_hash("-45.00", "2025-01-10", "Countdown"),
            ),
            [split(household.groceries.id, "-45.00")],
        )

        outcome = await processor.process(BankTransactionFactory.build(), household.user_id, household.account.id)

        assert outcome.transaction.id == manual.id
        assert (await ledger.get_envelope(household.groceries.id)).current_balance == Decimal("-45.00")


@pytest.mark.asyncio
class TestFlagBranch:
    async def test_high_confidence_candidate_is_flagged(self, ledger, household, processor):
        """GIVEN: A manual entry without a fingerprint that scores 100
        WHEN: Processing the matching bank record
        THEN: A new unapproved bank row is created pointing at the manual entry"""
        manual = await TransactionCreateFactory.create_async(ledger, account_id=household.account.id)

        outcome = await processor.process(BankTransactionFactory.build(), household.user_id, household.account.id)

        assert outcome.action == ProcessAction.FLAGGED
        assert outcome.transaction.id != manual.id
        assert outcome.transaction.is_approved is False
        assert outcome.transaction.source_type == SourceType.BANK_SYNC
        assert outcome.transaction.duplicate_status == DuplicateStatus.POTENTIAL
        assert outcome.transaction.duplicate_of_id == manual.id
        assert outcome.transaction.bank_hash == transaction_hash("-45.00", "2025-01-10", "Countdown")
        assert outcome.message == "Potential duplicate of manual entry - requires review"
        assert (await ledger.get_account(household.account.id)).balance == Decimal("1000.00")

    async def test_medium_confidence_is_created_not_flagged(self, ledger, household, processor):
        # 40 + 25 + 0 + 5 = 70
        await TransactionCreateFactory.create_async(
            ledger,
            account_id=household.account.id,
            merchant="Z Energy",
            txn_date=date(2025, 1, 11),
        )

        outcome = await processor.process(BankTransactionFactory.build(), household.user_id, household.account.id)

        assert outcome.action == ProcessAction.CREATED
        assert outcome.transaction.duplicate_status == DuplicateStatus.NONE


@pytest.mark.asyncio
class TestCreateBranch:
    async def test_scenario_no_candidates_creates_approved_row(self, ledger, household, processor):
        """GIVEN: Only a distant unrelated entry
        WHEN: Processing a bank record that matches nothing
        THEN: An approved bank row is created"""
        await TransactionCreateFactory.create_async(
            ledger,
            account_id=household.account.id,
            merchant="Z Energy",
            amount=Decimal("-80.00"),
            txn_date=date(2025, 1, 12),
        )

        outcome = await processor.process(
            BankTransactionFactory.build(memo="weekly shop", description="Card purchase"),
            household.user_id,
            household.account.id,
        )

        assert outcome.action == ProcessAction.CREATED
        assert outcome.transaction.is_approved is True
        assert outcome.transaction.duplicate_status == DuplicateStatus.NONE
        assert outcome.transaction.source_type == SourceType.BANK_SYNC
        assert outcome.transaction.description == "Card purchase"
        assert outcome.transaction.bank_memo == "weekly shop"
        assert outcome.message == "New transaction imported from COUNTDOWN AUCKLAND 123"
        assert outcome.merged_with is None
        assert (await ledger.get_account(household.account.id)).balance == Decimal("955.00")

    async def test_scenario_recurring_income_with_surplus(self, ledger, household, processor):
        """GIVEN: XYZ Payroll expecting 120.00 with 100.00 to savings and a surplus envelope
        WHEN: XYZ PAYROLL pays 120.00
        THEN: An unapproved row is created with the split and a 20.00 surplus split"""
        await RecurringIncomeCreateFactory.create_async(
            ledger,
            splits=[split(household.savings.id, "100.00")],
            surplus_envelope_id=household.surplus.id,
        )

        outcome = await processor.process(
            BankTransactionFactory.build(amount=Decimal("120.00"), merchant="XYZ PAYROLL"),
            household.user_id,
            household.account.id,
        )

        assert outcome.action == ProcessAction.CREATED
        assert outcome.transaction.is_approved is False
        assert outcome.transaction.description == "Auto-matched: XYZ Payroll"
        assert outcome.message == "Imported and matched with recurring income: XYZ Payroll"
        splits = await ledger.transaction_envelopes(outcome.transaction.id)
        assert [(s.envelope_id, s.amount) for s in splits] == [
            (household.savings.id, Decimal("100.00")),
            (household.surplus.id, Decimal("20.00")),
        ]
        # Held for review: nothing moves until approval
        assert (await ledger.get_envelope(household.savings.id)).current_balance == Decimal("0.00")
        assert (await ledger.get_account(household.account.id)).balance == Decimal("1000.00")

    async def test_surplus_rounded_to_cents(self, ledger, household, processor):
        await RecurringIncomeCreateFactory.create_async(
            ledger,
            splits=[split(household.savings.id, "60.00"), split(household.groceries.id, "40.00")],
            surplus_envelope_id=household.surplus.id,
        )

        outcome = await processor.process(
            BankTransactionFactory.build(amount=Decimal("120.004"), merchant="XYZ PAYROLL"),
            household.user_id,
            household.account.id,
        )

        splits = await ledger.transaction_envelopes(outcome.transaction.id)
        assert len(splits) == 3
        assert splits[-1].envelope_id == household.surplus.id
        assert splits[-1].amount == Decimal("20.00")
        assert outcome.transaction.amount == Decimal("120.00")

    async def test_surplus_of_one_cent_is_ignored(self, ledger, household, processor):
        await RecurringIncomeCreateFactory.create_async(
            ledger,
            amount=Decimal("100.00"),
            splits=[split(household.savings.id, "100.00")],
            surplus_envelope_id=household.surplus.id,
        )

        outcome = await processor.process(
            BankTransactionFactory.build(amount=Decimal("100.01"), merchant="XYZ PAYROLL"),
            household.user_id,
            household.account.id,
        )

        splits = await ledger.transaction_envelopes(outcome.transaction.id)
        assert [s.envelope_id for s in splits] == [household.savings.id]

    async def test_recurring_match_without_splits(self, ledger, household, processor):
        definition = await RecurringIncomeCreateFactory.create_async(ledger, surplus_envelope_id=household.surplus.id)

        outcome = await processor.process(
            BankTransactionFactory.build(amount=Decimal("120.00"), merchant="XYZ PAYROLL"),
            household.user_id,
            household.account.id,
        )

        assert outcome.recurring_income.id == definition.id
        assert outcome.transaction.is_approved is False
        assert await ledger.transaction_envelopes(outcome.transaction.id) == []

    async def test_approving_recurring_row_moves_balances(self, ledger, household, processor):
        await RecurringIncomeCreateFactory.create_async(
            ledger,
            splits=[split(household.savings.id, "100.00")],
            surplus_envelope_id=household.surplus.id,
        )
        outcome = await processor.process(
            BankTransactionFactory.build(amount=Decimal("120.00"), merchant="XYZ PAYROLL"),
            household.user_id,
            household.account.id,
        )

        await approve_transaction(ledger, outcome.transaction.id)

        assert (await ledger.get_envelope(household.savings.id)).current_balance == Decimal("100.00")
        assert (await ledger.get_envelope(household.surplus.id)).current_balance == Decimal("20.00")
        assert (await ledger.get_account(household.account.id)).balance == Decimal("1120.00")

    async def test_split_failure_leaves_no_partial_row(self, ledger, household, processor):
        """GIVEN: A recurring definition whose split points at a deleted envelope
        WHEN: Processing the matching payment
        THEN: The error propagates and neither the row nor any split is stored"""
        await RecurringIncomeCreateFactory.create_async(
            ledger,
            splits=[split(household.savings.id, "60.00"), split(9999, "40.00")],
        )

        with pytest.raises(RecordNotFoundError):
            await processor.process(
                BankTransactionFactory.build(amount=Decimal("120.00"), merchant="XYZ PAYROLL"),
                household.user_id,
                household.account.id,
            )

        assert await ledger.transactions_for_user(household.user_id) == []


@pytest.mark.asyncio
async def test_malformed_record_rejected(ledger, household, processor):
    with pytest.raises(InvalidBankTransactionError):
        await processor.process(
            {"amount": "forty", "date": "2025-01-10", "merchant": "X", "bankTransactionId": "b-1"},
            household.user_id,
            household.account.id,
        )
    with pytest.raises(InvalidBankTransactionError):
        await processor.process(
            {"amount": "-1.00", "date": "not-a-date", "merchant": "X", "bankTransactionId": "b-2"},
            household.user_id,
            household.account.id,
        )


@pytest.mark.asyncio
async def test_null_merchant_imported_as_unknown(ledger, household, processor):
    outcome = await processor.process(
        {"amount": "-5.00", "date": "2025-01-10", "merchant": None, "bankTransactionId": "transfer-1"},
        household.user_id,
        household.account.id,
    )

    assert outcome.action == ProcessAction.CREATED
    assert outcome.transaction.merchant == "Unknown Merchant"


class SlowReadLedger(MemoryLedger):
    """Memory ledger whose transaction reads yield to the event loop and count overlap."""

    def __init__(self) -> None:
        super().__init__()
        self.active_reads = 0
        self.max_active_reads = 0

    async def transactions_for_user(self, user_id):
        self.active_reads += 1
        self.max_active_reads = max(self.max_active_reads, self.active_reads)
        try:
            for _ in range(3):
                await asyncio.sleep(0)
            return await super().transactions_for_user(user_id)
        finally:
            self.active_reads -= 1


@pytest.mark.asyncio
class TestScopeSerialization:
    async def test_same_account_detections_do_not_overlap(self, reconciliation_config):
        """GIVEN: Two records for the same user and account
        WHEN: They are processed concurrently
        THEN: The second detection starts only after the first record is fully processed"""
        ledger = SlowReadLedger()
        account = await AccountCreateFactory.create_async(ledger, balance=Decimal("1000.00"))
        processor = BankTransactionProcessor(ledger, reconciliation_config)

        outcomes = await asyncio.gather(
            processor.process(BankTransactionFactory.build(), 1, account.id),
            processor.process(
                BankTransactionFactory.build(merchant="Z Energy", amount=Decimal("-60.00")), 1, account.id
            ),
        )

        assert [o.action for o in outcomes] == [ProcessAction.CREATED, ProcessAction.CREATED]
        assert ledger.max_active_reads == 1
        assert processor._scope_locks == {}

    async def test_different_accounts_run_concurrently(self, reconciliation_config):
        """GIVEN: Two records for different accounts of the same user
        WHEN: They are processed concurrently
        THEN: Their detections overlap and no scope lock is left behind"""
        ledger = SlowReadLedger()
        cheque = await AccountCreateFactory.create_async(ledger, balance=Decimal("1000.00"))
        savings = await AccountCreateFactory.create_async(ledger, balance=Decimal("500.00"))
        processor = BankTransactionProcessor(ledger, reconciliation_config)

        await asyncio.gather(
            processor.process(BankTransactionFactory.build(), 1, cheque.id),
            processor.process(BankTransactionFactory.build(), 1, savings.id),
        )

        assert ledger.max_active_reads == 2
        assert processor._scope_locks == {}
        assert (await ledger.get_account(cheque.id)).balance == Decimal("955.00")
        assert (await ledger.get_account(savings.id)).balance == Decimal("455.00")
