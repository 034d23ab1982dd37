"""Create / merge / flag decision for one incoming bank record."""

import asyncio
from collections import Counter
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from budgetmate.exceptions import RecordNotFoundError
from budgetmate.ledger.base import Ledger
from budgetmate.logger import get_logger
from budgetmate.models.transaction import DuplicateStatus, SourceType
from budgetmate.schemas.bank import BankTransactionIn
from budgetmate.schemas.ledger import (
    EnvelopeSplit,
    RecurringIncomeRecord,
    TransactionCreate,
    TransactionRecord,
)
from budgetmate.services.approval import CENTS, approve_transaction
from budgetmate.services.duplicates import (
    DuplicateCheck,
    DuplicateConfidence,
    DuplicateDetector,
    ScoredCandidate,
)
from budgetmate.services.reconciliation_config import ReconciliationConfig, load_reconciliation_config
from budgetmate.services.recurring import RecurringIncomeMatcher

logger = get_logger(__name__)

SURPLUS_MINIMUM = Decimal("0.01")


class ProcessAction(str, Enum):
    CREATED = "created"
    MERGED = "merged"
    FLAGGED = "flagged"


@dataclass
class ProcessOutcome:
    action: ProcessAction
    transaction: TransactionRecord
    message: str
    # Pre-merge snapshot of the manual entry
    merged_with: TransactionRecord | None = None
    recurring_income: RecurringIncomeRecord | None = None


def recurring_splits(definition: RecurringIncomeRecord, amount: Decimal) -> list[EnvelopeSplit]:
    """Configured splits plus a surplus split for anything beyond their total."""
    if not definition.splits:
        return []

    splits = list(definition.splits)
    surplus = amount - sum((split.amount for split in splits), Decimal("0"))
    if surplus > SURPLUS_MINIMUM and definition.surplus_envelope_id is not None:
        splits.append(EnvelopeSplit(envelope_id=definition.surplus_envelope_id, amount=surplus.quantize(CENTS)))
    return splits


class BankTransactionProcessor:
    """Reconciles bank-feed records against the ledger.

    Calls for the same (user, account) scope are serialized: detection reads
    the whole transaction set, so two overlapping runs could both miss each
    other's writes. Different scopes run concurrently.
    """

    def __init__(
        self,
        ledger: Ledger,
        config: ReconciliationConfig | None = None,
        *,
        detector: DuplicateDetector | None = None,
        matcher: RecurringIncomeMatcher | None = None,
    ) -> None:
        self.ledger = ledger
        self.config = config or load_reconciliation_config()
        self.detector = detector or DuplicateDetector(ledger, self.config)
        self.matcher = matcher or RecurringIncomeMatcher(ledger, self.config)
        # One lock per (user, account) scope while any call for it is in flight.
        self._scope_locks: dict[tuple[int, int], asyncio.Lock] = {}
        self._scope_users: Counter[tuple[int, int]] = Counter()

    @asynccontextmanager
    async def _scope(self, user_id: int, account_id: int) -> AsyncIterator[None]:
        key = (user_id, account_id)
        lock = self._scope_locks.setdefault(key, asyncio.Lock())
        self._scope_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._scope_users[key] -= 1
            if not self._scope_users[key]:
                del self._scope_users[key]
                del self._scope_locks[key]

    async def process(
        self,
        incoming: BankTransactionIn | Mapping[str, Any],
        user_id: int,
        account_id: int,
    ) -> ProcessOutcome:
        record = BankTransactionIn.parse(incoming)
        async with self._scope(user_id, account_id):
            check = await self.detector.detect(record, user_id, account_id)

            best = check.best
            if check.exact_match is not None:
                outcome = await self._merge(record, check, check.exact_match)
            elif check.confidence == DuplicateConfidence.HIGH and best is not None:
                outcome = await self._flag(record, check, best, user_id, account_id)
            else:
                outcome = await self._create(record, check, user_id, account_id)

        logger.info(
            "Bank transaction processed",
            action=outcome.action.value,
            user_id=user_id,
            account_id=account_id,
            bank_transaction_id=record.bank_transaction_id,
            transaction_id=outcome.transaction.id,
        )
        return outcome

    def _new_transaction(
        self,
        record: BankTransactionIn,
        check: DuplicateCheck,
        user_id: int,
        account_id: int,
        **overrides: Any,
    ) -> TransactionCreate:
        fields: dict[str, Any] = {
            "user_id": user_id,
            "account_id": account_id,
            "merchant": record.merchant,
            "description": record.description,
            "amount": record.amount,
            "txn_date": record.txn_date,
            "source_type": SourceType.BANK_SYNC,
            "bank_transaction_id": record.bank_transaction_id,
            "bank_hash": check.bank_hash,
            "bank_reference": record.reference,
            "bank_memo": record.memo,
        }
        fields.update(overrides)
        return TransactionCreate(**fields)

    async def _reload(self, transaction_id: int) -> TransactionRecord:
        transaction = await self.ledger.get_transaction(transaction_id)
        if transaction is None:
            raise RecordNotFoundError("Transaction", transaction_id)
        return transaction

    async def _merge(
        self,
        record: BankTransactionIn,
        check: DuplicateCheck,
        existing: TransactionRecord,
    ) -> ProcessOutcome:
        async with self.ledger.atomic():
            # The manual entry keeps its identity; the bank record only corroborates it.
            await self.ledger.update_transaction(
                existing.id,
                bank_transaction_id=record.bank_transaction_id,
                source_type=SourceType.MANUAL,
                duplicate_status=DuplicateStatus.CONFIRMED,
                bank_hash=check.bank_hash,
                bank_reference=record.reference,
                bank_memo=record.memo,
            )
            await approve_transaction(self.ledger, existing.id)
            updated = await self._reload(existing.id)

        return ProcessOutcome(
            action=ProcessAction.MERGED,
            transaction=updated,
            merged_with=existing,
            message=f"Matched with existing manual entry for {record.merchant}",
        )

    async def _flag(
        self,
        record: BankTransactionIn,
        check: DuplicateCheck,
        best: ScoredCandidate,
        user_id: int,
        account_id: int,
    ) -> ProcessOutcome:
        transaction = await self.ledger.create_transaction(
            self._new_transaction(
                record,
                check,
                user_id,
                account_id,
                is_approved=False,
                duplicate_status=DuplicateStatus.POTENTIAL,
                duplicate_of_id=best.transaction.id,
            )
        )
        logger.info(
            "Potential duplicate flagged for review",
            transaction_id=transaction.id,
            duplicate_of_id=best.transaction.id,
            score=best.score,
            breakdown=best.breakdown,
        )
        return ProcessOutcome(
            action=ProcessAction.FLAGGED,
            transaction=transaction,
            message="Potential duplicate of manual entry - requires review",
        )

    async def _create(
        self,
        record: BankTransactionIn,
        check: DuplicateCheck,
        user_id: int,
        account_id: int,
    ) -> ProcessOutcome:
        definition = await self.matcher.match(user_id, record)

        if definition is None:
            async with self.ledger.atomic():
                created = await self.ledger.create_transaction(
                    self._new_transaction(record, check, user_id, account_id)
                )
                await approve_transaction(self.ledger, created.id)
                transaction = await self._reload(created.id)
            return ProcessOutcome(
                action=ProcessAction.CREATED,
                transaction=transaction,
                message=f"New transaction imported from {record.merchant}",
            )

        # Held for review so the split allocation can be confirmed before balances move.
        splits = recurring_splits(definition, record.amount)
        transaction = await self.ledger.create_transaction(
            self._new_transaction(
                record,
                check,
                user_id,
                account_id,
                description=f"Auto-matched: {definition.name}",
                is_approved=False,
            ),
            splits,
        )
        logger.info(
            "Applied recurring income splits",
            transaction_id=transaction.id,
            recurring_income_id=definition.id,
            splits=len(splits),
        )
        if definition.splits:
            message = f"Imported and matched with recurring income: {definition.name}"
        else:
            message = f"New transaction imported from {record.merchant}"
        return ProcessOutcome(
            action=ProcessAction.CREATED,
            transaction=transaction,
            message=message,
            recurring_income=definition,
        )
