"""Duplicate detection between bank-feed records and manual entries."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from budgetmate.ledger.base import Ledger
from budgetmate.logger import get_logger, log_timing
from budgetmate.models.transaction import SourceType
from budgetmate.schemas.bank import BankTransactionIn
from budgetmate.schemas.ledger import TransactionRecord
from budgetmate.services.hashing import transaction_hash
from budgetmate.services.merchant import normalize_merchant
from budgetmate.services.reconciliation_config import ReconciliationConfig, load_reconciliation_config
from budgetmate.services.similarity import string_similarity

logger = get_logger(__name__)

UNAPPROVED_BONUS = 5

# Days apart -> points
DATE_POINTS = {0: 30, 1: 25, 2: 15, 3: 10}


class DuplicateConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class ScoredCandidate:
    """Manual entry scored against an incoming bank record."""

    transaction: TransactionRecord
    score: int
    breakdown: dict[str, int]


@dataclass
class DuplicateCheck:
    """Outcome of duplicate detection for one bank record.

    ``candidates`` only holds scores at or above the potential threshold,
    highest first. When ``exact_match`` is set it is empty.
    """

    bank_hash: str
    exact_match: TransactionRecord | None = None
    candidates: list[ScoredCandidate] = field(default_factory=list)
    confidence: DuplicateConfidence = DuplicateConfidence.LOW

    @property
    def potential_duplicates(self) -> list[TransactionRecord]:
        return [candidate.transaction for candidate in self.candidates]

    @property
    def best(self) -> ScoredCandidate | None:
        return self.candidates[0] if self.candidates else None


def score_amount(incoming: Decimal, candidate: Decimal) -> int:
    """Score amount closeness (0-40)."""
    if incoming == candidate:
        return 40
    diff = abs(incoming - candidate)
    if diff <= Decimal("0.05"):
        return 35
    if diff <= Decimal("1.00"):
        return 20
    return 0


def score_date(incoming: date, candidate: date) -> int:
    """Score date proximity (0-30)."""
    return DATE_POINTS.get(abs((incoming - candidate).days), 0)


def score_merchant(incoming_normalized: str, candidate_normalized: str) -> int:
    """Score normalized merchant similarity (0-25)."""
    if incoming_normalized == candidate_normalized:
        return 25
    similarity = string_similarity(incoming_normalized, candidate_normalized)
    if similarity > 0.8:
        return 20
    if similarity > 0.6:
        return 15
    if similarity > 0.4:
        return 10
    return 0


def score_candidate(
    incoming: BankTransactionIn,
    candidate: TransactionRecord,
    *,
    incoming_normalized: str | None = None,
) -> ScoredCandidate:
    """Calculate the 0-100 duplicate score for one candidate."""
    if incoming_normalized is None:
        incoming_normalized = normalize_merchant(incoming.merchant)

    breakdown = {
        "amount": score_amount(incoming.amount, candidate.amount),
        "date": score_date(incoming.txn_date, candidate.txn_date),
        "merchant": score_merchant(incoming_normalized, normalize_merchant(candidate.merchant)),
        "unapproved": 0 if candidate.is_approved else UNAPPROVED_BONUS,
    }
    return ScoredCandidate(transaction=candidate, score=sum(breakdown.values()), breakdown=breakdown)


def is_potential_duplicate(score: int, config: ReconciliationConfig) -> bool:
    return score >= config.potential_threshold


def classify_confidence(top_score: int | None, config: ReconciliationConfig) -> DuplicateConfidence:
    """Map the best surviving score onto a confidence bucket."""
    if top_score is None:
        return DuplicateConfidence.LOW
    if top_score >= config.high_confidence:
        return DuplicateConfidence.HIGH
    if top_score >= config.medium_confidence:
        return DuplicateConfidence.MEDIUM
    return DuplicateConfidence.LOW


def find_candidates(
    transactions: Iterable[TransactionRecord],
    *,
    account_id: int,
    txn_date: date,
    config: ReconciliationConfig,
) -> list[TransactionRecord]:
    """Manual entries on the same account within the date window.

    Bank-sourced rows are excluded so that bank records never match each other.
    """
    date_start = txn_date - timedelta(days=config.date_window_days)
    date_end = txn_date + timedelta(days=config.date_window_days)
    return [
        txn
        for txn in transactions
        if txn.account_id == account_id
        and date_start <= txn.txn_date <= date_end
        and txn.source_type != SourceType.BANK_SYNC
    ]


class DuplicateDetector:
    """Finds manual entries that an incoming bank record duplicates."""

    def __init__(self, ledger: Ledger, config: ReconciliationConfig | None = None) -> None:
        self.ledger = ledger
        self.config = config or load_reconciliation_config()

    async def detect(
        self,
        incoming: BankTransactionIn | Mapping[str, Any],
        user_id: int,
        account_id: int,
    ) -> DuplicateCheck:
        record = BankTransactionIn.parse(incoming)
        bank_hash = transaction_hash(record.amount, record.txn_date, record.merchant)

        candidates = find_candidates(
            await self.ledger.transactions_for_user(user_id),
            account_id=account_id,
            txn_date=record.txn_date,
            config=self.config,
        )

        # Hash equality is decisive, regardless of fuzzy scores. A row already
        # confirmed by another bank id is not a merge target; a second real
        # payment with the same fingerprint falls through to scoring instead.
        for candidate in candidates:
            if candidate.bank_transaction_id and candidate.bank_transaction_id != record.bank_transaction_id:
                continue
            if candidate.bank_hash == bank_hash:
                logger.info(
                    "Exact duplicate found",
                    user_id=user_id,
                    account_id=account_id,
                    transaction_id=candidate.id,
                    bank_transaction_id=record.bank_transaction_id,
                )
                return DuplicateCheck(
                    bank_hash=bank_hash,
                    exact_match=candidate,
                    confidence=DuplicateConfidence.HIGH,
                )

        with log_timing(
            "score_duplicate_candidates",
            logger=logger,
            level="debug",
            user_id=user_id,
            account_id=account_id,
            bank_transaction_id=record.bank_transaction_id,
        ) as ctx:
            normalized = normalize_merchant(record.merchant)
            scored = [score_candidate(record, candidate, incoming_normalized=normalized) for candidate in candidates]
            # sorted() is stable, so equal scores keep ledger order.
            surviving = sorted(
                (c for c in scored if is_potential_duplicate(c.score, self.config)),
                key=lambda c: c.score,
                reverse=True,
            )
            confidence = classify_confidence(surviving[0].score if surviving else None, self.config)
            ctx.update(candidates=len(candidates), potential=len(surviving), confidence=confidence.value)

        return DuplicateCheck(bank_hash=bank_hash, candidates=surviving, confidence=confidence)
