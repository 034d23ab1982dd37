"""Reconciliation services."""

from budgetmate.services.approval import apply_balance_effects, approve_transaction
from budgetmate.services.backfill import backfill_transaction_hashes
from budgetmate.services.duplicates import (
    DuplicateCheck,
    DuplicateConfidence,
    DuplicateDetector,
    ScoredCandidate,
)
from budgetmate.services.hashing import transaction_hash
from budgetmate.services.importer import BankImportService, ImportFailure, ImportSummary
from budgetmate.services.merchant import normalize_merchant
from budgetmate.services.processor import BankTransactionProcessor, ProcessAction, ProcessOutcome
from budgetmate.services.reconciliation_config import ReconciliationConfig, load_reconciliation_config
from budgetmate.services.recurring import RecurringIncomeMatcher
from budgetmate.services.scheduler import BankFeed, BankSyncScheduler, FeedBatch
from budgetmate.services.similarity import levenshtein_distance, string_similarity

__all__ = [
    "BankFeed",
    "BankImportService",
    "BankSyncScheduler",
    "BankTransactionProcessor",
    "DuplicateCheck",
    "DuplicateConfidence",
    "DuplicateDetector",
    "FeedBatch",
    "ImportFailure",
    "ImportSummary",
    "ProcessAction",
    "ProcessOutcome",
    "ReconciliationConfig",
    "RecurringIncomeMatcher",
    "ScoredCandidate",
    "apply_balance_effects",
    "approve_transaction",
    "backfill_transaction_hashes",
    "levenshtein_distance",
    "load_reconciliation_config",
    "normalize_merchant",
    "string_similarity",
    "transaction_hash",
]
