"""Batch import of bank-feed records for one account."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from budgetmate.exceptions import BudgetMateError
from budgetmate.ledger.base import Ledger
from budgetmate.logger import async_log_timing, get_logger, log_exception
from budgetmate.schemas.bank import BankTransactionIn
from budgetmate.services.processor import BankTransactionProcessor, ProcessAction, ProcessOutcome

logger = get_logger(__name__)


@dataclass
class ImportFailure:
    bank_transaction_id: str | None
    error: str
    error_type: str


@dataclass
class ImportSummary:
    """Per-record results of one batch."""

    user_id: int
    account_id: int
    outcomes: list[ProcessOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[ImportFailure] = field(default_factory=list)

    def _count(self, action: ProcessAction) -> int:
        return sum(1 for outcome in self.outcomes if outcome.action == action)

    @property
    def created(self) -> int:
        return self._count(ProcessAction.CREATED)

    @property
    def merged(self) -> int:
        return self._count(ProcessAction.MERGED)

    @property
    def flagged(self) -> int:
        return self._count(ProcessAction.FLAGGED)

    @property
    def failed(self) -> int:
        return len(self.failures)


def _raw_bank_id(raw: BankTransactionIn | Mapping[str, Any]) -> str | None:
    if isinstance(raw, BankTransactionIn):
        return raw.bank_transaction_id
    value = raw.get("bank_transaction_id", raw.get("bankTransactionId"))
    return str(value) if value is not None else None


class BankImportService:
    """Feeds records one at a time through the processor.

    Records already imported (same bank transaction id) are skipped. A record
    that fails is logged and recorded in the summary; the batch continues.
    """

    def __init__(self, ledger: Ledger, processor: BankTransactionProcessor | None = None) -> None:
        self.ledger = ledger
        self.processor = processor or BankTransactionProcessor(ledger)

    async def import_batch(
        self,
        records: Iterable[BankTransactionIn | Mapping[str, Any]],
        user_id: int,
        account_id: int,
    ) -> ImportSummary:
        summary = ImportSummary(user_id=user_id, account_id=account_id)
        seen = {
            txn.bank_transaction_id
            for txn in await self.ledger.transactions_for_user(user_id)
            if txn.bank_transaction_id
        }

        async with async_log_timing("import_batch", logger=logger, user_id=user_id, account_id=account_id) as ctx:
            for raw in records:
                bank_id = _raw_bank_id(raw)
                try:
                    record = BankTransactionIn.parse(raw)
                    if record.bank_transaction_id in seen:
                        summary.skipped.append(record.bank_transaction_id)
                        continue
                    outcome = await self.processor.process(record, user_id, account_id)
                except BudgetMateError as exc:
                    log_exception(
                        logger,
                        exc,
                        "Failed to import bank transaction",
                        level="warning",
                        include_traceback=False,
                        user_id=user_id,
                        account_id=account_id,
                        bank_transaction_id=bank_id,
                    )
                    summary.failures.append(
                        ImportFailure(bank_transaction_id=bank_id, error=str(exc), error_type=type(exc).__name__)
                    )
                    continue
                except Exception as exc:
                    log_exception(
                        logger,
                        exc,
                        "Unexpected error importing bank transaction",
                        user_id=user_id,
                        account_id=account_id,
                        bank_transaction_id=bank_id,
                    )
                    summary.failures.append(
                        ImportFailure(bank_transaction_id=bank_id, error=str(exc), error_type=type(exc).__name__)
                    )
                    continue

                seen.add(record.bank_transaction_id)
                summary.outcomes.append(outcome)

            ctx.update(
                created=summary.created,
                merged=summary.merged,
                flagged=summary.flagged,
                skipped=len(summary.skipped),
                failed=summary.failed,
            )
        return summary
