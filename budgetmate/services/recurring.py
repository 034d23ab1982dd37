"""Recurring-income matching for incoming bank credits."""

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from budgetmate.ledger.base import Ledger
from budgetmate.logger import get_logger
from budgetmate.schemas.bank import BankTransactionIn
from budgetmate.schemas.ledger import RecurringIncomeRecord
from budgetmate.services.reconciliation_config import ReconciliationConfig, load_reconciliation_config

logger = get_logger(__name__)


def extract_keywords(name: str) -> list[str]:
    """Lowercased words of the definition name longer than two characters."""
    return [word for word in name.lower().split() if len(word) > 2]


def amount_tolerance(expected: Decimal, config: ReconciliationConfig) -> Decimal:
    return max(expected * config.recurring_tolerance_percent, config.recurring_tolerance_minimum)


def matches_definition(
    definition: RecurringIncomeRecord,
    *,
    amount: Decimal,
    merchant: str,
    memo: str | None,
    config: ReconciliationConfig,
) -> bool:
    """Amount within tolerance, plus a name keyword in merchant/memo or a very close amount."""
    amount_diff = abs(amount - definition.amount)
    if amount_diff > amount_tolerance(definition.amount, config):
        return False

    if amount_diff <= config.recurring_close_match:
        return True

    haystacks = [merchant.lower(), (memo or "").lower()]
    return any(keyword in text for keyword in extract_keywords(definition.name) for text in haystacks)


def first_matching_definition(
    definitions: Iterable[RecurringIncomeRecord],
    *,
    amount: Decimal,
    merchant: str,
    memo: str | None,
    config: ReconciliationConfig,
) -> RecurringIncomeRecord | None:
    """First-fit over ``definitions``; later, possibly closer, definitions are not considered."""
    if amount <= 0:
        return None
    for definition in definitions:
        if matches_definition(definition, amount=amount, merchant=merchant, memo=memo, config=config):
            return definition
    return None


class RecurringIncomeMatcher:
    """Matches positive bank records to the user's recurring income definitions."""

    def __init__(self, ledger: Ledger, config: ReconciliationConfig | None = None) -> None:
        self.ledger = ledger
        self.config = config or load_reconciliation_config()

    async def match(
        self,
        user_id: int,
        incoming: BankTransactionIn | Mapping[str, Any],
    ) -> RecurringIncomeRecord | None:
        record = BankTransactionIn.parse(incoming)
        # Expenses never match; skip the storage read.
        if record.amount <= 0:
            return None

        definition = first_matching_definition(
            await self.ledger.recurring_income_for_user(user_id),
            amount=record.amount,
            merchant=record.merchant,
            memo=record.memo,
            config=self.config,
        )
        if definition is not None:
            logger.info(
                "Recurring income matched",
                user_id=user_id,
                recurring_income_id=definition.id,
                recurring_income_name=definition.name,
                bank_transaction_id=record.bank_transaction_id,
            )
        return definition
