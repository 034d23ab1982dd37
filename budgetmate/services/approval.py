"""Approval and the envelope/account balance effects it applies."""

from decimal import Decimal

from budgetmate.exceptions import RecordNotFoundError
from budgetmate.ledger.base import Ledger
from budgetmate.logger import get_logger
from budgetmate.schemas.ledger import TransactionRecord

logger = get_logger(__name__)

CENTS = Decimal("0.01")


async def apply_balance_effects(ledger: Ledger, transaction: TransactionRecord) -> None:
    """Add each split to its envelope and the full amount to the account.

    Envelopes or accounts that no longer exist are skipped with a warning.
    """
    for split in await ledger.transaction_envelopes(transaction.id):
        envelope = await ledger.get_envelope(split.envelope_id)
        if envelope is None:
            logger.warning(
                "Envelope missing during approval",
                transaction_id=transaction.id,
                envelope_id=split.envelope_id,
            )
            continue
        await ledger.update_envelope_balance(
            envelope.id,
            (envelope.current_balance + split.amount).quantize(CENTS),
        )

    account = await ledger.get_account(transaction.account_id)
    if account is None:
        logger.warning(
            "Account missing during approval",
            transaction_id=transaction.id,
            account_id=transaction.account_id,
        )
        return
    await ledger.update_account_balance(account.id, (account.balance + transaction.amount).quantize(CENTS))


async def approve_transaction(ledger: Ledger, transaction_id: int) -> bool:
    """Approve a transaction and propagate its balances exactly once.

    Returns False without touching balances when the transaction is already
    approved. Balance writes and the approval flag commit in one unit.
    """
    async with ledger.atomic():
        transaction = await ledger.get_transaction(transaction_id)
        if transaction is None:
            raise RecordNotFoundError("Transaction", transaction_id)
        if transaction.is_approved:
            logger.debug("Transaction already approved", transaction_id=transaction_id)
            return False

        await apply_balance_effects(ledger, transaction)
        await ledger.update_transaction(transaction_id, is_approved=True)

    logger.info(
        "Transaction approved",
        transaction_id=transaction_id,
        user_id=transaction.user_id,
        amount=str(transaction.amount),
    )
    return True
