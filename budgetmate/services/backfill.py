"""Backfill fingerprints on rows created before hashing existed."""

from budgetmate.ledger.base import Ledger
from budgetmate.logger import get_logger
from budgetmate.models.transaction import SourceType
from budgetmate.services.hashing import transaction_hash

logger = get_logger(__name__)


async def backfill_transaction_hashes(ledger: Ledger, user_id: int) -> int:
    """Store ``bank_hash`` on every transaction of the user that lacks one.

    Manual entries only become exact-match targets once they carry a hash.
    Returns the number of rows updated.
    """
    updated = 0
    for txn in await ledger.transactions_for_user(user_id):
        if txn.bank_hash:
            continue
        await ledger.update_transaction(
            txn.id,
            bank_hash=transaction_hash(txn.amount, txn.txn_date, txn.merchant),
            source_type=txn.source_type or SourceType.MANUAL,
        )
        updated += 1

    logger.info("Backfilled transaction hashes", user_id=user_id, updated=updated)
    return updated
