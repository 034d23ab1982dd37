"""Periodic bank-feed sync.

The scheduler is an explicit object: it owns its ledger, feed and loop task.
Nothing about it is module-global, so several can run side by side in tests.
"""

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from budgetmate.config import Settings, settings
from budgetmate.ledger.base import Ledger
from budgetmate.logger import get_logger, log_exception, log_external_api
from budgetmate.schemas.bank import BankTransactionIn
from budgetmate.services.importer import BankImportService, ImportSummary

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeedBatch:
    """Records for one ledger account, most recent first."""

    account_id: int
    records: Sequence[BankTransactionIn | Mapping[str, Any]]


class BankFeed(Protocol):
    """Bank-aggregation feed. Authentication and paging belong to the implementation."""

    async def fetch_batches(self, user_id: int) -> list[FeedBatch]: ...


class BankSyncScheduler:
    def __init__(
        self,
        ledger: Ledger,
        feed: BankFeed,
        *,
        app_settings: Settings | None = None,
        importer: BankImportService | None = None,
    ) -> None:
        self.ledger = ledger
        self.feed = feed
        self.settings = app_settings or settings
        self.importer = importer or BankImportService(ledger)
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic loop on the running event loop."""
        if self.is_running:
            logger.warning("Bank sync scheduler already running")
            return
        self._task = asyncio.create_task(self._loop(), name="bank-sync-scheduler")
        logger.info(
            "Bank sync scheduler started",
            interval_seconds=self.settings.sync_interval_seconds,
            users=len(self.settings.sync_user_ids),
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Bank sync scheduler stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.sync_interval_seconds)
            await self.run_once()

    @log_external_api("bank_feed", logger=logger)
    async def _fetch(self, user_id: int) -> list[FeedBatch]:
        return await self.feed.fetch_batches(user_id)

    async def run_once(self) -> list[ImportSummary]:
        """Sync every configured user once.

        A feed failure abandons that user's import for this cycle; the next
        cycle retries it.
        """
        summaries: list[ImportSummary] = []
        for user_id in self.settings.sync_user_ids:
            try:
                batches = await self._fetch(user_id)
            except Exception as exc:
                log_exception(
                    logger,
                    exc,
                    "Bank feed fetch failed - retrying next cycle",
                    level="warning",
                    user_id=user_id,
                )
                continue
            summaries.extend(await self._import_batches(user_id, batches))
        return summaries

    async def _import_batches(self, user_id: int, batches: Sequence[FeedBatch]) -> list[ImportSummary]:
        limit = self.settings.sync_batch_limit
        # Accounts never share candidates, so their batches run concurrently.
        results = await asyncio.gather(
            *(
                self.importer.import_batch(list(batch.records)[:limit], user_id, batch.account_id)
                for batch in batches
            ),
            return_exceptions=True,
        )

        summaries: list[ImportSummary] = []
        for batch, result in zip(batches, results, strict=True):
            if isinstance(result, BaseException):
                log_exception(
                    logger,
                    result,
                    "Bank import failed for account",
                    user_id=user_id,
                    account_id=batch.account_id,
                )
                continue
            summaries.append(result)
        return summaries
