"""Ledger backends and the startup-time factory that selects one."""

from budgetmate.config import Settings, settings
from budgetmate.ledger.base import Ledger
from budgetmate.ledger.memory import MemoryLedger
from budgetmate.ledger.redis_kv import RedisLedger
from budgetmate.ledger.sql import SqlLedger
from budgetmate.logger import get_logger

logger = get_logger(__name__)


def create_ledger(app_settings: Settings | None = None) -> Ledger:
    """Build the ledger named by ``storage_backend``."""
    app_settings = app_settings or settings
    backend = app_settings.storage_backend

    if backend == "memory":
        ledger: Ledger = MemoryLedger()
    elif backend == "sql":
        ledger = SqlLedger.from_settings(app_settings)
    elif backend == "redis":
        ledger = RedisLedger.from_settings(app_settings)
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    logger.info("Ledger backend selected", backend=backend, environment=app_settings.environment)
    return ledger


__all__ = [
    "Ledger",
    "MemoryLedger",
    "RedisLedger",
    "SqlLedger",
    "create_ledger",
]
