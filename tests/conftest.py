"""Test fixtures and configuration."""

import logging
import sys
from dataclasses import dataclass
from decimal import Decimal

import pytest
import pytest_asyncio
import structlog

from budgetmate.config import Settings
from budgetmate.database import create_engine_from_settings, create_session_maker, init_db
from budgetmate.ledger import Ledger, MemoryLedger, SqlLedger
from budgetmate.schemas import AccountRecord, EnvelopeRecord
from budgetmate.services.reconciliation_config import DEFAULT_CONFIG, ReconciliationConfig
from tests.factories import AccountCreateFactory, EnvelopeCreateFactory

USER_ID = 1


# --- Structlog Configuration for Tests ---
@pytest.fixture(autouse=True, scope="session")
def configure_structlog_for_tests():
    """Configure structlog for proper capsys capture in tests."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
        foreign_pre_chain=processors[:-1],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    yield

    structlog.reset_defaults()


@pytest.fixture
def reconciliation_config() -> ReconciliationConfig:
    return DEFAULT_CONFIG


def sqlite_settings(tmp_path) -> Settings:
    """Settings pointing the relational ledger at a throwaway SQLite file."""
    return Settings().model_copy(update={"database_url": f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"})


async def build_sql_ledger(tmp_path) -> SqlLedger:
    engine = create_engine_from_settings(sqlite_settings(tmp_path))
    await init_db(engine)
    return SqlLedger(create_session_maker(engine), engine=engine)


@pytest.fixture
def memory_ledger() -> MemoryLedger:
    return MemoryLedger()


@pytest_asyncio.fixture
async def sql_ledger(tmp_path):
    ledger = await build_sql_ledger(tmp_path)
    yield ledger
    await ledger.close()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def ledger(request, tmp_path):
    """Every backend that runs without external services."""
    if request.param == "memory":
        backend: Ledger = MemoryLedger()
    else:
        backend = await build_sql_ledger(tmp_path)
    yield backend
    await backend.close()


@dataclass
class Household:
    """One user with a cheque account and three envelopes."""

    user_id: int
    account: AccountRecord
    groceries: EnvelopeRecord
    savings: EnvelopeRecord
    surplus: EnvelopeRecord


@pytest_asyncio.fixture
async def household(ledger) -> Household:
    account = await AccountCreateFactory.create_async(ledger, user_id=USER_ID, balance=Decimal("1000.00"))
    groceries = await EnvelopeCreateFactory.create_async(ledger, user_id=USER_ID, name="Groceries")
    savings = await EnvelopeCreateFactory.create_async(ledger, user_id=USER_ID, name="Savings")
    surplus = await EnvelopeCreateFactory.create_async(ledger, user_id=USER_ID, name="Buffer")
    return Household(user_id=USER_ID, account=account, groceries=groceries, savings=savings, surplus=surplus)
