"""Database configuration and session management for the relational ledger."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from budgetmate.config import Settings, settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def create_engine_from_settings(app_settings: Settings | None = None) -> AsyncEngine:
    """Create the async engine for ``database_url``.

    Pool sizing only applies to server databases; SQLite uses its default pool.
    """
    app_settings = app_settings or settings
    options: dict = {"echo": app_settings.debug}
    if not app_settings.database_url.startswith("sqlite"):
        options.update(
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=20,
            pool_recycle=3600,
        )
    return create_async_engine(app_settings.database_url, **options)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create ledger tables that do not exist yet."""
    from budgetmate import models  # noqa: F401
    from budgetmate.logger import get_logger

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    get_logger(__name__).info("Database initialized", tables=sorted(Base.metadata.tables))
