"""Async engine and session factory for the grading store.

One engine per process. Sessions never expire on commit so that services
can read rows they just wrote while building notifications after the
transaction has closed.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ascent.config import EngineSettings, get_settings
from ascent.shared.utils.logging import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

# Tables the engine cannot run without; checked by init_db.
REQUIRED_TABLES = (
    "athletes",
    "challenges",
    "challenge_grades",
    "challenge_submissions",
    "domain_progress",
    "xp_transactions",
)


def _build_engine(settings: EngineSettings) -> AsyncEngine:
    engine = create_async_engine(
        settings.async_database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
    )
    logger.info(
        "grading_store_engine_created",
        service=settings.service_name,
        pool_size=settings.database_pool_size,
    )
    return engine


def get_session_factory(settings: EngineSettings | None = None) -> async_sessionmaker[AsyncSession]:
    """Session factory handed to ``UnitOfWork``; created on first use."""
    global _engine, _session_factory
    if _session_factory is None:
        _engine = _build_engine(settings or get_settings())
        _session_factory = async_sessionmaker(
            bind=_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def init_db() -> None:
    """Check that the store is reachable and migrated.

    Raises:
        RuntimeError: If any of ``REQUIRED_TABLES`` is missing
    """
    get_session_factory()
    assert _engine is not None
    async with _engine.connect() as conn:
        rows = await conn.execute(
            text(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = current_schema()"
            )
        )
        present = {row[0] for row in rows}

    missing = [name for name in REQUIRED_TABLES if name not in present]
    if missing:
        logger.error("grading_store_not_migrated", missing_tables=missing)
        raise RuntimeError(f"Database is missing tables: {', '.join(missing)}; run alembic upgrade head")
    logger.info("grading_store_verified", tables=len(present))


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("grading_store_closed")
