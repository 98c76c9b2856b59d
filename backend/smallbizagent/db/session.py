"""Database engine and session factory."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from smallbizagent.core.config import settings

POOL_SIZE = 10
# Postgres aborts transactions left idle this long (ms), releasing their row locks
IDLE_IN_TRANSACTION_TIMEOUT_MS = 30_000


def build_engine(url: str) -> AsyncEngine:
    """Create the asyncpg engine used by the service.

    Billing writes rely on ``READ COMMITTED``: a conditional ``UPDATE`` re-reads the
    committed row, so the compare-and-set predicates see concurrent writers.
    """
    return create_async_engine(
        url,
        pool_size=POOL_SIZE,
        max_overflow=POOL_SIZE,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_timeout=30,
        isolation_level="READ COMMITTED",
        connect_args={
            "server_settings": {
                "idle_in_transaction_session_timeout": str(IDLE_IN_TRANSACTION_TIMEOUT_MS),
            },
            "command_timeout": 30,
        },
    )


async_engine = build_engine(str(settings.SQLALCHEMY_ASYNC_DATABASE_URI))

AsyncSessionLocal = async_sessionmaker(bind=async_engine, autoflush=False, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session for one request; it is closed when the request ends."""
    async with AsyncSessionLocal() as db:
        yield db
