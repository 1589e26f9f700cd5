"""
How Sitter Backend — Database Session Management
==================================================

What:  The async engine, the session factory, the declarative Base shared by
       all models and the per-request session dependency.
How:   asyncpg in production, aiosqlite in the test-suite; the same code
       path serves both.
Who:   Routes (via Depends(get_db_session)), Alembic (Base.metadata), the
       lifespan handler (wait_for_database / dispose_engine) and seed.py.

Transaction Model:
    One session == one transaction == one request. Services only flush; the
    dependency commits once the handler returns. That is what makes
    "lock property → check conflicts → insert arrangement → insert message"
    atomic: any exception on the way rolls every step back together.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential_jitter,
    before_sleep_log,
)

from howsitter.config import settings

logger = logging.getLogger(__name__)


# ── Engine ────────────────────────────────────────────────────────────────
# Pool sizing applies to PostgreSQL only; SQLite picks its own pool class
if settings.database_url.startswith("sqlite"):
    _pool_options = {}
else:
    _pool_options = dict(
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=3600,
    )

engine = create_async_engine(
    settings.database_url,
    pool_pre_ping=settings.db_pool_pre_ping,
    echo=settings.log_level == "DEBUG",
    **_pool_options,
)

# expire_on_commit=False: attributes stay readable after the request commits
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base; its metadata is what Alembic and the tests build from."""
    pass


# ── Request Session ───────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield the request's session; commit when the handler returns normally,
    roll back when anything raises.

    Row locks taken with SELECT ... FOR UPDATE inside the handler are held
    until that commit or rollback.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Startup / Shutdown ────────────────────────────────────────────────────
@retry(
    stop=stop_after_attempt(settings.db_connect_attempts),
    wait=wait_exponential_jitter(
        initial=settings.db_connect_min_wait,
        max=settings.db_connect_max_wait,
    ),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def wait_for_database() -> None:
    """
    Block startup until the database answers `SELECT 1`.

    In docker-compose the API container often starts before PostgreSQL
    accepts connections; the backoff avoids a crash loop.
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def dispose_engine() -> None:
    await engine.dispose()
