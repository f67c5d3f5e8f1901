"""
Async engine and transaction scope for the material store.

No request-scoped session exists here. SqlMaterialStore opens one short
transaction per operation through session_scope(), so a claim, a terminal
write and a log row each commit on their own and never share a transaction
with another curriculum material.

Under Celery the engine must be disposed after each task (see
workers/tasks.py): asyncpg connections are bound to the event loop that
opened them, and run_async() may hand the next task a new loop.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from curriculum_pipeline.core.config import Settings, settings

logger = logging.getLogger(__name__)


def build_engine(config: Settings) -> AsyncEngine:
    return create_async_engine(
        config.database_url,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=config.db_echo_sql,
    )


engine: AsyncEngine = build_engine(settings)

# Rows returned from a committed scope stay readable (expire_on_commit=False).
AsyncSessionLocal: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """One session, one transaction: commit on exit, roll back on error."""
    async with (factory or AsyncSessionLocal)() as session:
        async with session.begin():
            yield session


async def check_db_health() -> dict:
    """SELECT 1 round trip for GET /health."""
    started = time.perf_counter()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Database ping failed | error=%s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}
