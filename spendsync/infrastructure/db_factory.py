"""
Database connection factory utilities for spendsync.

Provides the pools used by the PostgreSQL adapters: a psycopg
`AsyncConnectionPool` for the local record store and an asyncpg pool for the
remote record provider. Opening a pool is retried with tenacity for transient
connection failures; individual queries are never retried here.
"""

from __future__ import annotations

from typing import Optional

import asyncpg
import psycopg
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from spendsync.config import get_settings
from spendsync.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn() -> str:
    """Compose the local store DSN from settings."""
    return get_settings().local_dsn


def remote_dsn() -> str:
    """Remote store DSN; falls back to the local database when unset."""
    settings = get_settings()
    return settings.remote_dsn or settings.local_dsn


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
async def open_local_pool(
    dsn: Optional[str] = None,
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
) -> AsyncConnectionPool:
    """
    Open a psycopg async pool with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.

    Returns
    -------
    AsyncConnectionPool
        An opened pool; the caller owns it and must close it.
    """
    settings = get_settings()
    pool = AsyncConnectionPool(
        conninfo=dsn or build_dsn(),
        min_size=min_size or settings.db_pool_min_size,
        max_size=max_size or settings.db_pool_max_size,
        open=False,
    )
    try:
        await pool.open(wait=True, timeout=10.0)
    except Exception:
        await pool.close()
        raise
    log.info("Local store pool opened", extra={"min_size": pool.min_size, "max_size": pool.max_size})
    return pool


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((OSError, ConnectionError, asyncpg.CannotConnectNowError)),
    reraise=True,
)
async def open_remote_pool(dsn: Optional[str] = None, max_size: int = 5) -> asyncpg.Pool:
    """
    Create an asyncpg pool for the remote store with automatic retry.

    Raises
    ------
    OSError
        If the server stays unreachable after all retry attempts.
    """
    pool = await asyncpg.create_pool(dsn or remote_dsn(), min_size=1, max_size=max_size)
    log.info("Remote store pool opened", extra={"max_size": max_size})
    return pool


__all__ = [
    "build_dsn",
    "open_local_pool",
    "open_remote_pool",
    "remote_dsn",
]
