# jobpush/infra/db_async.py
"""
Async database connection using asyncpg.
The pool is created once at startup and shared by the document store.
"""
from __future__ import annotations

import asyncpg
from jobpush.config import settings
from jobpush.infra.logging_config import get_logger

logger = get_logger(__name__)

# Global connection pool
_pool: asyncpg.Pool | None = None


async def init_pool() -> None:
    """Initialize connection pool on startup"""
    global _pool

    if _pool is not None:
        return

    logger.info("Initializing asyncpg connection pool")

    _pool = await asyncpg.create_pool(
        dsn=settings.database_dsn,
        min_size=settings.pg_pool_min,
        max_size=settings.pg_pool_max,
        command_timeout=settings.pg_command_timeout,
        server_settings={
            'application_name': 'jobpush',
            # This service never writes to the store
            'default_transaction_read_only': 'on',
        }
    )

    logger.info(f"Connection pool created: min={settings.pg_pool_min}, max={settings.pg_pool_max}")


async def close_pool() -> None:
    """Close connection pool on shutdown"""
    global _pool

    if _pool is None:
        return

    logger.info("Closing connection pool")
    await _pool.close()
    _pool = None
    logger.info("Connection pool closed")


async def get_pool() -> asyncpg.Pool:
    """Get the connection pool directly (for health checks)"""
    if _pool is None:
        raise RuntimeError("Connection pool not initialized")
    return _pool
