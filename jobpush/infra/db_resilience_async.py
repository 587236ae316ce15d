# jobpush/infra/db_resilience_async.py
"""
Retry on transient asyncpg errors when acquiring a connection.
"""
from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager

import asyncpg
from jobpush.infra.db_async import get_pool
from jobpush.infra.logging_config import get_logger

logger = get_logger(__name__)

_TRANSIENT_PATTERNS = (
    "connection",
    "timeout",
    "closed",
    "network",
    "deadlock",
    "too many connections",
    "server closed",
    "connection reset",
)


def is_transient_error(exc: BaseException) -> bool:
    """
    Check if database error is transient (should retry).

    Transient errors:
    - Connection errors
    - Server closed connection
    - Too many connections
    - Deadlock
    """
    if isinstance(exc, (
        asyncpg.PostgresConnectionError,
        asyncpg.TooManyConnectionsError,
        asyncpg.DeadlockDetectedError,
        ConnectionError,
        asyncio.TimeoutError,
    )):
        return True

    error_message = str(exc).lower()
    return any(pattern in error_message for pattern in _TRANSIENT_PATTERNS)


@asynccontextmanager
async def safe_db_conn(max_retries: int = 3):
    """
    Pooled connection with retry on transient errors while acquiring.

    Usage:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow("SELECT data FROM documents WHERE id = $1", doc_id)

    Only acquisition is retried. Errors raised inside the caller's block
    propagate unchanged, so a query is never replayed behind its back.
    """
    pool = await get_pool()
    delay = 0.1
    attempt = 0

    while True:
        try:
            conn = await pool.acquire()
            break
        except Exception as exc:
            if not is_transient_error(exc):
                raise

            if attempt >= max_retries:
                logger.error(f"Max retries ({max_retries}) exceeded getting connection")
                raise

            attempt += 1
            logger.warning(
                f"Transient error getting connection (attempt {attempt}/{max_retries}): {exc}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
            delay = min(delay * 2.0, 5.0)

    try:
        yield conn
    finally:
        await pool.release(conn)
