# jobpush/infra/http_client.py
"""
Shared aiohttp sessions.

Session profiles
~~~~~~~~~~~~~~~~
- **fcm** - FCM ``messages:send`` calls. One job fan-out can issue a
  full chunk of requests at once, so the pool limit follows
  ``fcm_max_concurrency`` (total=25 s, connect=5 s).

Call ``close_all_sessions()`` once during application shutdown; a send
attempted afterwards opens a fresh session.
"""
from __future__ import annotations

import aiohttp

from jobpush.config import settings
from jobpush.infra.logging_config import get_logger

logger = get_logger(__name__)

USER_AGENT = "jobpush/1.0 (+fcm-v1)"

_sessions: dict[str, aiohttp.ClientSession] = {}


def _get_or_create(
    name: str,
    timeout: aiohttp.ClientTimeout,
    limit: int = 10,
) -> aiohttp.ClientSession:
    session = _sessions.get(name)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
            connector=aiohttp.TCPConnector(keepalive_timeout=30, limit=limit),
        )
        _sessions[name] = session
        logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
    return session


def get_fcm_session() -> aiohttp.ClientSession:
    """Session for FCM HTTP v1 calls."""
    return _get_or_create(
        "fcm",
        aiohttp.ClientTimeout(total=25, connect=5),
        limit=max(settings.fcm_max_concurrency, 1),
    )


async def close_all_sessions() -> None:
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
