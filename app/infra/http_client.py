# app/infra/http_client.py
"""
Shared HTTP client session for outbound push provider calls.

A lazy-initialized aiohttp.ClientSession singleton avoids per-request
session creation and TCP connection churn when fanning out to the
FCM HTTP v1 API.

Call ``close_all_sessions()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from app.infra.logging_config import get_logger

logger = get_logger(__name__)

_sessions: dict[str, aiohttp.ClientSession] = {}


def _get_or_create(
    name: str,
    timeout: aiohttp.ClientTimeout,
    limit: int = 10,
) -> aiohttp.ClientSession:
    """Return an existing session or create a new one."""
    session = _sessions.get(name)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            timeout=timeout,
            connector=aiohttp.TCPConnector(
                keepalive_timeout=30,
                limit=limit,
                enable_cleanup_closed=True,
            ),
        )
        _sessions[name] = session
        logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
    return session


def get_push_session(limit: int = 20) -> aiohttp.ClientSession:
    """Session for push provider sends (total=25 s, connect=5 s)."""
    return _get_or_create(
        "push",
        aiohttp.ClientTimeout(total=25, connect=5),
        limit=limit,
    )


async def close_all_sessions() -> None:
    """Gracefully close every managed session.  Call during app shutdown."""
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
