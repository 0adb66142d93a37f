# flowbot/infra/http_client.py
"""
Shared aiohttp sessions for the Telegram Bot API.

The sender (sendMessage, answerCallbackQuery, setWebhook...) and the
getUpdates poller each get one lazily created session, so a long poll never
holds a connection the sender needs. ``close_all_sessions()`` runs once on
shutdown.
"""
from __future__ import annotations

from typing import NamedTuple, Optional

import aiohttp

from flowbot.infra.logging_config import get_logger

logger = get_logger(__name__)


class SessionProfile(NamedTuple):
    total_timeout: Optional[float]
    connect_timeout: float
    pool_limit: int


SENDER = "sender"
POLLER = "poller"

# The poller sets its total timeout per request from the long-poll window
PROFILES: dict[str, SessionProfile] = {
    SENDER: SessionProfile(total_timeout=25, connect_timeout=5, pool_limit=20),
    POLLER: SessionProfile(total_timeout=None, connect_timeout=5, pool_limit=2),
}

_sessions: dict[str, aiohttp.ClientSession] = {}


def get_session(kind: str) -> aiohttp.ClientSession:
    """Return the open session for ``kind``, creating it on first use or after close"""
    session = _sessions.get(kind)
    if session is not None and not session.closed:
        return session

    profile = PROFILES[kind]
    session = aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=profile.total_timeout, connect=profile.connect_timeout),
        connector=aiohttp.TCPConnector(limit=profile.pool_limit, keepalive_timeout=30),
    )
    _sessions[kind] = session
    logger.debug(f"HTTP session opened: kind={kind}, pool_limit={profile.pool_limit}")
    return session


def get_sender_session() -> aiohttp.ClientSession:
    return get_session(SENDER)


def get_poller_session() -> aiohttp.ClientSession:
    return get_session(POLLER)


async def close_all_sessions() -> None:
    while _sessions:
        kind, session = _sessions.popitem()
        if not session.closed:
            await session.close()
            logger.debug(f"HTTP session closed: kind={kind}")
