"""Per-IP request limits (slowapi).

Limits are shared through Redis when REDIS_URL points at a reachable
server, so every API process counts against the same window. Otherwise
each process keeps its own in-memory counters.
"""

import logging
import os

import redis
from slowapi import Limiter
from slowapi.util import get_remote_address

from astralis.core.config import settings

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL", "")
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")


def _storage_uri() -> str:
    if IS_TESTING or not REDIS_URL:
        return "memory://"
    try:
        redis.from_url(REDIS_URL, socket_connect_timeout=1).ping()
    except redis.RedisError as exc:
        logger.warning("Redis unreachable, rate limits fall back to memory: %s", exc)
        return "memory://"
    return REDIS_URL


def _default_limits() -> list[str]:
    if IS_TESTING or settings.RATE_LIMIT_API <= 0:
        return []
    return [f"{settings.RATE_LIMIT_API}/minute"]


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri(),
    default_limits=_default_limits(),
    enabled=not IS_TESTING,
)
