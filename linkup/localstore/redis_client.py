"""
Redis connection for the device-local key-value store.

Returns a shared async client, fakeredis under the test environment, and
None when no Redis is reachable so callers can run without persistence.
"""

from typing import Optional

import redis.asyncio as redis
import structlog

from linkup.common.settings import get_settings

logger = structlog.get_logger(__name__)

_redis_client: Optional[redis.Redis] = None
_connection_failed = False


def _redacted(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url.split("//")[-1]


async def get_redis_client(use_fake: bool | None = None) -> Optional[redis.Redis]:
    """
    Get or create the shared async Redis client.

    Args:
        use_fake: If True, use fakeredis. If None, use it when LINKUP_APP_ENV=test.

    Returns:
        Redis client instance, or None if Redis is not configured or unreachable.
    """
    global _redis_client, _connection_failed

    settings = get_settings()
    if use_fake is None:
        use_fake = settings.is_test

    if use_fake:
        if _redis_client is None:
            from fakeredis import aioredis as fakeredis

            _redis_client = fakeredis.FakeRedis(decode_responses=True)
            logger.info("Using fakeredis for local storage")
        return _redis_client

    if _connection_failed:
        return None

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            return _redis_client
        except redis.RedisError as e:
            logger.warning("Local store connection lost, reconnecting", error=str(e))
            _redis_client = None

    if not settings.redis_url:
        logger.warning(
            "LINKUP_REDIS_URL not configured, local state will not persist",
            hint="Set LINKUP_REDIS_URL to keep unread counts and theme across restarts",
        )
        _connection_failed = True
        return None

    try:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
        await _redis_client.ping()
        logger.info("Local store connected", url=_redacted(settings.redis_url))
        return _redis_client
    except redis.RedisError as e:
        logger.error("Local store connection failed", error=str(e), url=_redacted(settings.redis_url))
        _redis_client = None
        _connection_failed = True
        return None


async def close_redis_client() -> None:
    """Close the shared client and forget any previous connection failure."""
    global _redis_client, _connection_failed

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("Local store closed")
        except redis.RedisError as e:
            logger.warning("Error closing local store", error=str(e))
    _redis_client = None
    _connection_failed = False
