"""JSON key-value storage that survives app restarts."""

import json
from typing import Any

import redis.asyncio as redis
import structlog

logger = structlog.get_logger(__name__)


class LocalStore:
    """
    Device-local JSON values on Redis.

    Storage failures are logged and never raised: a missing value reads as
    the default and a failed write leaves the in-memory state authoritative.

    Usage:
        store = LocalStore(await get_redis_client())
        await store.set("newMessages:a@example.com", {"chat-1": 2})
        counts = await store.get("newMessages:a@example.com", {})
    """

    def __init__(self, redis_client: redis.Redis | None, namespace: str = "linkup"):
        self.redis = redis_client
        self.namespace = namespace
        if redis_client is None:
            logger.warning("Local store has no backend, values will not persist")

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str, default: Any = None) -> Any:
        if self.redis is None:
            return default
        try:
            raw = await self.redis.get(self._key(key))
        except redis.RedisError as e:
            logger.warning("Local store read failed", key=key, error=str(e))
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable local value", key=key)
            return default

    async def set(self, key: str, value: Any) -> bool:
        """Store ``value`` as JSON. Returns False if it could not be persisted."""
        if self.redis is None:
            return False
        try:
            await self.redis.set(self._key(key), json.dumps(value))
            return True
        except redis.RedisError as e:
            logger.warning("Local store write failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.delete(self._key(key))
        except redis.RedisError as e:
            logger.warning("Local store delete failed", key=key, error=str(e))
