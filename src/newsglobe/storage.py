from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class StorageManager:
    """Manages Redis or in-memory storage with automatic fallback"""

    def __init__(self, redis_url: str | None = None):
        self.redis_url = redis_url or ""
        self.redis_client: Optional[redis.Redis] = None
        self.memory_storage: Dict[str, Tuple[Any, Optional[float]]] = {}
        self.memory_lists: Dict[str, List[Any]] = {}
        self.use_redis = False

    @property
    def backend(self) -> str:
        return "redis" if self.use_redis else "memory"

    async def connect(self):
        """Attempt Redis connection, fallback to memory"""
        if not self.redis_url:
            logger.info("No REDIS_URL configured, using in-memory storage")
            return
        try:
            self.redis_client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5
            )
            await self.redis_client.ping()
            self.use_redis = True
            logger.info("Redis connected successfully")
        except Exception as e:
            logger.warning(f"Redis connection failed: {e}. Using in-memory storage")
            self.redis_client = None

    async def close(self):
        """Close Redis connection"""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
            self.use_redis = False

    async def ping(self) -> bool:
        if not (self.use_redis and self.redis_client):
            return True
        try:
            return bool(await self.redis_client.ping())
        except Exception as e:
            logger.error(f"Redis ping error: {e}")
            return False

    async def get(self, key: str) -> Optional[Any]:
        """Retrieve value from storage"""
        if self.use_redis and self.redis_client:
            try:
                data = await self.redis_client.get(key)
                return json.loads(data) if data else None
            except Exception as e:
                logger.error(f"Redis get error: {e}")

        item = self.memory_storage.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= time.monotonic():
            self.memory_storage.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """Store value, optionally with a TTL in seconds"""
        if self.use_redis and self.redis_client:
            try:
                await self.redis_client.set(key, json.dumps(value), ex=ttl)
                return
            except Exception as e:
                logger.error(f"Redis set error: {e}")

        self._purge_expired()
        expires_at = time.monotonic() + ttl if ttl else None
        self.memory_storage[key] = (value, expires_at)

    def _purge_expired(self):
        """Drop expired in-memory keys; reads only evict the key they touch"""
        now = time.monotonic()
        expired = [
            key for key, (_, expires_at) in self.memory_storage.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self.memory_storage[key]

    async def delete(self, key: str):
        """Delete value from storage"""
        if self.use_redis and self.redis_client:
            try:
                await self.redis_client.delete(key)
                return
            except Exception as e:
                logger.error(f"Redis delete error: {e}")

        self.memory_storage.pop(key, None)
        self.memory_lists.pop(key, None)

    async def exists(self, key: str) -> bool:
        """Check if key exists"""
        if self.use_redis and self.redis_client:
            try:
                return await self.redis_client.exists(key) > 0
            except Exception as e:
                logger.error(f"Redis exists error: {e}")

        return await self.get(key) is not None or key in self.memory_lists

    async def append(self, key: str, value: Any, max_len: int = 500):
        """Append to a capped list, newest last"""
        if self.use_redis and self.redis_client:
            try:
                await self.redis_client.rpush(key, json.dumps(value))
                await self.redis_client.ltrim(key, -max_len, -1)
                return
            except Exception as e:
                logger.error(f"Redis append error: {e}")

        items = self.memory_lists.setdefault(key, [])
        items.append(value)
        del items[:-max_len]

    async def get_list(self, key: str) -> List[Any]:
        """Return a list written with append (oldest first)"""
        if self.use_redis and self.redis_client:
            try:
                return [json.loads(item) for item in await self.redis_client.lrange(key, 0, -1)]
            except Exception as e:
                logger.error(f"Redis list error: {e}")

        return list(self.memory_lists.get(key, []))
