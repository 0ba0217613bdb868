from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from threading import Lock

import redis

from food_ordering.core.config import REDIS_URL

logger = logging.getLogger(__name__)


class CacheGateway(ABC):
    """String-keyed, string-valued store with per-key expiry."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value or None when missing/expired."""

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value for ttl_seconds."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Drop the key if present."""


class InMemoryCacheGateway(CacheGateway):
    """Process-local cache used when no Redis is configured."""

    def __init__(self, *, clock=time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, tuple[str, float]] = {}
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= now:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._store[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)


class RedisCacheGateway(CacheGateway):
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheGateway":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        return cls(client)

    @property
    def client(self) -> redis.Redis:
        return self._client

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._client.setex(key, ttl_seconds, value)

    def delete(self, key: str) -> None:
        self._client.delete(key)


def build_cache_gateway() -> CacheGateway:
    if not REDIS_URL:
        logger.info("REDIS_URL not set; using in-memory cache")
        return InMemoryCacheGateway()
    # Connection is lazy: an unreachable Redis only fails on use.
    return RedisCacheGateway.from_url(REDIS_URL)
