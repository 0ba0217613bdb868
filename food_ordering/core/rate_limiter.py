from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from threading import Lock

import redis

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
DEFAULT_WINDOW_SECONDS = 900


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int

    @classmethod
    def parse(cls, raw: str) -> "RateLimitRule":
        """Parse "limit/window_seconds" (e.g. "100/900")."""
        try:
            limit_str, window_str = raw.split("/", 1)
            return cls(limit=int(limit_str), window_seconds=int(window_str))
        except (AttributeError, ValueError):
            logger.warning("Invalid rate limit rule %r; using defaults", raw)
            return cls(limit=DEFAULT_LIMIT, window_seconds=DEFAULT_WINDOW_SECONDS)


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int


class RateLimiterService(ABC):
    @abstractmethod
    def check(self, *, key: str, rule: RateLimitRule) -> RateLimitDecision:
        """Count one request for key and decide whether it may proceed."""


class InMemoryRateLimiterService(RateLimiterService):
    """Sliding-window limiter kept in process memory.

    Buckets for idle clients are dropped once their window has passed, so the
    store only holds clients seen within the last window.
    """

    def __init__(self, *, clock=time.monotonic, sweep_interval_seconds: float = 60.0) -> None:
        self._clock = clock
        self._store: dict[str, deque[float]] = {}
        self._windows: dict[str, int] = {}
        self._sweep_interval = sweep_interval_seconds
        self._next_sweep = clock() + sweep_interval_seconds
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._store)

    def _sweep(self, now: float) -> None:
        expired = [
            key
            for key, bucket in self._store.items()
            if not bucket or bucket[-1] <= now - self._windows.get(key, 0)
        ]
        for key in expired:
            self._store.pop(key, None)
            self._windows.pop(key, None)
        self._next_sweep = now + self._sweep_interval

    def check(self, *, key: str, rule: RateLimitRule) -> RateLimitDecision:
        now = self._clock()

        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)

            bucket = self._store.setdefault(key, deque())
            self._windows[key] = rule.window_seconds
            cutoff = now - rule.window_seconds
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            if len(bucket) >= rule.limit:
                retry_after = max(1, int(rule.window_seconds - (now - bucket[0])))
                return RateLimitDecision(
                    allowed=False,
                    limit=rule.limit,
                    remaining=0,
                    retry_after_seconds=retry_after,
                )

            bucket.append(now)
            return RateLimitDecision(
                allowed=True,
                limit=rule.limit,
                remaining=max(0, rule.limit - len(bucket)),
                retry_after_seconds=0,
            )


class RedisRateLimiterService(RateLimiterService):
    """Fixed-window counter shared by every worker (INCR + EXPIRE)."""

    def __init__(self, client: redis.Redis, *, prefix: str = "rate_limit") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimiterService":
        return cls(redis.Redis.from_url(url, socket_connect_timeout=2, socket_timeout=2))

    def check(self, *, key: str, rule: RateLimitRule) -> RateLimitDecision:
        redis_key = f"{self._prefix}:{key}"
        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.ttl(redis_key)
        count, ttl = pipe.execute()
        if int(count) == 1 or int(ttl) < 0:
            self._client.expire(redis_key, rule.window_seconds)
            ttl = rule.window_seconds

        count = int(count)
        if count > rule.limit:
            return RateLimitDecision(
                allowed=False,
                limit=rule.limit,
                remaining=0,
                retry_after_seconds=max(1, int(ttl)),
            )
        return RateLimitDecision(
            allowed=True,
            limit=rule.limit,
            remaining=max(0, rule.limit - count),
            retry_after_seconds=0,
        )
