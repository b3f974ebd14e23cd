"""Sliding-window rate limiters for assistant requests.

Two IRateLimiter implementations:
  - RedisSlidingWindowRateLimiter: window kept in a Redis sorted set, shared
    by every replica (used whenever a Redis URL is configured)
  - SlidingWindowRateLimiter: process-local window (single instance, tests)

Tenant assistant requests are keyed per tenant user
(``tenant:<tenant_id>:user:<user_id>``); public assistant requests are keyed
by a hashed IP and User-Agent fingerprint.
"""

import hashlib
import math
import time
import uuid
from collections import deque
from collections.abc import Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

REDIS_KEY_PREFIX = "rate_limit"


def rate_limit_key(tenant_id: str, user_id: str) -> str:
    return f"tenant:{tenant_id}:user:{user_id}"


def public_rate_limit_key(client_ip: str | None, user_agent: str | None) -> str:
    """Fingerprint an anonymous caller by IP and User-Agent.

    The fingerprint is hashed so raw addresses never reach the limiter store.
    """
    fingerprint = f"{client_ip or 'unknown'}:{user_agent or ''}"
    return f"public:{hashlib.sha256(fingerprint.encode()).hexdigest()[:32]}"


class SlidingWindowRateLimiter:
    """Allows at most ``max_requests`` per key within ``window_seconds``.

    Keys whose window has emptied are evicted, and idle keys are swept once
    per window, so memory tracks active callers only.

    Args:
        max_requests: Requests permitted per window.
        window_seconds: Window length.
        clock: Monotonic time source; injectable for deterministic tests.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._next_sweep = clock() + window_seconds

    async def hit(self, key: str) -> bool:
        """Record one request for ``key``.

        Returns:
            True if the request is within the limit, False if it exceeds it.
            Rejected requests are not counted.
        """
        now = self._clock()
        window_start = now - self._window_seconds
        if now >= self._next_sweep:
            self._sweep(window_start)
            self._next_sweep = now + self._window_seconds

        hits = self._hits.get(key)
        if hits is None:
            hits = self._hits[key] = deque()
        while hits and hits[0] <= window_start:
            hits.popleft()
        if len(hits) >= self._max_requests:
            return False
        hits.append(now)
        return True

    async def remaining(self, key: str) -> int:
        hits = self._hits.get(key)
        if not hits:
            return self._max_requests
        window_start = self._clock() - self._window_seconds
        while hits and hits[0] <= window_start:
            hits.popleft()
        if not hits:
            del self._hits[key]
            return self._max_requests
        return max(0, self._max_requests - len(hits))

    def _sweep(self, window_start: float) -> None:
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in idle:
            del self._hits[key]

    def __len__(self) -> int:
        return len(self._hits)


class RedisSlidingWindowRateLimiter:
    """Redis sorted-set sliding window shared across service replicas.

    Each accepted request is one member scored by its timestamp. Members
    older than the window are trimmed before counting, and the key expires
    one window after its last accepted request.

    A Redis outage admits the request and logs a warning; tenant isolation
    and content screening still apply.

    Args:
        client: Connected redis.asyncio client.
        max_requests: Requests permitted per window.
        window_seconds: Window length.
        clock: Wall-clock time source shared by all replicas.
    """

    def __init__(
        self,
        client: Redis,
        max_requests: int = 100,
        window_seconds: float = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock

    def _redis_key(self, key: str) -> str:
        return f"{REDIS_KEY_PREFIX}:{key}"

    async def _count(self, redis_key: str, window_start: float) -> int:
        pipe = self._client.pipeline(transaction=True)
        pipe.zremrangebyscore(redis_key, 0, window_start)
        pipe.zcard(redis_key)
        _, count = await pipe.execute()
        return int(count)

    async def hit(self, key: str) -> bool:
        now = self._clock()
        redis_key = self._redis_key(key)
        try:
            if await self._count(redis_key, now - self._window_seconds) >= self._max_requests:
                return False
            pipe = self._client.pipeline(transaction=True)
            pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex}": now})
            pipe.expire(redis_key, math.ceil(self._window_seconds))
            await pipe.execute()
        except RedisError as exc:
            logger.warning("Rate limiter unavailable, admitting request", key=key, error=str(exc))
        return True

    async def remaining(self, key: str) -> int:
        try:
            count = await self._count(
                self._redis_key(key), self._clock() - self._window_seconds
            )
        except RedisError as exc:
            logger.warning("Rate limiter unavailable", key=key, error=str(exc))
            return self._max_requests
        return max(0, self._max_requests - count)
