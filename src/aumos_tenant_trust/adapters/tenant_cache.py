"""Tenant context cache adapters for aumos-tenant-trust.

Two ITenantContextCache implementations:
  - InMemoryTenantContextCache: process-local TTL cache (default, tests)
  - RedisTenantContextCache: shared cache for multi-instance deployments

Cached values are frozen TenantContext instances. A write replaces the whole
entry in one assignment, so a reader sees either the old context or the new
one and never a partially updated value. Readers take no lock.
"""

import time
from collections.abc import Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from aumos_tenant_trust.core.entities import TenantContext
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "tenant_context"


def cache_key_for_id(tenant_id: str) -> str:
    return f"{CACHE_KEY_PREFIX}:id:{tenant_id}"


def cache_key_for_subdomain(subdomain: str) -> str:
    return f"{CACHE_KEY_PREFIX}:subdomain:{subdomain.lower()}"


class InMemoryTenantContextCache:
    """Process-wide TTL cache of tenant contexts.

    Args:
        clock: Monotonic time source; injectable for deterministic tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, TenantContext]] = {}

    async def get(self, key: str) -> TenantContext | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, context = entry
        if expires_at <= self._clock():
            # Another writer may have replaced the entry since it was read
            if self._entries.get(key) is entry:
                self._entries.pop(key, None)
            return None
        return context

    async def set(self, key: str, context: TenantContext, ttl_seconds: int) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, context)

    async def invalidate(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class RedisTenantContextCache:
    """Redis-backed tenant context cache.

    A Redis outage degrades to cache misses; the tenant directory remains
    the source of truth, so resolution still fails closed on its own errors.

    Args:
        client: Connected redis.asyncio client.
    """

    def __init__(self, client: Redis) -> None:
        self._client = client

    async def get(self, key: str) -> TenantContext | None:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            logger.warning("Tenant cache read failed", key=key, error=str(exc))
            return None
        if raw is None:
            return None
        return TenantContext.model_validate_json(raw)

    async def set(self, key: str, context: TenantContext, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, context.model_dump_json(), ex=ttl_seconds)
        except RedisError as exc:
            logger.warning("Tenant cache write failed", key=key, error=str(exc))

    async def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self._client.delete(*keys)
        except RedisError as exc:
            logger.warning("Tenant cache invalidation failed", keys=list(keys), error=str(exc))
