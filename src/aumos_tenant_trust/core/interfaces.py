"""Abstract interfaces (Protocol classes) for aumos-tenant-trust.

Every collaborator of the trust boundary is injected through one of these
protocols, which keeps services free of process-wide singletons and lets
tests substitute deterministic fakes.
"""

from typing import Any, Protocol, runtime_checkable

from aumos_tenant_trust.core.entities import (
    CrossTenantPermission,
    JurisdictionAssessment,
    MultiJurisdictionalAssessment,
    TenantContext,
)
from aumos_tenant_trust.core.models import Jurisdiction


@runtime_checkable
class ITenantDirectory(Protocol):
    """Source of truth for tenant metadata.

    Implementations return None for unknown tenants and raise LookupFailure
    when the directory itself is unreachable.
    """

    async def resolve_by_id(self, tenant_id: str) -> TenantContext | None: ...

    async def resolve_by_subdomain(self, subdomain: str) -> TenantContext | None: ...


@runtime_checkable
class ITenantContextCache(Protocol):
    """TTL-bounded cache of resolved tenant contexts."""

    async def get(self, key: str) -> TenantContext | None: ...

    async def set(self, key: str, context: TenantContext, ttl_seconds: int) -> None: ...

    async def invalidate(self, *keys: str) -> None: ...


@runtime_checkable
class ICrossTenantPermissionStore(Protocol):
    """Query and grant cross-tenant permissions."""

    async def list_by_source(self, source_tenant_id: str) -> list[CrossTenantPermission]: ...

    async def grant(self, permission: CrossTenantPermission) -> CrossTenantPermission: ...


@runtime_checkable
class IJurisdictionAssessmentProvider(Protocol):
    """A single jurisdiction's compliance assessment service."""

    jurisdiction: Jurisdiction

    async def assess(self, organization_id: str) -> JurisdictionAssessment: ...


@runtime_checkable
class IGeoResidencyClassifier(Protocol):
    """Classifies a request origin into an ISO 3166-1 alpha-2 country code.

    Returns ``LOCAL`` for loopback/private origins and None when unknown.
    """

    async def classify(self, origin: str | None) -> str | None: ...


@runtime_checkable
class IAssessmentSnapshotRepository(Protocol):
    """Append-only store of multi-jurisdictional assessment snapshots."""

    async def append(
        self, tenant_id: str, assessment: MultiJurisdictionalAssessment
    ) -> None: ...

    async def list_for_organization(
        self, tenant_id: str, organization_id: str, limit: int = 20
    ) -> list[MultiJurisdictionalAssessment]: ...


@runtime_checkable
class IRateLimiter(Protocol):
    """Sliding-window request limiter keyed by caller.

    ``hit`` records one request and returns False once the key is over its
    limit; rejected requests are not recorded.
    """

    async def hit(self, key: str) -> bool: ...

    async def remaining(self, key: str) -> int: ...


@runtime_checkable
class IEventSink(Protocol):
    """Destination for audit events."""

    async def publish(self, topic: str, event: dict[str, Any]) -> None: ...
