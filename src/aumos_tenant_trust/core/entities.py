"""Domain value types for aumos-tenant-trust.

These are frozen pydantic models: a TenantContext, permission or assessment
is never edited after construction. Any change in the underlying metadata
produces a new instance that replaces the old one wholesale.
"""

import uuid
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from aumos_tenant_trust.core.models import (
    DataResidency,
    IsolationLevel,
    Jurisdiction,
    RegulatoryBody,
    Severity,
    ViolationType,
)

WILDCARD_TENANT = "*"


def as_utc(value: datetime) -> datetime:
    """Read a naive datetime as UTC; aware values are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# Every timestamp compared against the clock is timezone-aware.
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class TenantContext(_Frozen):
    """Resolved tenant metadata in effect for a request."""

    tenant_id: str
    tenant_code: str
    data_residency: DataResidency
    jurisdiction: str
    compliance_level: str
    isolation_level: IsolationLevel
    subdomain: str | None = None


class AuthenticatedPrincipal(_Frozen):
    """The verified caller, as yielded by the principal provider."""

    tenant_id: str
    user_id: str
    roles: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ()


class ResolutionRequest(_Frozen):
    """Tenant candidates carried by one inbound request.

    Attributes:
        token_claims: Claims of the verified bearer token, if any.
        header_tenant_id: Value of the explicit X-Tenant-ID header.
        host: Host header, used for subdomain resolution.
        query_tenant_id: ?tenantId= value (honored outside production only).
    """

    token_claims: dict[str, Any] | None = None
    header_tenant_id: str | None = None
    host: str | None = None
    query_tenant_id: str | None = None


class CrossTenantPermission(_Frozen):
    """An explicit grant for one tenant's principals to act on another tenant."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    source_tenant_id: str
    target_tenant_id: str
    resource: str
    actions: frozenset[str]
    is_active: bool = True
    granted_at: UtcDatetime = Field(default_factory=lambda: datetime.now(UTC))
    expires_at: UtcDatetime | None = None
    granted_by: str = "system"

    def is_current(self, now: datetime) -> bool:
        """Active and not yet expired at ``now``."""
        return self.is_active and (self.expires_at is None or self.expires_at > now)

    def covers(self, target_tenant_id: str, resource: str, action: str) -> bool:
        """Exact-match coverage of a (target, resource, action) triple."""
        return (
            self.target_tenant_id in (target_tenant_id, WILDCARD_TENANT)
            and self.resource == resource
            and action in self.actions
        )


class ResourceReference(_Frozen):
    """The tenant-scoped resource a request points at, if any."""

    tenant_id: str | None = None
    resource: str = ""
    action: str = "read"


class IsolationDecision(_Frozen):
    """Allow/deny outcome of isolation validation with itemized violations."""

    valid: bool
    violations: tuple[str, ...] = ()
    allowed_resource_patterns: tuple[str, ...] = ()


class Location(_Frozen):
    """One site of an organization."""

    country: str | None = None
    postcode: str | None = None


class JurisdictionAssessment(_Frozen):
    """A single regulator's assessment, owned by its assessment provider."""

    jurisdiction: Jurisdiction
    regulatory_body: RegulatoryBody
    overall_score: float = Field(ge=0, le=100)
    domain_scores: dict[str, float] = Field(default_factory=dict)
    gaps: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    last_inspection: UtcDatetime | None = None
    next_inspection: UtcDatetime | None = None


class MultiJurisdictionalAssessment(_Frozen):
    """Unified compliance view across every applicable jurisdiction.

    ``overall_compliance_score`` is None only when the organization has no
    applicable jurisdiction.
    """

    organization_id: str
    assessment_date: UtcDatetime
    jurisdictions: dict[Jurisdiction, JurisdictionAssessment]
    cross_jurisdictional_risks: tuple[str, ...] = ()
    harmonized_recommendations: tuple[str, ...] = ()
    overall_compliance_score: float | None = None
    highest_performing: Jurisdiction | None = None
    lowest_performing: Jurisdiction | None = None


class SecurityViolation(_Frozen):
    """One finding from assistant input screening."""

    type: ViolationType
    severity: Severity
    description: str
    evidence: str
    blocked: bool
    structural: bool = False
    detected_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ScanResult(_Frozen):
    """Outcome of scanning one assistant request body."""

    violations: tuple[SecurityViolation, ...] = ()

    @property
    def blocked(self) -> bool:
        return any(v.blocked for v in self.violations)

    @property
    def blocking_violations(self) -> tuple[SecurityViolation, ...]:
        return tuple(v for v in self.violations if v.blocked)


class SanitizationReport(_Frozen):
    """What the sanitizer changed; dropped care-context fields are kept for audit."""

    dropped_fields: tuple[str, ...] = ()
    truncated_fields: tuple[str, ...] = ()
    modified_fields: tuple[str, ...] = ()
