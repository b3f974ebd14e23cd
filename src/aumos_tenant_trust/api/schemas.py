"""Pydantic request and response schemas for aumos-tenant-trust API.

All API inputs and outputs use Pydantic models; routes never return raw dicts.
Schemas are grouped by resource domain.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from aumos_tenant_trust.core.entities import (
    CrossTenantPermission,
    IsolationDecision,
    JurisdictionAssessment,
    MultiJurisdictionalAssessment,
    TenantContext,
)
from aumos_tenant_trust.core.models import (
    DataResidency,
    IsolationLevel,
    Jurisdiction,
    RegulatoryBody,
)


# ---------------------------------------------------------------------------
# Tenancy Schemas
# ---------------------------------------------------------------------------


class TenantContextResponse(BaseModel):
    """Resolved tenant context with the isolation decision for the request."""

    tenant_id: str = Field(description="Resolved tenant identifier")
    tenant_code: str = Field(description="Short tenant code")
    data_residency: DataResidency = Field(description="Data residency constraint")
    jurisdiction: str = Field(description="Home jurisdiction or multi")
    compliance_level: str = Field(description="Compliance tier")
    isolation_level: IsolationLevel = Field(description="Cross-tenant isolation level")
    isolation_valid: bool = Field(description="Whether isolation validation passed")
    allowed_resource_patterns: list[str] = Field(
        description="Resource patterns the caller may reach (tenant:<id>:<resource>)"
    )

    @classmethod
    def build(cls, context: TenantContext, decision: IsolationDecision) -> "TenantContextResponse":
        return cls(
            tenant_id=context.tenant_id,
            tenant_code=context.tenant_code,
            data_residency=context.data_residency,
            jurisdiction=context.jurisdiction,
            compliance_level=context.compliance_level,
            isolation_level=context.isolation_level,
            isolation_valid=decision.valid,
            allowed_resource_patterns=list(decision.allowed_resource_patterns),
        )


class TenantResourceAccessResponse(BaseModel):
    """Outcome of an isolation-checked access to a tenant-scoped resource."""

    tenant_id: str = Field(description="Tenant that owns the resource")
    resource: str = Field(description="Resource name")
    action: str = Field(description="Action derived from the HTTP method")
    granted: bool = Field(description="Always true; denials are returned as 403")
    allowed_resource_patterns: list[str]


class PermissionGrantRequest(BaseModel):
    """Request body for sharing one of the caller tenant's resources.

    The target (owning) tenant is always the caller's resolved tenant; only
    an owner can grant access to its own resources.
    """

    grantee_tenant_id: str = Field(
        description="Tenant whose principals receive access",
        min_length=1,
        max_length=128,
    )
    resource: str = Field(description="Exact resource name", min_length=1, max_length=128)
    actions: list[str] = Field(description="Permitted actions (read, create, update, delete)", min_length=1)
    expires_at: datetime | None = Field(default=None, description="Optional expiry (UTC)")


class PermissionResponse(BaseModel):
    """A cross-tenant permission record."""

    id: uuid.UUID
    source_tenant_id: str
    target_tenant_id: str
    resource: str
    actions: list[str]
    is_active: bool
    granted_at: datetime
    expires_at: datetime | None
    granted_by: str

    @classmethod
    def build(cls, permission: CrossTenantPermission) -> "PermissionResponse":
        return cls(
            id=permission.id,
            source_tenant_id=permission.source_tenant_id,
            target_tenant_id=permission.target_tenant_id,
            resource=permission.resource,
            actions=sorted(permission.actions),
            is_active=permission.is_active,
            granted_at=permission.granted_at,
            expires_at=permission.expires_at,
            granted_by=permission.granted_by,
        )


class PermissionListResponse(BaseModel):
    """Permissions held by the current tenant."""

    items: list[PermissionResponse]
    total: int


class PermissionEvaluateRequest(BaseModel):
    """Request body for evaluating a cross-tenant access."""

    target_tenant_id: str = Field(min_length=1, max_length=128)
    resource: str = Field(min_length=1, max_length=128)
    action: str = Field(default="read")


class PermissionEvaluateResponse(BaseModel):
    """Whether the current tenant may perform the access."""

    source_tenant_id: str
    target_tenant_id: str
    resource: str
    action: str
    permitted: bool


# ---------------------------------------------------------------------------
# Compliance Schemas
# ---------------------------------------------------------------------------


class LocationSchema(BaseModel):
    """One site of an organization."""

    country: str | None = Field(default=None, description="Country or crown dependency name")
    postcode: str | None = Field(default=None, description="UK-style postcode")


class ClassifyJurisdictionsRequest(BaseModel):
    """Request body for jurisdiction classification."""

    locations: list[LocationSchema] = Field(default_factory=list)


class ClassifyJurisdictionsResponse(BaseModel):
    """Applicable jurisdictions with their regulators."""

    jurisdictions: list[Jurisdiction]
    regulatory_bodies: dict[Jurisdiction, RegulatoryBody]


class AggregateAssessmentRequest(BaseModel):
    """Request body for running a multi-jurisdictional aggregation."""

    locations: list[LocationSchema] = Field(default_factory=list)


class JurisdictionAssessmentResponse(BaseModel):
    """One regulator's assessment."""

    jurisdiction: Jurisdiction
    regulatory_body: RegulatoryBody
    overall_score: float
    domain_scores: dict[str, float]
    gaps: list[str]
    recommendations: list[str]
    last_inspection: datetime | None
    next_inspection: datetime | None

    @classmethod
    def build(cls, item: JurisdictionAssessment) -> "JurisdictionAssessmentResponse":
        return cls(
            jurisdiction=item.jurisdiction,
            regulatory_body=item.regulatory_body,
            overall_score=item.overall_score,
            domain_scores=dict(item.domain_scores),
            gaps=list(item.gaps),
            recommendations=list(item.recommendations),
            last_inspection=item.last_inspection,
            next_inspection=item.next_inspection,
        )


class MultiJurisdictionalAssessmentResponse(BaseModel):
    """Unified compliance view across all applicable jurisdictions."""

    organization_id: str
    assessment_date: datetime
    jurisdictions: dict[Jurisdiction, JurisdictionAssessmentResponse]
    cross_jurisdictional_risks: list[str]
    harmonized_recommendations: list[str]
    overall_compliance_score: float | None = Field(
        description="Unweighted mean of jurisdiction scores; null when no jurisdiction applies"
    )
    highest_performing: Jurisdiction | None
    lowest_performing: Jurisdiction | None

    @classmethod
    def build(cls, assessment: MultiJurisdictionalAssessment) -> "MultiJurisdictionalAssessmentResponse":
        return cls(
            organization_id=assessment.organization_id,
            assessment_date=assessment.assessment_date,
            jurisdictions={
                j: JurisdictionAssessmentResponse.build(item)
                for j, item in assessment.jurisdictions.items()
            },
            cross_jurisdictional_risks=list(assessment.cross_jurisdictional_risks),
            harmonized_recommendations=list(assessment.harmonized_recommendations),
            overall_compliance_score=assessment.overall_compliance_score,
            highest_performing=assessment.highest_performing,
            lowest_performing=assessment.lowest_performing,
        )


class AssessmentHistoryResponse(BaseModel):
    """Snapshot history of an organization, newest first."""

    items: list[MultiJurisdictionalAssessmentResponse]
    total: int


# ---------------------------------------------------------------------------
# Assistant Schemas
# ---------------------------------------------------------------------------


class SecurityViolationResponse(BaseModel):
    """A non-blocking screening finding. Evidence names the rule, never content."""

    type: str
    severity: str
    description: str
    evidence: str
    structural: bool


class AssistantMessageResponse(BaseModel):
    """A screened assistant request ready for the assistant."""

    session_id: str
    security_level: str
    sanitized: dict[str, Any]
    findings: list[SecurityViolationResponse]
    dropped_fields: list[str]
    truncated_fields: list[str]
