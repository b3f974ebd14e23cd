"""API router for aumos-tenant-trust.

All endpoints are registered here and included in main.py under /api/v1.
Every route except the public assistant is tenant-gated through
``enforce_tenant_isolation``; routes delegate all logic to the service layer.

Endpoints:
  GET    /tenancy/context                                   — Resolved tenant context
  GET    /tenancy/tenants/{tenant_id}/{resource}            — Isolation-checked resource access
  POST   /tenancy/permissions                               — Share a resource with another tenant
  GET    /tenancy/permissions                               — Permissions held by the current tenant
  POST   /tenancy/permissions/evaluate                      — Evaluate a cross-tenant access
  POST   /compliance/jurisdictions/classify                 — Classify locations
  POST   /compliance/organizations/{organization_id}/assessments — Run aggregation
  GET    /compliance/organizations/{organization_id}/assessments — Snapshot history
  POST   /assistant/messages                                — Screen assistant input
  POST   /assistant/public/messages                         — Screen public assistant input
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Response

from aumos_tenant_trust.adapters.events import TrustEventPublisher
from aumos_tenant_trust.adapters.jurisdiction_classifier import JurisdictionClassifier
from aumos_tenant_trust.api.dependencies import (
    TenantGuard,
    enforce_tenant_isolation,
    get_compliance_aggregator,
    get_event_publisher,
    get_permission_evaluator,
    get_public_client_key,
    get_screening_service,
)
from aumos_tenant_trust.api.schemas import (
    AggregateAssessmentRequest,
    AssessmentHistoryResponse,
    AssistantMessageResponse,
    ClassifyJurisdictionsRequest,
    ClassifyJurisdictionsResponse,
    MultiJurisdictionalAssessmentResponse,
    PermissionEvaluateRequest,
    PermissionEvaluateResponse,
    PermissionGrantRequest,
    PermissionListResponse,
    PermissionResponse,
    SecurityViolationResponse,
    TenantContextResponse,
    TenantResourceAccessResponse,
)
from aumos_tenant_trust.core.entities import Location
from aumos_tenant_trust.core.models import REGULATORY_BODIES
from aumos_tenant_trust.core.services import (
    AssistantScreeningService,
    ComplianceAggregator,
    CrossTenantPermissionEvaluator,
    ScreenedMessage,
)
from aumos_tenant_trust.errors import AuthorizationError
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["tenant-trust"])

# Roles allowed to share a tenant's resources with another tenant
GRANT_ROLES: frozenset[str] = frozenset({"admin", "tenant_admin"})


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


@router.get(
    "/tenancy/context",
    response_model=TenantContextResponse,
    summary="Get the resolved tenant context",
)
async def get_tenant_context_view(
    guard: TenantGuard = Depends(enforce_tenant_isolation),
) -> TenantContextResponse:
    """Return the tenant context in effect for the caller.

    Args:
        guard: Principal, context and isolation decision for the request.

    Returns:
        Tenant metadata with the isolation decision.
    """
    return TenantContextResponse.build(guard.context, guard.decision)


@router.get(
    "/tenancy/tenants/{tenant_id}/{resource}",
    response_model=TenantResourceAccessResponse,
    summary="Access a tenant-scoped resource",
    description=(
        "Isolation-checked access probe. Same-tenant access always passes; "
        "cross-tenant access passes only outside STRICT isolation and with an "
        "active permission for the resource and action."
    ),
)
async def access_tenant_resource(
    tenant_id: str,
    resource: str,
    guard: TenantGuard = Depends(enforce_tenant_isolation),
) -> TenantResourceAccessResponse:
    return TenantResourceAccessResponse(
        tenant_id=tenant_id,
        resource=resource,
        action="read",
        granted=True,
        allowed_resource_patterns=list(guard.decision.allowed_resource_patterns),
    )


@router.post(
    "/tenancy/permissions",
    response_model=PermissionResponse,
    status_code=201,
    summary="Share a resource with another tenant",
)
async def grant_permission(
    request: PermissionGrantRequest,
    guard: TenantGuard = Depends(enforce_tenant_isolation),
    evaluator: CrossTenantPermissionEvaluator = Depends(get_permission_evaluator),
    publisher: TrustEventPublisher = Depends(get_event_publisher),
) -> PermissionResponse:
    """Create a permission letting another tenant act on one of the caller tenant's resources.

    A new record is always inserted; existing records are never modified.

    Args:
        request: Grantee, resource, actions and optional expiry.
        guard: Principal, context and isolation decision for the request.
        evaluator: Cross-tenant permission evaluator.
        publisher: Audit event publisher.

    Returns:
        The created permission.

    Raises:
        AuthorizationError: If the caller is not a tenant administrator.
    """
    if not GRANT_ROLES.intersection(guard.principal.roles):
        raise AuthorizationError(
            "Tenant administrator role required",
            [f"User '{guard.principal.user_id}' lacks a grant role"],
        )
    permission = await evaluator.grant(
        source_tenant_id=request.grantee_tenant_id,
        target_tenant_id=guard.context.tenant_id,
        resource=request.resource,
        actions=request.actions,
        granted_by=guard.principal.user_id,
        expires_at=request.expires_at,
    )
    await publisher.publish_permission_granted(
        permission_id=permission.id,
        source_tenant_id=permission.source_tenant_id,
        target_tenant_id=permission.target_tenant_id,
        resource=permission.resource,
        granted_by=permission.granted_by,
    )
    logger.info(
        "Cross-tenant permission granted",
        permission_id=str(permission.id),
        source_tenant_id=permission.source_tenant_id,
        target_tenant_id=permission.target_tenant_id,
        resource=permission.resource,
    )
    return PermissionResponse.build(permission)


@router.get(
    "/tenancy/permissions",
    response_model=PermissionListResponse,
    summary="List permissions held by the current tenant",
)
async def list_permissions(
    guard: TenantGuard = Depends(enforce_tenant_isolation),
    evaluator: CrossTenantPermissionEvaluator = Depends(get_permission_evaluator),
) -> PermissionListResponse:
    permissions = await evaluator.list_granted(guard.context.tenant_id)
    return PermissionListResponse(
        items=[PermissionResponse.build(p) for p in permissions],
        total=len(permissions),
    )


@router.post(
    "/tenancy/permissions/evaluate",
    response_model=PermissionEvaluateResponse,
    summary="Evaluate a cross-tenant access",
)
async def evaluate_permission(
    request: PermissionEvaluateRequest,
    guard: TenantGuard = Depends(enforce_tenant_isolation),
    evaluator: CrossTenantPermissionEvaluator = Depends(get_permission_evaluator),
) -> PermissionEvaluateResponse:
    permitted = await evaluator.is_permitted(
        guard.context.tenant_id,
        request.target_tenant_id,
        request.resource,
        request.action,
    )
    return PermissionEvaluateResponse(
        source_tenant_id=guard.context.tenant_id,
        target_tenant_id=request.target_tenant_id,
        resource=request.resource,
        action=request.action,
        permitted=permitted,
    )


# ---------------------------------------------------------------------------
# Compliance
# ---------------------------------------------------------------------------


@router.post(
    "/compliance/jurisdictions/classify",
    response_model=ClassifyJurisdictionsResponse,
    summary="Classify locations into regulatory jurisdictions",
)
async def classify_jurisdictions(
    request: ClassifyJurisdictionsRequest,
    guard: TenantGuard = Depends(enforce_tenant_isolation),
) -> ClassifyJurisdictionsResponse:
    jurisdictions = JurisdictionClassifier().classify(
        Location(country=loc.country, postcode=loc.postcode) for loc in request.locations
    )
    return ClassifyJurisdictionsResponse(
        jurisdictions=list(jurisdictions),
        regulatory_bodies={j: REGULATORY_BODIES[j] for j in jurisdictions},
    )


@router.post(
    "/compliance/organizations/{organization_id}/assessments",
    response_model=MultiJurisdictionalAssessmentResponse,
    status_code=201,
    summary="Run a multi-jurisdictional compliance aggregation",
    description=(
        "Assesses every jurisdiction the organization's locations fall under. "
        "Fails with 500 and a partial-failure body if any jurisdiction cannot be assessed."
    ),
)
async def run_assessment(
    organization_id: str,
    request: AggregateAssessmentRequest,
    guard: TenantGuard = Depends(enforce_tenant_isolation),
    aggregator: ComplianceAggregator = Depends(get_compliance_aggregator),
) -> MultiJurisdictionalAssessmentResponse:
    """Aggregate compliance for an organization and persist the snapshot.

    Args:
        organization_id: Organization to assess.
        request: The organization's locations.
        guard: Principal, context and isolation decision for the request.
        aggregator: Compliance aggregation service.

    Returns:
        The unified compliance view.
    """
    assessment = await aggregator.aggregate(
        tenant_id=guard.context.tenant_id,
        organization_id=organization_id,
        locations=[Location(country=loc.country, postcode=loc.postcode) for loc in request.locations],
    )
    return MultiJurisdictionalAssessmentResponse.build(assessment)


@router.get(
    "/compliance/organizations/{organization_id}/assessments",
    response_model=AssessmentHistoryResponse,
    summary="List an organization's assessment snapshots",
)
async def list_assessments(
    organization_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    guard: TenantGuard = Depends(enforce_tenant_isolation),
    aggregator: ComplianceAggregator = Depends(get_compliance_aggregator),
) -> AssessmentHistoryResponse:
    snapshots = await aggregator.history(guard.context.tenant_id, organization_id, limit)
    return AssessmentHistoryResponse(
        items=[MultiJurisdictionalAssessmentResponse.build(s) for s in snapshots],
        total=len(snapshots),
    )


# ---------------------------------------------------------------------------
# Assistant
# ---------------------------------------------------------------------------


def _assistant_response(screened: ScreenedMessage) -> AssistantMessageResponse:
    return AssistantMessageResponse(
        session_id=screened.session_id,
        security_level=screened.security_level,
        sanitized=screened.body,
        findings=[
            SecurityViolationResponse(
                type=v.type.value,
                severity=v.severity.value,
                description=v.description,
                evidence=v.evidence,
                structural=v.structural,
            )
            for v in screened.violations
        ],
        dropped_fields=list(screened.sanitization.dropped_fields),
        truncated_fields=list(screened.sanitization.truncated_fields),
    )


@router.post(
    "/assistant/messages",
    response_model=AssistantMessageResponse,
    summary="Screen and sanitize assistant input",
    description=(
        "Rate-limits per tenant user, scans for injection, extraction, "
        "cross-tenant and markup attacks, and returns the sanitized body. "
        "Blocking findings return 403 with violation types only."
    ),
)
async def screen_assistant_message(
    response: Response,
    payload: dict[str, Any] = Body(...),
    guard: TenantGuard = Depends(enforce_tenant_isolation),
    screening: AssistantScreeningService = Depends(get_screening_service),
) -> AssistantMessageResponse:
    screened = await screening.screen(guard.principal, guard.context, payload)

    response.headers["X-AI-Security-Level"] = screened.security_level
    response.headers["X-AI-Session-ID"] = screened.session_id
    response.headers["X-AI-Tenant-Isolation"] = "ENFORCED"
    return _assistant_response(screened)


@router.post(
    "/assistant/public/messages",
    response_model=AssistantMessageResponse,
    summary="Screen and sanitize public assistant input",
    description=(
        "Anonymous entry point for the public assistant. Rate-limits per "
        "client IP and User-Agent fingerprint and applies the same content "
        "screening, without tenant-scoped rules."
    ),
)
async def screen_public_assistant_message(
    response: Response,
    payload: dict[str, Any] = Body(...),
    client_key: str = Depends(get_public_client_key),
    screening: AssistantScreeningService = Depends(get_screening_service),
) -> AssistantMessageResponse:
    screened = await screening.screen_public(client_key, payload)

    response.headers["X-AI-Security-Level"] = screened.security_level
    response.headers["X-AI-Session-ID"] = screened.session_id
    return _assistant_response(screened)
