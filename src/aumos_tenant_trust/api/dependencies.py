"""FastAPI dependencies wiring the trust boundary into the request path.

Order for every tenant-gated route:

    bearer token -> principal (401) -> tenant context (400/500)
    -> isolation validation (403) -> handler

Process-wide collaborators (tenant cache, rate limiters, geo classifier,
assessment providers, event publisher, and the memory storage backend) live
on ``app.state`` and are created by ``create_app``. The public assistant
route skips the trust boundary and is limited per client fingerprint.
Each dependency below is also an override point for tests.
"""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from aumos_tenant_trust.adapters.assessment_providers import AssessmentProviderRegistry
from aumos_tenant_trust.adapters.events import TrustEventPublisher
from aumos_tenant_trust.adapters.geo_residency import request_origin
from aumos_tenant_trust.adapters.input_sanitizer import InputSanitizer
from aumos_tenant_trust.adapters.jurisdiction_classifier import JurisdictionClassifier
from aumos_tenant_trust.adapters.rate_limiter import public_rate_limit_key
from aumos_tenant_trust.adapters.repositories import (
    AssessmentSnapshotRepository,
    CrossTenantPermissionRepository,
)
from aumos_tenant_trust.adapters.risk_synthesis import RiskSynthesizer
from aumos_tenant_trust.adapters.tenant_directory import (
    ConventionTenantDirectory,
    SqlTenantDirectory,
)
from aumos_tenant_trust.adapters.threat_scanner import ThreatPatternScanner
from aumos_tenant_trust.auth import decode_access_token, principal_from_claims
from aumos_tenant_trust.core.entities import (
    AuthenticatedPrincipal,
    IsolationDecision,
    ResolutionRequest,
    TenantContext,
)
from aumos_tenant_trust.core.interfaces import (
    IAssessmentSnapshotRepository,
    ICrossTenantPermissionStore,
    IGeoResidencyClassifier,
    IRateLimiter,
    ITenantContextCache,
    ITenantDirectory,
)
from aumos_tenant_trust.core.models import Severity
from aumos_tenant_trust.core.services import (
    AssistantScreeningService,
    ComplianceAggregator,
    CrossTenantPermissionEvaluator,
    IsolationValidator,
    TenantContextResolver,
    extract_resource_reference,
)
from aumos_tenant_trust.database import session_scope
from aumos_tenant_trust.errors import AuthenticationRequired
from aumos_tenant_trust.settings import Settings

_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------


def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Verified claims of the bearer token.

    Raises:
        AuthenticationRequired: If no token is present or it fails verification.
    """
    if credentials is None:
        raise AuthenticationRequired("Authentication required")
    return decode_access_token(credentials.credentials, settings.jwt_secret, settings.jwt_algorithm)


def get_current_principal(
    claims: dict[str, Any] = Depends(get_token_claims),
) -> AuthenticatedPrincipal:
    return principal_from_claims(claims)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


def get_tenant_cache(request: Request) -> ITenantContextCache:
    return request.app.state.tenant_cache


def get_event_publisher(request: Request) -> TrustEventPublisher:
    return request.app.state.event_publisher


def get_geo_classifier(request: Request) -> IGeoResidencyClassifier:
    return request.app.state.geo_classifier


def get_assessment_providers(request: Request) -> AssessmentProviderRegistry:
    return request.app.state.assessment_providers


def get_rate_limiter(request: Request) -> IRateLimiter:
    return request.app.state.rate_limiter


def get_public_rate_limiter(request: Request) -> IRateLimiter:
    return request.app.state.public_rate_limiter


async def get_tenant_directory(
    settings: Settings = Depends(get_settings),
) -> AsyncIterator[ITenantDirectory]:
    """Tenant directory for the configured backend (database or convention)."""
    if settings.tenant_directory_backend == "convention":
        yield ConventionTenantDirectory()
        return
    async with session_scope() as session:
        yield SqlTenantDirectory(session)


async def get_storage_session(
    settings: Settings = Depends(get_settings),
) -> AsyncIterator[AsyncSession | None]:
    """One transactional session per request, or None for the memory backend."""
    if settings.storage_backend == "memory":
        yield None
        return
    async with session_scope() as session:
        yield session


def get_permission_store(
    request: Request,
    session: AsyncSession | None = Depends(get_storage_session),
) -> ICrossTenantPermissionStore:
    if session is None:
        return request.app.state.permission_store
    return CrossTenantPermissionRepository(session)


def get_snapshot_repository(
    request: Request,
    session: AsyncSession | None = Depends(get_storage_session),
) -> IAssessmentSnapshotRepository:
    if session is None:
        return request.app.state.snapshot_repository
    return AssessmentSnapshotRepository(session)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def get_tenant_resolver(
    directory: ITenantDirectory = Depends(get_tenant_directory),
    cache: ITenantContextCache = Depends(get_tenant_cache),
    settings: Settings = Depends(get_settings),
) -> TenantContextResolver:
    return TenantContextResolver(
        directory=directory,
        cache=cache,
        ttl_seconds=settings.tenant_context_cache_ttl_seconds,
        allow_query_override=settings.allow_query_tenant_override,
        lookup_timeout=settings.tenant_resolution_timeout_seconds,
    )


def get_permission_evaluator(
    store: ICrossTenantPermissionStore = Depends(get_permission_store),
) -> CrossTenantPermissionEvaluator:
    return CrossTenantPermissionEvaluator(store)


def get_isolation_validator(
    evaluator: CrossTenantPermissionEvaluator = Depends(get_permission_evaluator),
    geo_classifier: IGeoResidencyClassifier = Depends(get_geo_classifier),
    publisher: TrustEventPublisher = Depends(get_event_publisher),
    settings: Settings = Depends(get_settings),
) -> IsolationValidator:
    return IsolationValidator(
        evaluator=evaluator,
        geo_classifier=geo_classifier,
        accepted_jurisdictions=settings.accepted_jurisdictions,
        force_strict=settings.force_strict_isolation,
        publisher=publisher,
    )


def get_compliance_aggregator(
    providers: AssessmentProviderRegistry = Depends(get_assessment_providers),
    snapshots: IAssessmentSnapshotRepository = Depends(get_snapshot_repository),
    publisher: TrustEventPublisher = Depends(get_event_publisher),
    settings: Settings = Depends(get_settings),
) -> ComplianceAggregator:
    return ComplianceAggregator(
        classifier=JurisdictionClassifier(),
        providers=providers,
        snapshots=snapshots,
        publisher=publisher,
        synthesizer=RiskSynthesizer(
            risk_threshold=settings.compliance_risk_threshold,
            divergence_threshold=settings.domain_divergence_threshold,
        ),
        call_timeout=settings.assessment_call_timeout_seconds,
        deadline=settings.aggregation_deadline_seconds,
        retry_backoff=settings.provider_retry_backoff_seconds,
        risk_threshold=settings.compliance_risk_threshold,
    )


def get_screening_service(
    rate_limiter: IRateLimiter = Depends(get_rate_limiter),
    public_rate_limiter: IRateLimiter = Depends(get_public_rate_limiter),
    publisher: TrustEventPublisher = Depends(get_event_publisher),
    settings: Settings = Depends(get_settings),
) -> AssistantScreeningService:
    return AssistantScreeningService(
        scanner=ThreatPatternScanner(
            block_severity=Severity(settings.threat_block_severity.upper()),
            max_body_bytes=settings.assistant_max_body_bytes,
            max_depth=settings.assistant_max_depth,
            block_structural=settings.block_structural_violations,
        ),
        sanitizer=InputSanitizer(
            free_text_fields=tuple(settings.assistant_free_text_fields),
            max_text_length=settings.assistant_message_max_length,
            max_list_items=settings.assistant_care_context_max_items,
            max_depth=settings.assistant_max_depth,
        ),
        rate_limiter=rate_limiter,
        public_rate_limiter=public_rate_limiter,
        publisher=publisher,
    )


# ---------------------------------------------------------------------------
# Trust boundary
# ---------------------------------------------------------------------------


async def get_tenant_context(
    request: Request,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    claims: dict[str, Any] = Depends(get_token_claims),
    resolver: TenantContextResolver = Depends(get_tenant_resolver),
) -> TenantContext:
    """Resolve the request's tenant after the principal is established."""
    return await resolver.resolve(
        ResolutionRequest(
            token_claims=claims,
            header_tenant_id=request.headers.get("x-tenant-id"),
            host=request.headers.get("host"),
            query_tenant_id=request.query_params.get("tenantId"),
        )
    )


async def _json_body(request: Request) -> dict[str, Any] | None:
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    raw = await request.body()
    if not raw:
        return None
    try:
        body = json.loads(raw)
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


@dataclass(frozen=True)
class TenantGuard:
    """Everything a gated route knows about the caller once isolation passed."""

    principal: AuthenticatedPrincipal
    context: TenantContext
    decision: IsolationDecision


async def enforce_tenant_isolation(
    request: Request,
    response: Response,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    context: TenantContext = Depends(get_tenant_context),
    validator: IsolationValidator = Depends(get_isolation_validator),
) -> TenantGuard:
    """Validate isolation for the request and stamp the tenant response headers.

    Raises:
        IsolationViolation: On any isolation violation.
    """
    reference = extract_resource_reference(
        path=request.url.path,
        method=request.method,
        query=request.query_params,
        body=await _json_body(request),
    )
    origin = request_origin(
        dict(request.headers),
        request.client.host if request.client else None,
    )
    decision = await validator.enforce(principal, context, reference, origin, request.url.path)

    response.headers["X-Tenant-ID"] = context.tenant_id
    response.headers["X-Tenant-Isolation"] = "ENFORCED"
    response.headers["X-Data-Residency"] = context.data_residency.value
    return TenantGuard(principal=principal, context=context, decision=decision)


# ---------------------------------------------------------------------------
# Public assistant
# ---------------------------------------------------------------------------


def get_public_client_key(request: Request) -> str:
    """Rate limit key for an anonymous public assistant caller."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    else:
        client_ip = request.client.host if request.client else None
    return public_rate_limit_key(client_ip, request.headers.get("user-agent"))
