"""Business logic services for aumos-tenant-trust.

Services contain all trust-boundary logic. They:
  - Accept every collaborator via constructor injection (directory, cache,
    permission store, geo classifier, assessment providers, event publisher)
  - Raise errors from aumos_tenant_trust.errors; security errors always deny
  - Are framework-agnostic (no FastAPI, no direct DB access)

Request flow: TenantContextResolver -> IsolationValidator ->
ComplianceAggregator or AssistantScreeningService.
"""

import asyncio
import ipaddress
import re
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from aumos_tenant_trust.adapters.assessment_providers import AssessmentProviderRegistry
from aumos_tenant_trust.adapters.events import TrustEventPublisher
from aumos_tenant_trust.adapters.geo_residency import is_residency_compliant
from aumos_tenant_trust.adapters.input_sanitizer import InputSanitizer
from aumos_tenant_trust.adapters.jurisdiction_classifier import JurisdictionClassifier
from aumos_tenant_trust.adapters.rate_limiter import rate_limit_key
from aumos_tenant_trust.adapters.risk_synthesis import RiskSynthesizer
from aumos_tenant_trust.adapters.tenant_cache import cache_key_for_id, cache_key_for_subdomain
from aumos_tenant_trust.adapters.threat_scanner import ThreatPatternScanner
from aumos_tenant_trust.core.entities import (
    AuthenticatedPrincipal,
    CrossTenantPermission,
    IsolationDecision,
    JurisdictionAssessment,
    Location,
    MultiJurisdictionalAssessment,
    ResolutionRequest,
    ResourceReference,
    SanitizationReport,
    SecurityViolation,
    TenantContext,
)
from aumos_tenant_trust.core.interfaces import (
    IAssessmentSnapshotRepository,
    ICrossTenantPermissionStore,
    IGeoResidencyClassifier,
    IJurisdictionAssessmentProvider,
    IRateLimiter,
    ITenantContextCache,
    ITenantDirectory,
)
from aumos_tenant_trust.core.models import (
    IsolationLevel,
    Jurisdiction,
    Severity,
    ViolationType,
)
from aumos_tenant_trust.errors import (
    AggregationPartialFailure,
    IsolationViolation,
    LookupFailure,
    PublicRateLimitExceeded,
    RateLimitExceeded,
    ResolutionFailure,
    StructuralViolation,
    ThreatDetected,
)
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Tenant resolution
# ---------------------------------------------------------------------------

TOKEN_TENANT_CLAIMS: tuple[str, ...] = ("tenant_id", "tenantId")
RESERVED_SUBDOMAINS: frozenset[str] = frozenset({"www", "api"})


def subdomain_from_host(host: str | None) -> str | None:
    """First DNS label of a Host header, or None when it carries no tenant.

    Bare hosts (no dot), IP addresses and the reserved www/api labels yield None.
    """
    if not host:
        return None
    hostname = host.strip().lower()
    if hostname.startswith("["):
        return None
    hostname = hostname.rsplit(":", 1)[0] if ":" in hostname else hostname
    if "." not in hostname:
        return None
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        pass
    else:
        return None
    label = hostname.split(".", 1)[0]
    if not label or label in RESERVED_SUBDOMAINS:
        return None
    return label


class TenantContextResolver:
    """Resolves the tenant a request belongs to.

    Candidates are taken in a fixed order and the first one present wins:
    token claim, X-Tenant-ID header, Host subdomain, then the tenantId query
    parameter (only when ``allow_query_override`` is set). The winning
    candidate must resolve to a known tenant; later candidates are never
    consulted as a fallback.

    Args:
        directory: Source of truth for tenant metadata.
        cache: Read-through cache in front of the directory.
        ttl_seconds: Cache entry lifetime.
        allow_query_override: Honor the query parameter candidate.
        lookup_timeout: Upper bound in seconds on one directory lookup.
    """

    def __init__(
        self,
        directory: ITenantDirectory,
        cache: ITenantContextCache,
        ttl_seconds: int = 3600,
        allow_query_override: bool = False,
        lookup_timeout: float = 2.0,
    ) -> None:
        self._directory = directory
        self._cache = cache
        self._ttl_seconds = ttl_seconds
        self._allow_query_override = allow_query_override
        self._lookup_timeout = lookup_timeout

    def candidate(self, request: ResolutionRequest) -> tuple[str, str] | None:
        """Pick the tenant candidate for a request.

        Returns:
            Tuple of (source, value) where source is one of token, header,
            subdomain or query; None when no candidate is present.
        """
        claims = request.token_claims or {}
        for claim in TOKEN_TENANT_CLAIMS:
            value = claims.get(claim)
            if isinstance(value, str) and value.strip():
                return "token", value.strip()
        if request.header_tenant_id and request.header_tenant_id.strip():
            return "header", request.header_tenant_id.strip()
        subdomain = subdomain_from_host(request.host)
        if subdomain:
            return "subdomain", subdomain
        if self._allow_query_override and request.query_tenant_id and request.query_tenant_id.strip():
            return "query", request.query_tenant_id.strip()
        return None

    async def resolve(self, request: ResolutionRequest) -> TenantContext:
        """Resolve the request's tenant context.

        Args:
            request: Tenant candidates extracted from the inbound request.

        Returns:
            The TenantContext in effect for the request.

        Raises:
            ResolutionFailure: No candidate present, or the candidate is unknown.
            LookupFailure: The tenant directory is unreachable or too slow.
        """
        picked = self.candidate(request)
        if picked is None:
            logger.warning("No tenant candidate on request")
            raise ResolutionFailure(
                "Tenant context required",
                ["No tenant identifier in token, X-Tenant-ID header, subdomain or query"],
            )
        source, value = picked

        key = cache_key_for_subdomain(value) if source == "subdomain" else cache_key_for_id(value)
        context = await self._cache.get(key)
        if context is not None:
            return context

        try:
            async with asyncio.timeout(self._lookup_timeout):
                if source == "subdomain":
                    context = await self._directory.resolve_by_subdomain(value)
                else:
                    context = await self._directory.resolve_by_id(value)
        except TimeoutError as exc:
            logger.error(
                "Tenant directory lookup timed out",
                source=source,
                timeout_seconds=self._lookup_timeout,
            )
            raise LookupFailure(
                "Tenant directory unavailable",
                [f"Tenant lookup exceeded {self._lookup_timeout:g}s"],
                transient=True,
            ) from exc

        if context is None:
            logger.warning("Tenant candidate not found", source=source, candidate=value)
            raise ResolutionFailure(
                "Tenant context required",
                [f"Tenant '{value}' from {source} is not known"],
            )

        await self._cache.set(key, context, self._ttl_seconds)
        logger.debug("Tenant context resolved", tenant_id=context.tenant_id, source=source)
        return context

    async def invalidate(self, context: TenantContext) -> None:
        """Drop every cache entry of a tenant after its metadata changed."""
        keys = [cache_key_for_id(context.tenant_id)]
        if context.subdomain:
            keys.append(cache_key_for_subdomain(context.subdomain))
        await self._cache.invalidate(*keys)
        logger.info("Tenant context invalidated", tenant_id=context.tenant_id)


# ---------------------------------------------------------------------------
# Cross-tenant permissions
# ---------------------------------------------------------------------------


class CrossTenantPermissionEvaluator:
    """Decides whether one tenant may act on another tenant's resource.

    Args:
        store: Permission store queried by source tenant.
        clock: Current-time source used for expiry checks.
    """

    def __init__(
        self,
        store: ICrossTenantPermissionStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    async def find_permission(
        self,
        source_tenant_id: str,
        target_tenant_id: str,
        resource: str,
        action: str,
    ) -> CrossTenantPermission | None:
        """Return the first current permission covering the access, if any.

        Matching is exact on resource and action; the target must equal the
        requested tenant or be the wildcard.
        """
        now = self._clock()
        for permission in await self._store.list_by_source(source_tenant_id):
            if permission.is_current(now) and permission.covers(target_tenant_id, resource, action):
                return permission
        return None

    async def is_permitted(
        self,
        source_tenant_id: str,
        target_tenant_id: str,
        resource: str,
        action: str,
    ) -> bool:
        """Whether ``source_tenant_id`` may perform ``action`` on ``resource`` of ``target_tenant_id``.

        Same-tenant access is always permitted without consulting the store.
        """
        if source_tenant_id == target_tenant_id:
            return True
        permission = await self.find_permission(source_tenant_id, target_tenant_id, resource, action)
        return permission is not None

    async def grant(
        self,
        source_tenant_id: str,
        target_tenant_id: str,
        resource: str,
        actions: Iterable[str],
        granted_by: str,
        expires_at: datetime | None = None,
    ) -> CrossTenantPermission:
        """Create a new permission record; existing records are never modified."""
        permission = CrossTenantPermission(
            source_tenant_id=source_tenant_id,
            target_tenant_id=target_tenant_id,
            resource=resource,
            actions=frozenset(actions),
            granted_at=self._clock(),
            expires_at=expires_at,
            granted_by=granted_by,
        )
        return await self._store.grant(permission)

    async def list_granted(self, source_tenant_id: str) -> list[CrossTenantPermission]:
        return await self._store.list_by_source(source_tenant_id)


# ---------------------------------------------------------------------------
# Isolation validation
# ---------------------------------------------------------------------------

_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{1,127}$", re.IGNORECASE)
TENANT_FIELDS: tuple[str, ...] = ("tenantId", "tenant_id")

METHOD_ACTIONS: dict[str, str] = {
    "GET": "read",
    "HEAD": "read",
    "OPTIONS": "read",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


def looks_like_tenant_id(value: str) -> bool:
    return bool(_UUID_PATTERN.match(value) or _SLUG_PATTERN.match(value))


def extract_resource_reference(
    path: str,
    method: str,
    query: Mapping[str, Any] | None = None,
    body: Mapping[str, Any] | None = None,
) -> ResourceReference:
    """Extract the tenant-scoped resource a request points at.

    The tenant is the path segment following ``tenants`` when it looks like a
    tenant identifier, else the tenantId/tenant_id query field, else the same
    body field. The resource is the segment after the tenant id, or the last
    path segment.

    Args:
        path: Request path.
        method: HTTP method.
        query: Query parameters.
        body: Parsed JSON body, if it is an object.
    """
    segments = [segment for segment in path.split("/") if segment]
    action = METHOD_ACTIONS.get(method.upper(), "read")

    for index, segment in enumerate(segments[:-1]):
        candidate = segments[index + 1]
        if segment == "tenants" and looks_like_tenant_id(candidate):
            resource = segments[index + 2] if index + 2 < len(segments) else ""
            return ResourceReference(tenant_id=candidate, resource=resource, action=action)

    tenant_id: str | None = None
    for source in (query or {}, body or {}):
        for field in TENANT_FIELDS:
            value = source.get(field)
            if isinstance(value, str) and value:
                tenant_id = value
                break
        if tenant_id is not None:
            break

    resource = segments[-1] if segments else ""
    return ResourceReference(tenant_id=tenant_id, resource=resource, action=action)


class IsolationValidator:
    """Enforces that a request never crosses a tenant boundary without a grant.

    Every check runs and violations accumulate so a denial carries the full
    itemized list. Any unexpected error during validation becomes a
    violation; validation never fails open.

    Args:
        evaluator: Cross-tenant permission evaluator.
        geo_classifier: Classifies the request origin for residency checks.
        accepted_jurisdictions: Jurisdictions the deployment serves.
        force_strict: Treat every tenant as STRICT.
        publisher: Audit event publisher for denials.
    """

    def __init__(
        self,
        evaluator: CrossTenantPermissionEvaluator,
        geo_classifier: IGeoResidencyClassifier,
        accepted_jurisdictions: Iterable[str],
        force_strict: bool = False,
        publisher: TrustEventPublisher | None = None,
    ) -> None:
        self._evaluator = evaluator
        self._geo_classifier = geo_classifier
        self._accepted_jurisdictions = frozenset(j.lower() for j in accepted_jurisdictions)
        self._force_strict = force_strict
        self._publisher = publisher

    def is_strict(self, context: TenantContext) -> bool:
        return self._force_strict or context.isolation_level is IsolationLevel.STRICT

    async def validate(
        self,
        principal: AuthenticatedPrincipal,
        context: TenantContext,
        reference: ResourceReference,
        origin: str | None,
    ) -> IsolationDecision:
        """Validate one request against the tenant's isolation constraints.

        Args:
            principal: The authenticated caller.
            context: The resolved tenant context.
            reference: The resource the request points at.
            origin: Request origin (country code or IP address).

        Returns:
            IsolationDecision with every violation found.
        """
        violations: list[str] = []
        patterns: list[str] = [f"tenant:{context.tenant_id}:*"]

        if principal.tenant_id != context.tenant_id:
            violations.append(
                f"Principal tenant '{principal.tenant_id}' does not match "
                f"resolved tenant '{context.tenant_id}'"
            )

        try:
            await self._check_resource_tenant(principal, context, reference, violations, patterns)
        except Exception as exc:
            logger.exception("Cross-tenant check failed", tenant_id=context.tenant_id)
            violations.append(f"Cross-tenant validation error: {type(exc).__name__}")

        try:
            country = await self._geo_classifier.classify(origin)
            if not is_residency_compliant(context.data_residency, country):
                violations.append(
                    f"Request origin '{country or 'unknown'}' violates "
                    f"{context.data_residency.value} data residency"
                )
        except Exception as exc:
            logger.exception("Residency check failed", tenant_id=context.tenant_id)
            violations.append(f"Data residency validation error: {type(exc).__name__}")

        if context.jurisdiction.lower() not in self._accepted_jurisdictions:
            violations.append(f"Jurisdiction '{context.jurisdiction}' is not accepted")

        return IsolationDecision(
            valid=not violations,
            violations=tuple(violations),
            allowed_resource_patterns=tuple(patterns),
        )

    async def _check_resource_tenant(
        self,
        principal: AuthenticatedPrincipal,
        context: TenantContext,
        reference: ResourceReference,
        violations: list[str],
        patterns: list[str],
    ) -> None:
        target = reference.tenant_id
        if target is None or target == context.tenant_id:
            return

        if self.is_strict(context):
            violations.append(
                f"Cross-tenant access to '{target}' denied under STRICT isolation"
            )
            return

        logger.warning(
            "Cross-tenant reference",
            tenant_id=context.tenant_id,
            target_tenant_id=target,
            resource=reference.resource,
            action=reference.action,
            user_id=principal.user_id,
        )
        permitted = await self._evaluator.is_permitted(
            context.tenant_id, target, reference.resource, reference.action
        )
        if permitted:
            patterns.append(f"tenant:{target}:{reference.resource}")
        else:
            violations.append(
                f"No active permission for {reference.action} on "
                f"'{reference.resource}' of tenant '{target}'"
            )

    async def enforce(
        self,
        principal: AuthenticatedPrincipal,
        context: TenantContext,
        reference: ResourceReference,
        origin: str | None,
        path: str,
    ) -> IsolationDecision:
        """Validate and deny on any violation.

        Raises:
            IsolationViolation: With the itemized violation list.
        """
        decision = await self.validate(principal, context, reference, origin)
        if decision.valid:
            return decision

        logger.warning(
            "Tenant isolation violation",
            tenant_id=context.tenant_id,
            user_id=principal.user_id,
            path=path,
            violations=list(decision.violations),
        )
        if self._publisher is not None:
            await self._publisher.publish_isolation_violation(
                tenant_id=context.tenant_id,
                user_id=principal.user_id,
                path=path,
                violations=list(decision.violations),
            )
        raise IsolationViolation("Tenant isolation violation", list(decision.violations))


# ---------------------------------------------------------------------------
# Compliance aggregation
# ---------------------------------------------------------------------------


class ComplianceAggregator:
    """Aggregates per-jurisdiction assessments into one compliance view.

    Every applicable jurisdiction is assessed concurrently. The aggregation
    is all-or-nothing: a failed, timed-out or missing provider fails the run
    with AggregationPartialFailure, and no unified score is computed from a
    partial set. The overall score is the unweighted mean of jurisdiction
    scores.

    Args:
        classifier: Maps locations to jurisdictions.
        providers: Assessment provider per jurisdiction.
        snapshots: Append-only snapshot store.
        publisher: Audit event publisher.
        synthesizer: Cross-jurisdictional risk rules.
        call_timeout: Per-provider call timeout, seconds.
        deadline: Bound on the whole fan-out, seconds.
        retry_backoff: Delay before the single retry of a transient failure.
        risk_threshold: Jurisdiction scores below this raise a risk event.
        clock: Current-time source.
    """

    def __init__(
        self,
        classifier: JurisdictionClassifier,
        providers: AssessmentProviderRegistry,
        snapshots: IAssessmentSnapshotRepository,
        publisher: TrustEventPublisher,
        synthesizer: RiskSynthesizer | None = None,
        call_timeout: float = 5.0,
        deadline: float = 15.0,
        retry_backoff: float = 0.2,
        risk_threshold: float = 75.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._classifier = classifier
        self._providers = providers
        self._snapshots = snapshots
        self._publisher = publisher
        self._synthesizer = synthesizer or RiskSynthesizer(risk_threshold=risk_threshold)
        self._call_timeout = call_timeout
        self._deadline = deadline
        self._retry_backoff = retry_backoff
        self._risk_threshold = risk_threshold
        self._clock = clock

    async def aggregate(
        self,
        tenant_id: str,
        organization_id: str,
        locations: Iterable[Location],
    ) -> MultiJurisdictionalAssessment:
        """Run one multi-jurisdictional aggregation and persist its snapshot.

        Args:
            tenant_id: Tenant that owns the organization.
            organization_id: Organization to assess.
            locations: The organization's sites.

        Returns:
            The aggregated MultiJurisdictionalAssessment.

        Raises:
            AggregationPartialFailure: If any jurisdiction could not be assessed.
        """
        jurisdictions = self._classifier.classify(locations)
        logger.info(
            "Aggregating compliance",
            tenant_id=tenant_id,
            organization_id=organization_id,
            jurisdictions=[j.value for j in jurisdictions],
        )

        results = await self._fan_out(organization_id, jurisdictions)
        assessment = self._assemble(organization_id, results)

        await self._snapshots.append(tenant_id, assessment)
        await self._publisher.publish_assessment_recorded(
            tenant_id=tenant_id,
            organization_id=organization_id,
            jurisdictions=[j.value for j in assessment.jurisdictions],
            overall_score=assessment.overall_compliance_score,
        )
        for jurisdiction, item in assessment.jurisdictions.items():
            if item.overall_score < self._risk_threshold:
                logger.warning(
                    "Compliance risk detected",
                    organization_id=organization_id,
                    jurisdiction=jurisdiction.value,
                    score=item.overall_score,
                )
                await self._publisher.publish_compliance_risk_detected(
                    tenant_id=tenant_id,
                    organization_id=organization_id,
                    jurisdiction=jurisdiction.value,
                    score=item.overall_score,
                    gaps=list(item.gaps),
                )
        return assessment

    async def history(
        self, tenant_id: str, organization_id: str, limit: int = 20
    ) -> list[MultiJurisdictionalAssessment]:
        return await self._snapshots.list_for_organization(tenant_id, organization_id, limit)

    async def _fan_out(
        self,
        organization_id: str,
        jurisdictions: tuple[Jurisdiction, ...],
    ) -> dict[Jurisdiction, JurisdictionAssessment]:
        missing = [j for j in jurisdictions if j not in self._providers]
        if missing:
            failed = {j.value: "no assessment provider registered" for j in missing}
            logger.error("Assessment providers missing", jurisdictions=sorted(failed))
            raise AggregationPartialFailure(
                "Compliance aggregation incomplete", succeeded=[], failed=failed
            )
        if not jurisdictions:
            return {}

        tasks: dict[asyncio.Task[JurisdictionAssessment], Jurisdiction] = {
            asyncio.create_task(
                self._assess(self._providers.get(j), organization_id),
                name=f"assess-{j.value}",
            ): j
            for j in jurisdictions
        }
        done, pending = await asyncio.wait(
            tasks, timeout=self._deadline, return_when=asyncio.FIRST_EXCEPTION
        )
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        results: dict[Jurisdiction, JurisdictionAssessment] = {}
        failed: dict[str, str] = {}
        for task in done:
            jurisdiction = tasks[task]
            exc = task.exception()
            if exc is None:
                results[jurisdiction] = task.result()
            else:
                failed[jurisdiction.value] = str(exc) or type(exc).__name__
        if pending:
            reason = (
                "cancelled after another jurisdiction failed"
                if failed
                else f"aggregation deadline of {self._deadline:g}s exceeded"
            )
            for task in pending:
                failed[tasks[task].value] = reason

        if failed:
            logger.error(
                "Compliance aggregation failed",
                organization_id=organization_id,
                succeeded=sorted(j.value for j in results),
                failed=failed,
            )
            raise AggregationPartialFailure(
                "Compliance aggregation incomplete",
                succeeded=[j.value for j in results],
                failed=failed,
            )
        return results

    async def _assess(
        self,
        provider: IJurisdictionAssessmentProvider,
        organization_id: str,
    ) -> JurisdictionAssessment:
        try:
            return await self._assess_once(provider, organization_id)
        except LookupFailure as exc:
            if not exc.transient:
                raise
            logger.info(
                "Retrying assessment provider",
                jurisdiction=provider.jurisdiction.value,
                error=exc.message,
            )
        await asyncio.sleep(self._retry_backoff)
        return await self._assess_once(provider, organization_id)

    async def _assess_once(
        self,
        provider: IJurisdictionAssessmentProvider,
        organization_id: str,
    ) -> JurisdictionAssessment:
        try:
            assessment = await asyncio.wait_for(
                provider.assess(organization_id), timeout=self._call_timeout
            )
        except TimeoutError as exc:
            raise LookupFailure(
                f"{provider.jurisdiction.value} assessment timed out after {self._call_timeout:g}s",
                transient=False,
            ) from exc
        if assessment.jurisdiction is not provider.jurisdiction:
            raise LookupFailure(
                f"{provider.jurisdiction.value} provider returned an assessment for "
                f"{assessment.jurisdiction.value}",
                transient=False,
            )
        return assessment

    def _assemble(
        self,
        organization_id: str,
        results: dict[Jurisdiction, JurisdictionAssessment],
    ) -> MultiJurisdictionalAssessment:
        now = self._clock()
        ordered = {j: results[j] for j in Jurisdiction if j in results}
        if not ordered:
            return MultiJurisdictionalAssessment(
                organization_id=organization_id,
                assessment_date=now,
                jurisdictions={},
            )

        scores = [item.overall_score for item in ordered.values()]
        highest = lowest = None
        for jurisdiction, item in ordered.items():
            if highest is None or item.overall_score > ordered[highest].overall_score:
                highest = jurisdiction
            if lowest is None or item.overall_score < ordered[lowest].overall_score:
                lowest = jurisdiction

        return MultiJurisdictionalAssessment(
            organization_id=organization_id,
            assessment_date=now,
            jurisdictions=ordered,
            cross_jurisdictional_risks=tuple(self._synthesizer.synthesize_risks(ordered, now)),
            harmonized_recommendations=tuple(self._synthesizer.harmonize_recommendations(ordered)),
            overall_compliance_score=round(sum(scores) / len(scores), 2),
            highest_performing=highest,
            lowest_performing=lowest,
        )


# ---------------------------------------------------------------------------
# Assistant input screening
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScreenedMessage:
    """An assistant request that passed screening, ready for downstream use."""

    session_id: str
    security_level: str
    body: dict[str, Any]
    violations: tuple[SecurityViolation, ...]
    sanitization: SanitizationReport


def new_session_id() -> str:
    return f"ai_session_{uuid.uuid4().hex}"


class AssistantScreeningService:
    """Screens conversational assistant input before it reaches the assistant.

    Order: rate limit, threat scan, then sanitization of a copy of the body.
    Blocking findings deny with the violation types only; the matched content
    is never echoed back.

    Tenant requests run at MAXIMUM security level, limited per tenant user,
    with cross-tenant rules enabled. Public requests run at ENHANCED level,
    limited per client fingerprint.

    Args:
        scanner: Threat pattern scanner.
        sanitizer: Input sanitizer.
        rate_limiter: Per tenant-user sliding window limiter.
        public_rate_limiter: Per client-fingerprint limiter for the public assistant.
        publisher: Audit event publisher.
    """

    def __init__(
        self,
        scanner: ThreatPatternScanner,
        sanitizer: InputSanitizer,
        rate_limiter: IRateLimiter,
        public_rate_limiter: IRateLimiter,
        publisher: TrustEventPublisher,
    ) -> None:
        self._scanner = scanner
        self._sanitizer = sanitizer
        self._rate_limiter = rate_limiter
        self._public_rate_limiter = public_rate_limiter
        self._publisher = publisher

    async def screen(
        self,
        principal: AuthenticatedPrincipal,
        context: TenantContext,
        body: dict[str, Any],
    ) -> ScreenedMessage:
        """Screen one request to the tenant-scoped assistant.

        Args:
            principal: The authenticated caller.
            context: The resolved tenant context.
            body: Parsed request body. Not modified.

        Returns:
            ScreenedMessage carrying the sanitized body.

        Raises:
            RateLimitExceeded: Too many requests from this tenant user.
            ThreatDetected: A blocking content rule matched.
            StructuralViolation: Size/depth bounds exceeded and blocking is configured.
        """
        session_id = new_session_id()
        key = rate_limit_key(context.tenant_id, principal.user_id)

        if not await self._rate_limiter.hit(key):
            await self._reject_rate_limited(key, session_id, context.tenant_id, principal.user_id)
            raise RateLimitExceeded(
                "Too many requests to tenant AI agent", [ViolationType.RATE_LIMIT_EXCEEDED.value]
            )

        return await self._inspect(
            body,
            session_id=session_id,
            security_level="MAXIMUM",
            tenant_agent=True,
            tenant_id=context.tenant_id,
            user_id=principal.user_id,
        )

    async def screen_public(self, client_key: str, body: dict[str, Any]) -> ScreenedMessage:
        """Screen one anonymous request to the public assistant.

        Args:
            client_key: Rate limit key fingerprinting the caller.
            body: Parsed request body. Not modified.

        Returns:
            ScreenedMessage carrying the sanitized body.

        Raises:
            PublicRateLimitExceeded: Too many requests from this client.
            ThreatDetected: A blocking content rule matched.
            StructuralViolation: Size/depth bounds exceeded and blocking is configured.
        """
        session_id = new_session_id()

        if not await self._public_rate_limiter.hit(client_key):
            await self._reject_rate_limited(client_key, session_id, None, None)
            raise PublicRateLimitExceeded(
                "Too many requests to AI agent", [ViolationType.RATE_LIMIT_EXCEEDED.value]
            )

        return await self._inspect(
            body,
            session_id=session_id,
            security_level="ENHANCED",
            tenant_agent=False,
            tenant_id=None,
            user_id=None,
        )

    async def _reject_rate_limited(
        self,
        key: str,
        session_id: str,
        tenant_id: str | None,
        user_id: str | None,
    ) -> None:
        violation = SecurityViolation(
            type=ViolationType.RATE_LIMIT_EXCEEDED,
            severity=Severity.MEDIUM,
            description="Assistant rate limit exceeded",
            evidence=f"Rate limit key: {key}",
            blocked=True,
        )
        logger.warning("Assistant rate limit exceeded", key=key, tenant_id=tenant_id)
        await self._publisher.publish_threat_detected(tenant_id, user_id, session_id, [violation])

    async def _inspect(
        self,
        body: dict[str, Any],
        *,
        session_id: str,
        security_level: str,
        tenant_agent: bool,
        tenant_id: str | None,
        user_id: str | None,
    ) -> ScreenedMessage:
        result = self._scanner.scan(body, tenant_agent=tenant_agent)
        if result.violations:
            await self._publisher.publish_threat_detected(
                tenant_id, user_id, session_id, list(result.violations)
            )

        if result.blocked:
            blocking = result.blocking_violations
            types = list(dict.fromkeys(v.type.value for v in blocking))
            logger.error(
                "Assistant input blocked",
                tenant_id=tenant_id,
                user_id=user_id,
                session_id=session_id,
                violations=types,
            )
            if all(v.structural for v in blocking):
                raise StructuralViolation("Request structure violates assistant limits", types)
            raise ThreatDetected("Security violation detected", types)

        sanitized, report = self._sanitizer.sanitize(body)
        return ScreenedMessage(
            session_id=session_id,
            security_level=security_level,
            body=sanitized,
            violations=result.violations,
            sanitization=report,
        )
