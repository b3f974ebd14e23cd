"""Shared test fixtures for aumos-tenant-trust.

Provides in-memory implementations of the core Protocol interfaces and an
HTTPX async client wired against a fresh app running the memory storage
backend:

  - settings: test Settings with the convention tenant directory
  - permission_store / snapshot_repository: the app's in-memory stores
  - event_sink: records every published audit event
  - make_token: issues signed bearer tokens
  - client: HTTPX AsyncClient over ASGITransport
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from aumos_tenant_trust.adapters.assessment_providers import AssessmentProviderRegistry
from aumos_tenant_trust.adapters.events import TrustEventPublisher
from aumos_tenant_trust.adapters.repositories import (
    InMemoryAssessmentSnapshotRepository,
    InMemoryCrossTenantPermissionStore,
)
from aumos_tenant_trust.auth import create_access_token
from aumos_tenant_trust.core.entities import (
    JurisdictionAssessment,
    TenantContext,
)
from aumos_tenant_trust.core.models import (
    REGULATORY_BODIES,
    DataResidency,
    IsolationLevel,
    Jurisdiction,
)
from aumos_tenant_trust.errors import LookupFailure
from aumos_tenant_trust.main import create_app
from aumos_tenant_trust.settings import Settings

JWT_SECRET = "test-secret-with-enough-bytes-for-hs256"


class FakeTenantDirectory:
    """ITenantDirectory over a dict, counting lookups.

    ``delay`` makes every lookup sleep first, standing in for a hung backend.
    """

    def __init__(
        self,
        contexts: list[TenantContext] | None = None,
        fail: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.contexts = {c.tenant_id: c for c in contexts or []}
        self.fail = fail
        self.delay = delay
        self.calls = 0

    async def resolve_by_id(self, tenant_id: str) -> TenantContext | None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise LookupFailure("Tenant directory unavailable")
        return self.contexts.get(tenant_id)

    async def resolve_by_subdomain(self, subdomain: str) -> TenantContext | None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise LookupFailure("Tenant directory unavailable")
        for context in self.contexts.values():
            if context.subdomain == subdomain:
                return context
        return None


class RecordingEventSink:
    """IEventSink that keeps every event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        self.events.append((topic, event))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [e for _, e in self.events if e["event_type"] == event_type]


class StubAssessmentProvider:
    """IJurisdictionAssessmentProvider returning a fixed score after an optional delay.

    ``failures`` is a list of exceptions raised on successive calls before
    the provider starts answering.
    """

    def __init__(
        self,
        jurisdiction: Jurisdiction,
        score: float = 80.0,
        delay: float = 0.0,
        failures: list[Exception] | None = None,
        domain_scores: dict[str, float] | None = None,
        gaps: tuple[str, ...] = (),
        recommendations: tuple[str, ...] = (),
    ) -> None:
        self.jurisdiction = jurisdiction
        self.score = score
        self.delay = delay
        self.failures = list(failures or [])
        self.domain_scores = domain_scores or {}
        self.gaps = gaps
        self.recommendations = recommendations
        self.calls = 0
        self.cancelled = False

    async def assess(self, organization_id: str) -> JurisdictionAssessment:
        self.calls += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.failures:
            raise self.failures.pop(0)
        return JurisdictionAssessment(
            jurisdiction=self.jurisdiction,
            regulatory_body=REGULATORY_BODIES[self.jurisdiction],
            overall_score=self.score,
            domain_scores=self.domain_scores,
            gaps=self.gaps,
            recommendations=self.recommendations,
        )


def make_context(
    tenant_id: str = "healthcare-alpha001",
    data_residency: DataResidency = DataResidency.UK_ONLY,
    jurisdiction: str = "england",
    isolation_level: IsolationLevel = IsolationLevel.STRICT,
    subdomain: str | None = None,
) -> TenantContext:
    """Build a TenantContext with sensible defaults."""
    return TenantContext(
        tenant_id=tenant_id,
        tenant_code=f"T_{tenant_id[-8:].upper()}",
        data_residency=data_residency,
        jurisdiction=jurisdiction,
        compliance_level="HEALTHCARE",
        isolation_level=isolation_level,
        subdomain=subdomain,
    )


@pytest.fixture
def settings() -> Settings:
    """Test settings: convention directory, memory storage, console logging, low rate limit."""
    return Settings(
        environment="test",
        tenant_directory_backend="convention",
        storage_backend="memory",
        jwt_secret=JWT_SECRET,
        log_json=False,
        assistant_rate_limit_requests=5,
        public_assistant_rate_limit_requests=3,
        provider_retry_backoff_seconds=0.0,
    )


@pytest.fixture
def permission_store() -> InMemoryCrossTenantPermissionStore:
    return InMemoryCrossTenantPermissionStore()


@pytest.fixture
def snapshot_repository() -> InMemoryAssessmentSnapshotRepository:
    return InMemoryAssessmentSnapshotRepository()


@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory issuing bearer tokens signed with the test secret."""

    def _make(
        tenant_id: str = "healthcare-alpha001",
        user_id: str = "user-1",
        roles: list[str] | None = None,
    ) -> str:
        return create_access_token(user_id, tenant_id, JWT_SECRET, roles=roles)

    return _make


@pytest.fixture
def app(settings, permission_store, snapshot_repository, event_sink):
    """FastAPI app with in-memory stores and a recording event sink."""
    application = create_app(settings)
    application.state.event_publisher = TrustEventPublisher(event_sink)
    application.state.assessment_providers = AssessmentProviderRegistry(
        [
            StubAssessmentProvider(Jurisdiction.ENGLAND, score=82.0),
            StubAssessmentProvider(Jurisdiction.WALES, score=70.0),
        ]
    )
    application.state.permission_store = permission_store
    application.state.snapshot_repository = snapshot_repository
    return application


@pytest.fixture
async def client(app) -> AsyncIterator[AsyncClient]:
    """Async HTTP client against the test app.

    Returns:
        Configured HTTPX AsyncClient for test requests.
    """
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as async_client:
        yield async_client
