"""AumOS Tenant Trust service entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from redis.asyncio import Redis

from aumos_tenant_trust.adapters.assessment_providers import AssessmentProviderRegistry
from aumos_tenant_trust.adapters.events import LoggingEventSink, TrustEventPublisher
from aumos_tenant_trust.adapters.geo_residency import StaticGeoResidencyClassifier
from aumos_tenant_trust.adapters.rate_limiter import (
    RedisSlidingWindowRateLimiter,
    SlidingWindowRateLimiter,
)
from aumos_tenant_trust.adapters.repositories import (
    InMemoryAssessmentSnapshotRepository,
    InMemoryCrossTenantPermissionStore,
)
from aumos_tenant_trust.adapters.tenant_cache import (
    InMemoryTenantContextCache,
    RedisTenantContextCache,
)
from aumos_tenant_trust.api.errors import register_exception_handlers
from aumos_tenant_trust.api.router import router
from aumos_tenant_trust.core.interfaces import IRateLimiter
from aumos_tenant_trust.database import create_tables, dispose_database, init_database
from aumos_tenant_trust.observability import configure_logging, get_logger
from aumos_tenant_trust.settings import Settings

logger = get_logger(__name__)


def _rate_limiter(
    redis_client: Redis | None, max_requests: int, window_seconds: int
) -> IRateLimiter:
    if redis_client is not None:
        return RedisSlidingWindowRateLimiter(redis_client, max_requests, window_seconds)
    return SlidingWindowRateLimiter(max_requests, window_seconds)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application and its process-wide collaborators.

    Args:
        settings: Service settings; read from the environment when omitted.

    Returns:
        The configured FastAPI application.
    """
    settings = settings or Settings()
    configure_logging(settings.log_level, settings.log_json)

    http_client = httpx.AsyncClient(timeout=settings.assessment_call_timeout_seconds)
    redis_client = Redis.from_url(settings.redis_url) if settings.redis_url else None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application startup and shutdown lifecycle.

        Args:
            app: The FastAPI application instance.

        Yields:
            None
        """
        # Startup
        if settings.uses_database:
            init_database(settings.database_url)
            if settings.create_tables_on_startup:
                await create_tables()
        logger.info(
            "Service started",
            service=settings.service_name,
            environment=settings.environment,
            directory_backend=settings.tenant_directory_backend,
            storage_backend=settings.storage_backend,
        )
        yield
        # Shutdown
        await http_client.aclose()
        if redis_client is not None:
            await redis_client.aclose()
        await dispose_database()

    app = FastAPI(
        title=settings.service_name,
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.tenant_cache = (
        RedisTenantContextCache(redis_client)
        if redis_client is not None
        else InMemoryTenantContextCache()
    )
    app.state.event_publisher = TrustEventPublisher(LoggingEventSink())
    app.state.geo_classifier = StaticGeoResidencyClassifier()
    app.state.rate_limiter = _rate_limiter(
        redis_client,
        settings.assistant_rate_limit_requests,
        settings.assistant_rate_limit_window_seconds,
    )
    app.state.public_rate_limiter = _rate_limiter(
        redis_client,
        settings.public_assistant_rate_limit_requests,
        settings.public_assistant_rate_limit_window_seconds,
    )
    if settings.storage_backend == "memory":
        app.state.permission_store = InMemoryCrossTenantPermissionStore()
        app.state.snapshot_repository = InMemoryAssessmentSnapshotRepository()
    app.state.assessment_providers = AssessmentProviderRegistry.from_urls(
        settings.assessment_provider_urls, http_client
    )

    @app.get("/live", tags=["health"])
    async def live() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/ready", tags=["health"])
    async def ready() -> dict[str, str]:
        return {
            "status": "ready",
            "service": settings.service_name,
            "version": settings.version,
        }

    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")
    return app


app: FastAPI = create_app()
