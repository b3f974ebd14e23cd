"""Basic smoke tests for aumos-tenant-trust.

These tests verify the service starts correctly and health endpoints respond.
They run without infrastructure dependencies (no database, no Redis).
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_liveness_endpoint_returns_200(client: AsyncClient) -> None:
    """Liveness probe must return 200 OK with no tenant and no token.

    Health routes sit outside the tenant-gated router and never resolve a tenant.
    """
    response = await client.get("/live")

    assert response.status_code == 200
    assert "X-Tenant-ID" not in response.headers


@pytest.mark.asyncio
async def test_readiness_endpoint_reports_service(client: AsyncClient) -> None:
    response = await client.get("/ready")

    assert response.status_code == 200
    assert response.json()["service"] == "aumos-tenant-trust"


@pytest.mark.asyncio
async def test_docs_endpoint_is_accessible(client: AsyncClient) -> None:
    """Swagger UI docs endpoint must be accessible without a tenant."""
    response = await client.get("/docs")

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_openapi_schema_includes_trust_routes(client: AsyncClient) -> None:
    """OpenAPI schema must include every tenant-trust route path."""
    response = await client.get("/openapi.json")

    paths = response.json().get("paths", {})
    expected_paths = [
        "/api/v1/tenancy/context",
        "/api/v1/tenancy/tenants/{tenant_id}/{resource}",
        "/api/v1/tenancy/permissions",
        "/api/v1/tenancy/permissions/evaluate",
        "/api/v1/compliance/jurisdictions/classify",
        "/api/v1/compliance/organizations/{organization_id}/assessments",
        "/api/v1/assistant/messages",
        "/api/v1/assistant/public/messages",
    ]
    for path in expected_paths:
        assert path in paths, f"Expected route {path!r} not found in OpenAPI schema"
