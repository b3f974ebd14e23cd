"""Tenant directory adapters for aumos-tenant-trust.

  - SqlTenantDirectory: reads tt_tenants through an async SQLAlchemy session
  - ConventionTenantDirectory: derives tenant metadata from the tenant id
    prefix (healthcare-, corporate-, demo-); used for local development and
    demo environments where no tenant table is provisioned
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aumos_tenant_trust.core.entities import TenantContext
from aumos_tenant_trust.core.models import DataResidency, IsolationLevel, TenantRecord
from aumos_tenant_trust.errors import LookupFailure
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)


def _to_context(record: TenantRecord) -> TenantContext:
    return TenantContext(
        tenant_id=record.tenant_id,
        tenant_code=record.tenant_code,
        data_residency=record.data_residency,
        jurisdiction=record.jurisdiction,
        compliance_level=record.compliance_level,
        isolation_level=record.isolation_level,
        subdomain=record.subdomain,
    )


class SqlTenantDirectory:
    """ITenantDirectory over the tt_tenants table.

    Args:
        session: Async SQLAlchemy session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def resolve_by_id(self, tenant_id: str) -> TenantContext | None:
        return await self._fetch_one(TenantRecord.tenant_id == tenant_id, tenant_id)

    async def resolve_by_subdomain(self, subdomain: str) -> TenantContext | None:
        return await self._fetch_one(TenantRecord.subdomain == subdomain.lower(), subdomain)

    async def _fetch_one(self, clause, candidate: str) -> TenantContext | None:
        try:
            result = await self._session.execute(
                select(TenantRecord).where(clause, TenantRecord.is_active.is_(True))
            )
        except SQLAlchemyError as exc:
            logger.error("Tenant directory query failed", candidate=candidate, error=str(exc))
            raise LookupFailure("Tenant directory unavailable", [str(exc)]) from exc
        record = result.scalar_one_or_none()
        return _to_context(record) if record is not None else None


# prefix -> (code prefix, residency, jurisdiction, compliance level, isolation level)
TENANT_CONVENTIONS: dict[str, tuple[str, DataResidency, str, str, IsolationLevel]] = {
    "healthcare-": ("HC", DataResidency.UK_ONLY, "england", "HEALTHCARE", IsolationLevel.STRICT),
    "corporate-": ("CORP", DataResidency.UK_EU, "multi", "ENTERPRISE", IsolationLevel.MODERATE),
    "demo-": ("DEMO", DataResidency.UK_ONLY, "england", "BASIC", IsolationLevel.RELAXED),
}


class ConventionTenantDirectory:
    """ITenantDirectory that derives metadata from tenant id prefixes.

    Ids without a known prefix are not found. Subdomains resolve as the
    tenant id of the same name.
    """

    async def resolve_by_id(self, tenant_id: str) -> TenantContext | None:
        for prefix, (code, residency, jurisdiction, level, isolation) in TENANT_CONVENTIONS.items():
            if tenant_id.startswith(prefix):
                suffix = tenant_id[len(prefix):len(prefix) + 8]
                return TenantContext(
                    tenant_id=tenant_id,
                    tenant_code=f"{code}_{suffix.upper()}",
                    data_residency=residency,
                    jurisdiction=jurisdiction,
                    compliance_level=level,
                    isolation_level=isolation,
                )
        return None

    async def resolve_by_subdomain(self, subdomain: str) -> TenantContext | None:
        context = await self.resolve_by_id(subdomain.lower())
        if context is None:
            return None
        return context.model_copy(update={"subdomain": subdomain.lower()})
