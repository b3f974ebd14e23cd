"""Repository implementations for aumos-tenant-trust.

SQLAlchemy repositories back the database storage backend; the in-memory
stores at the bottom back the memory backend. All of them are
insert-and-query only: a cross-tenant permission is never edited in place
(a re-grant is a new record) and an assessment snapshot is never
overwritten.

Database errors surface as LookupFailure so the trust boundary fails closed.
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aumos_tenant_trust.core.entities import (
    CrossTenantPermission,
    JurisdictionAssessment,
    MultiJurisdictionalAssessment,
)
from aumos_tenant_trust.core.models import (
    AssessmentSnapshot,
    CrossTenantPermissionRecord,
    Jurisdiction,
)
from aumos_tenant_trust.errors import LookupFailure
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)


def _to_permission(record: CrossTenantPermissionRecord) -> CrossTenantPermission:
    return CrossTenantPermission(
        id=record.id,
        source_tenant_id=record.source_tenant_id,
        target_tenant_id=record.target_tenant_id,
        resource=record.resource,
        actions=frozenset(record.actions),
        is_active=record.is_active,
        granted_at=record.granted_at,
        expires_at=record.expires_at,
        granted_by=record.granted_by,
    )


class CrossTenantPermissionRepository:
    """ICrossTenantPermissionStore over tt_cross_tenant_permissions.

    Args:
        session: Async SQLAlchemy session (injected by FastAPI dependency).
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_by_source(self, source_tenant_id: str) -> list[CrossTenantPermission]:
        """List every permission record granted to a source tenant.

        Args:
            source_tenant_id: Tenant whose principals hold the grants.

        Returns:
            All records for the source tenant, newest first. Inactive and
            expired records are included; the evaluator filters them.

        Raises:
            LookupFailure: If the permission store is unreachable.
        """
        try:
            result = await self._session.execute(
                select(CrossTenantPermissionRecord)
                .where(CrossTenantPermissionRecord.source_tenant_id == source_tenant_id)
                .order_by(CrossTenantPermissionRecord.granted_at.desc())
            )
        except SQLAlchemyError as exc:
            logger.error("Permission store query failed", source_tenant_id=source_tenant_id, error=str(exc))
            raise LookupFailure("Cross-tenant permission store unavailable", [str(exc)]) from exc
        return [_to_permission(record) for record in result.scalars().all()]

    async def grant(self, permission: CrossTenantPermission) -> CrossTenantPermission:
        """Insert a new permission record.

        Args:
            permission: The grant to persist.

        Returns:
            The persisted permission.
        """
        record = CrossTenantPermissionRecord(
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
        self._session.add(record)
        await self._session.flush()
        return _to_permission(record)


class AssessmentSnapshotRepository:
    """Append-only IAssessmentSnapshotRepository over tt_assessment_snapshots.

    Args:
        session: Async SQLAlchemy session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, tenant_id: str, assessment: MultiJurisdictionalAssessment) -> None:
        """Persist one aggregation run as a new snapshot row."""
        snapshot = AssessmentSnapshot(
            tenant_id=tenant_id,
            organization_id=assessment.organization_id,
            assessment_date=assessment.assessment_date,
            overall_compliance_score=assessment.overall_compliance_score,
            jurisdictions={
                jurisdiction.value: item.model_dump(mode="json")
                for jurisdiction, item in assessment.jurisdictions.items()
            },
            cross_jurisdictional_risks=list(assessment.cross_jurisdictional_risks),
            harmonized_recommendations=list(assessment.harmonized_recommendations),
            highest_performing=(
                assessment.highest_performing.value if assessment.highest_performing else None
            ),
            lowest_performing=(
                assessment.lowest_performing.value if assessment.lowest_performing else None
            ),
        )
        self._session.add(snapshot)
        await self._session.flush()

    async def list_for_organization(
        self, tenant_id: str, organization_id: str, limit: int = 20
    ) -> list[MultiJurisdictionalAssessment]:
        """List an organization's snapshots, newest first.

        Args:
            tenant_id: Owning tenant; snapshots of other tenants are never returned.
            organization_id: Organization the snapshots describe.
            limit: Maximum number of snapshots.
        """
        result = await self._session.execute(
            select(AssessmentSnapshot)
            .where(
                AssessmentSnapshot.tenant_id == tenant_id,
                AssessmentSnapshot.organization_id == organization_id,
            )
            .order_by(AssessmentSnapshot.assessment_date.desc())
            .limit(limit)
        )
        return [
            MultiJurisdictionalAssessment(
                organization_id=row.organization_id,
                assessment_date=row.assessment_date,
                jurisdictions={
                    Jurisdiction(key): JurisdictionAssessment.model_validate(value)
                    for key, value in row.jurisdictions.items()
                },
                cross_jurisdictional_risks=tuple(row.cross_jurisdictional_risks),
                harmonized_recommendations=tuple(row.harmonized_recommendations),
                overall_compliance_score=row.overall_compliance_score,
                highest_performing=row.highest_performing,
                lowest_performing=row.lowest_performing,
            )
            for row in result.scalars().all()
        ]


# ---------------------------------------------------------------------------
# Process-local stores (storage_backend = "memory")
# ---------------------------------------------------------------------------


class InMemoryCrossTenantPermissionStore:
    """ICrossTenantPermissionStore holding records in process memory.

    For single-instance deployments without a database and for tests.
    """

    def __init__(self, permissions: list[CrossTenantPermission] | None = None) -> None:
        self.permissions: list[CrossTenantPermission] = list(permissions or [])

    async def list_by_source(self, source_tenant_id: str) -> list[CrossTenantPermission]:
        return [p for p in self.permissions if p.source_tenant_id == source_tenant_id]

    async def grant(self, permission: CrossTenantPermission) -> CrossTenantPermission:
        self.permissions.append(permission)
        logger.info(
            "Cross-tenant permission stored",
            permission_id=str(permission.id),
            source_tenant_id=permission.source_tenant_id,
            target_tenant_id=permission.target_tenant_id,
        )
        return permission


class InMemoryAssessmentSnapshotRepository:
    """Append-only IAssessmentSnapshotRepository in process memory."""

    def __init__(self) -> None:
        self.snapshots: list[tuple[str, MultiJurisdictionalAssessment]] = []

    async def append(self, tenant_id: str, assessment: MultiJurisdictionalAssessment) -> None:
        self.snapshots.append((tenant_id, assessment))

    async def list_for_organization(
        self, tenant_id: str, organization_id: str, limit: int = 20
    ) -> list[MultiJurisdictionalAssessment]:
        matches = [
            a for t, a in self.snapshots
            if t == tenant_id and a.organization_id == organization_id
        ]
        return list(reversed(matches))[:limit]
