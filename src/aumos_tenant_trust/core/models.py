"""Enumerations and SQLAlchemy ORM models for aumos-tenant-trust.

Tables use the tt_ prefix. Types are dialect-neutral (JSON, Uuid) so the
same mappings run on PostgreSQL in production and SQLite in local tooling.

Table: tt_assessment_snapshots is append-only; nothing in the service
updates or deletes its rows.
"""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class DataResidency(str, enum.Enum):
    """Where a tenant's requests may originate and its data be processed."""

    UK_ONLY = "UK_ONLY"
    EU_ONLY = "EU_ONLY"
    UK_EU = "UK_EU"
    GLOBAL = "GLOBAL"


class IsolationLevel(str, enum.Enum):
    """Per-tenant strictness for cross-tenant references."""

    STRICT = "STRICT"
    MODERATE = "MODERATE"
    RELAXED = "RELAXED"


class Jurisdiction(str, enum.Enum):
    """British Isles regulatory jurisdictions."""

    ENGLAND = "england"
    SCOTLAND = "scotland"
    WALES = "wales"
    NORTHERN_IRELAND = "northern_ireland"
    JERSEY = "jersey"
    GUERNSEY = "guernsey"
    ISLE_OF_MAN = "isle_of_man"


class RegulatoryBody(str, enum.Enum):
    """Care regulator responsible for each jurisdiction."""

    CQC = "cqc"
    CARE_INSPECTORATE = "care_inspectorate"
    CIW = "ciw"
    RQIA = "rqia"
    JERSEY_CARE_COMMISSION = "jersey_care"
    GUERNSEY_HEALTH_SOCIAL_CARE = "guernsey_hsc"
    IOM_HEALTH_SOCIAL_CARE = "iom_hsc"


REGULATORY_BODIES: dict[Jurisdiction, RegulatoryBody] = {
    Jurisdiction.ENGLAND: RegulatoryBody.CQC,
    Jurisdiction.SCOTLAND: RegulatoryBody.CARE_INSPECTORATE,
    Jurisdiction.WALES: RegulatoryBody.CIW,
    Jurisdiction.NORTHERN_IRELAND: RegulatoryBody.RQIA,
    Jurisdiction.JERSEY: RegulatoryBody.JERSEY_CARE_COMMISSION,
    Jurisdiction.GUERNSEY: RegulatoryBody.GUERNSEY_HEALTH_SOCIAL_CARE,
    Jurisdiction.ISLE_OF_MAN: RegulatoryBody.IOM_HEALTH_SOCIAL_CARE,
}


class ViolationType(str, enum.Enum):
    """Category of an assistant-facing security violation."""

    PROMPT_INJECTION = "PROMPT_INJECTION"
    DATA_EXTRACTION = "DATA_EXTRACTION"
    CROSS_TENANT_ATTEMPT = "CROSS_TENANT_ATTEMPT"
    MALICIOUS_CONTENT = "MALICIOUS_CONTENT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"


class Severity(str, enum.Enum):
    """Violation severity, ordered LOW < MEDIUM < HIGH < CRITICAL."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Declarative base providing a UUID primary key and creation timestamp."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )


class TenantRecord(Base):
    """Tenant metadata backing the tenant directory.

    Table: tt_tenants
    """

    __tablename__ = "tt_tenants"

    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    subdomain: Mapped[str | None] = mapped_column(String(63), nullable=True, unique=True, index=True)
    tenant_code: Mapped[str] = mapped_column(String(64), nullable=False)
    data_residency: Mapped[DataResidency] = mapped_column(
        Enum(DataResidency, name="tt_data_residency"),
        nullable=False,
        default=DataResidency.UK_ONLY,
    )
    jurisdiction: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Jurisdiction value (england, wales, ...) or multi",
    )
    compliance_level: Mapped[str] = mapped_column(String(32), nullable=False)
    isolation_level: Mapped[IsolationLevel] = mapped_column(
        Enum(IsolationLevel, name="tt_isolation_level"),
        nullable=False,
        default=IsolationLevel.STRICT,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CrossTenantPermissionRecord(Base):
    """Explicit, time-bounded grant allowing one tenant to act on another's resource.

    Records are never updated in place; a re-grant inserts a new row.

    Table: tt_cross_tenant_permissions
    """

    __tablename__ = "tt_cross_tenant_permissions"

    source_tenant_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    target_tenant_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Concrete tenant id or * for any tenant",
    )
    resource: Mapped[str] = mapped_column(String(128), nullable=False)
    actions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    granted_by: Mapped[str] = mapped_column(String(128), nullable=False)


class AssessmentSnapshot(Base):
    """Immutable historical record of one multi-jurisdictional aggregation run.

    Table: tt_assessment_snapshots
    """

    __tablename__ = "tt_assessment_snapshots"

    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    assessment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    overall_compliance_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    jurisdictions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    cross_jurisdictional_risks: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    harmonized_recommendations: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    highest_performing: Mapped[str | None] = mapped_column(String(32), nullable=True)
    lowest_performing: Mapped[str | None] = mapped_column(String(32), nullable=True)
