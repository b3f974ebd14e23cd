"""Audit event publishing for aumos-tenant-trust.

Defines the audit events emitted at the trust boundary and a typed
publisher wrapper over an injected IEventSink.

Events published:
  - trust.isolation.violation — request denied by isolation validation
  - trust.assistant.threat — assistant input screening produced findings
  - trust.permission.granted — cross-tenant permission record created
  - trust.compliance.assessment_recorded — aggregation snapshot persisted
  - trust.compliance.risk_detected — a jurisdiction scored below threshold
"""

import uuid
from typing import Any

from aumos_tenant_trust.core.entities import SecurityViolation
from aumos_tenant_trust.core.interfaces import IEventSink
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

TRUST_ISOLATION_TOPIC = "trust.isolation"
TRUST_ASSISTANT_TOPIC = "trust.assistant"
TRUST_PERMISSION_TOPIC = "trust.permission"
TRUST_COMPLIANCE_TOPIC = "trust.compliance"


class LoggingEventSink:
    """IEventSink that writes each event as a structured log record."""

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        logger.info("Audit event", topic=topic, **event)


class TrustEventPublisher:
    """Publisher for aumos-tenant-trust audit events.

    Args:
        sink: The destination all events are written to.
    """

    def __init__(self, sink: IEventSink) -> None:
        self._sink = sink

    async def publish_isolation_violation(
        self,
        tenant_id: str,
        user_id: str | None,
        path: str,
        violations: list[str],
    ) -> None:
        """Publish an IsolationViolation event.

        Args:
            tenant_id: Tenant whose context was in effect.
            user_id: Calling user, if authenticated.
            path: Request path that was denied.
            violations: Itemized violation list.
        """
        await self._sink.publish(
            TRUST_ISOLATION_TOPIC,
            {
                "event_type": "isolation.violation",
                "violation_id": f"TIV_{uuid.uuid4().hex[:12]}",
                "tenant_id": tenant_id,
                "user_id": user_id,
                "path": path,
                "violations": violations,
                "severity": "HIGH",
            },
        )

    async def publish_threat_detected(
        self,
        tenant_id: str | None,
        user_id: str | None,
        session_id: str,
        violations: list[SecurityViolation],
    ) -> None:
        """Publish assistant screening findings. Evidence names patterns, never content."""
        await self._sink.publish(
            TRUST_ASSISTANT_TOPIC,
            {
                "event_type": "assistant.threat",
                "tenant_id": tenant_id,
                "user_id": user_id,
                "session_id": session_id,
                "violations": [
                    {
                        "type": v.type.value,
                        "severity": v.severity.value,
                        "evidence": v.evidence,
                        "blocked": v.blocked,
                    }
                    for v in violations
                ],
            },
        )

    async def publish_permission_granted(
        self,
        permission_id: uuid.UUID,
        source_tenant_id: str,
        target_tenant_id: str,
        resource: str,
        granted_by: str,
    ) -> None:
        await self._sink.publish(
            TRUST_PERMISSION_TOPIC,
            {
                "event_type": "permission.granted",
                "permission_id": str(permission_id),
                "source_tenant_id": source_tenant_id,
                "target_tenant_id": target_tenant_id,
                "resource": resource,
                "granted_by": granted_by,
            },
        )

    async def publish_assessment_recorded(
        self,
        tenant_id: str,
        organization_id: str,
        jurisdictions: list[str],
        overall_score: float | None,
    ) -> None:
        await self._sink.publish(
            TRUST_COMPLIANCE_TOPIC,
            {
                "event_type": "compliance.assessment_recorded",
                "tenant_id": tenant_id,
                "organization_id": organization_id,
                "jurisdictions": jurisdictions,
                "overall_score": overall_score,
            },
        )

    async def publish_compliance_risk_detected(
        self,
        tenant_id: str,
        organization_id: str,
        jurisdiction: str,
        score: float,
        gaps: list[str],
    ) -> None:
        """Publish a ComplianceRiskDetected event for a low-scoring jurisdiction."""
        await self._sink.publish(
            TRUST_COMPLIANCE_TOPIC,
            {
                "event_type": "compliance.risk_detected",
                "tenant_id": tenant_id,
                "organization_id": organization_id,
                "jurisdiction": jurisdiction,
                "score": score,
                "gaps": gaps,
            },
        )
