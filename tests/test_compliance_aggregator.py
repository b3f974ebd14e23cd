"""Tests for multi-jurisdictional compliance aggregation."""

from datetime import UTC, datetime

import pytest

from aumos_tenant_trust.adapters.assessment_providers import AssessmentProviderRegistry
from aumos_tenant_trust.adapters.events import TrustEventPublisher
from aumos_tenant_trust.adapters.jurisdiction_classifier import JurisdictionClassifier
from aumos_tenant_trust.adapters.repositories import InMemoryAssessmentSnapshotRepository
from aumos_tenant_trust.core.entities import Location
from aumos_tenant_trust.core.models import Jurisdiction
from aumos_tenant_trust.core.services import ComplianceAggregator
from aumos_tenant_trust.errors import AggregationPartialFailure, LookupFailure

from conftest import RecordingEventSink, StubAssessmentProvider

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
TENANT = "corporate-acme"
ORG = "org-001"

LONDON = Location(postcode="SW1A 1AA")
CARDIFF = Location(postcode="CF10 1AA")
EDINBURGH = Location(postcode="EH1 1YZ")


def _aggregator(
    providers: list[StubAssessmentProvider],
    snapshots: InMemoryAssessmentSnapshotRepository | None = None,
    sink: RecordingEventSink | None = None,
    call_timeout: float = 1.0,
    deadline: float = 2.0,
) -> ComplianceAggregator:
    return ComplianceAggregator(
        classifier=JurisdictionClassifier(),
        providers=AssessmentProviderRegistry(providers),
        snapshots=snapshots or InMemoryAssessmentSnapshotRepository(),
        publisher=TrustEventPublisher(sink or RecordingEventSink()),
        call_timeout=call_timeout,
        deadline=deadline,
        retry_backoff=0.0,
        clock=lambda: NOW,
    )


class TestAggregation:
    @pytest.mark.asyncio
    async def test_overall_score_is_unweighted_mean(self) -> None:
        aggregator = _aggregator(
            [
                StubAssessmentProvider(Jurisdiction.ENGLAND, score=82.0),
                StubAssessmentProvider(Jurisdiction.WALES, score=70.0),
            ]
        )

        result = await aggregator.aggregate(TENANT, ORG, [LONDON, CARDIFF])

        assert result.overall_compliance_score == 76.0
        assert result.highest_performing is Jurisdiction.ENGLAND
        assert result.lowest_performing is Jurisdiction.WALES
        assert list(result.jurisdictions) == [Jurisdiction.ENGLAND, Jurisdiction.WALES]
        assert result.assessment_date == NOW

    @pytest.mark.asyncio
    async def test_overall_score_is_rounded_to_two_places(self) -> None:
        aggregator = _aggregator(
            [
                StubAssessmentProvider(Jurisdiction.ENGLAND, score=80.0),
                StubAssessmentProvider(Jurisdiction.SCOTLAND, score=70.0),
                StubAssessmentProvider(Jurisdiction.WALES, score=71.0),
            ]
        )

        result = await aggregator.aggregate(TENANT, ORG, [LONDON, EDINBURGH, CARDIFF])

        assert result.overall_compliance_score == 73.67

    @pytest.mark.asyncio
    async def test_ties_go_to_the_earlier_jurisdiction(self) -> None:
        aggregator = _aggregator(
            [
                StubAssessmentProvider(Jurisdiction.ENGLAND, score=80.0),
                StubAssessmentProvider(Jurisdiction.WALES, score=80.0),
            ]
        )

        result = await aggregator.aggregate(TENANT, ORG, [CARDIFF, LONDON])

        assert result.highest_performing is Jurisdiction.ENGLAND
        assert result.lowest_performing is Jurisdiction.ENGLAND

    @pytest.mark.asyncio
    async def test_only_applicable_jurisdictions_are_assessed(self) -> None:
        england = StubAssessmentProvider(Jurisdiction.ENGLAND)
        scotland = StubAssessmentProvider(Jurisdiction.SCOTLAND)

        await _aggregator([england, scotland]).aggregate(TENANT, ORG, [LONDON])

        assert england.calls == 1
        assert scotland.calls == 0

    @pytest.mark.asyncio
    async def test_no_applicable_jurisdiction_yields_no_score(self) -> None:
        snapshots = InMemoryAssessmentSnapshotRepository()
        aggregator = _aggregator([StubAssessmentProvider(Jurisdiction.ENGLAND)], snapshots)

        result = await aggregator.aggregate(TENANT, ORG, [Location(country="France")])

        assert result.jurisdictions == {}
        assert result.overall_compliance_score is None
        assert result.highest_performing is None
        assert len(snapshots.snapshots) == 1

    @pytest.mark.asyncio
    async def test_snapshot_and_events_are_recorded(self) -> None:
        snapshots = InMemoryAssessmentSnapshotRepository()
        sink = RecordingEventSink()
        aggregator = _aggregator(
            [
                StubAssessmentProvider(Jurisdiction.ENGLAND, score=82.0),
                StubAssessmentProvider(Jurisdiction.WALES, score=70.0, gaps=("Staff training",)),
            ],
            snapshots,
            sink,
        )

        result = await aggregator.aggregate(TENANT, ORG, [LONDON, CARDIFF])

        assert snapshots.snapshots == [(TENANT, result)]
        recorded = sink.of_type("compliance.assessment_recorded")
        assert recorded[0]["overall_score"] == 76.0
        risks = sink.of_type("compliance.risk_detected")
        assert [r["jurisdiction"] for r in risks] == ["wales"]
        assert risks[0]["gaps"] == ["Staff training"]

    @pytest.mark.asyncio
    async def test_history_returns_newest_first(self) -> None:
        aggregator = _aggregator([StubAssessmentProvider(Jurisdiction.ENGLAND, score=60.0)])
        first = await aggregator.aggregate(TENANT, ORG, [LONDON])
        second = await aggregator.aggregate(TENANT, ORG, [LONDON])

        history = await aggregator.history(TENANT, ORG)

        assert history == [second, first]
        assert await aggregator.history("corporate-other", ORG) == []

    @pytest.mark.asyncio
    async def test_synthesized_risks_are_attached(self) -> None:
        aggregator = _aggregator(
            [
                StubAssessmentProvider(Jurisdiction.ENGLAND, score=92.0, domain_scores={"safe": 90}),
                StubAssessmentProvider(
                    Jurisdiction.WALES, score=70.0, domain_scores={"safeguarding": 60}
                ),
            ]
        )

        result = await aggregator.aggregate(TENANT, ORG, [LONDON, CARDIFF])

        assert "Divergent safeguarding standards: England 90 vs Wales 60" in (
            result.cross_jurisdictional_risks
        )
        assert "Inconsistent care standards across locations" in result.cross_jurisdictional_risks


class TestAggregationFailures:
    @pytest.mark.asyncio
    async def test_single_timeout_fails_the_whole_run(self) -> None:
        """One slow regulator fails the aggregation; no partial score is ever produced."""
        snapshots = InMemoryAssessmentSnapshotRepository()
        aggregator = _aggregator(
            [
                StubAssessmentProvider(Jurisdiction.ENGLAND, score=82.0),
                StubAssessmentProvider(Jurisdiction.WALES, delay=1.0),
            ],
            snapshots,
            call_timeout=0.05,
        )

        with pytest.raises(AggregationPartialFailure) as exc_info:
            await aggregator.aggregate(TENANT, ORG, [LONDON, CARDIFF])

        error = exc_info.value
        assert error.succeeded == ["england"]
        assert list(error.failed) == ["wales"]
        assert "timed out" in error.failed["wales"]
        assert error.to_payload()["partial"] is True
        assert snapshots.snapshots == []

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self) -> None:
        wales = StubAssessmentProvider(Jurisdiction.WALES, delay=1.0)
        aggregator = _aggregator([wales], call_timeout=0.05)

        with pytest.raises(AggregationPartialFailure):
            await aggregator.aggregate(TENANT, ORG, [CARDIFF])

        assert wales.calls == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried_once(self) -> None:
        england = StubAssessmentProvider(
            Jurisdiction.ENGLAND, failures=[LookupFailure("503 from provider", transient=True)]
        )

        result = await _aggregator([england]).aggregate(TENANT, ORG, [LONDON])

        assert england.calls == 2
        assert result.overall_compliance_score == 80.0

    @pytest.mark.asyncio
    async def test_second_transient_failure_fails_the_run(self) -> None:
        england = StubAssessmentProvider(
            Jurisdiction.ENGLAND,
            failures=[
                LookupFailure("503 from provider", transient=True),
                LookupFailure("503 from provider", transient=True),
            ],
        )

        with pytest.raises(AggregationPartialFailure):
            await _aggregator([england]).aggregate(TENANT, ORG, [LONDON])

        assert england.calls == 2

    @pytest.mark.asyncio
    async def test_non_transient_failure_is_not_retried(self) -> None:
        england = StubAssessmentProvider(
            Jurisdiction.ENGLAND, failures=[LookupFailure("404 from provider", transient=False)]
        )

        with pytest.raises(AggregationPartialFailure) as exc_info:
            await _aggregator([england]).aggregate(TENANT, ORG, [LONDON])

        assert england.calls == 1
        assert exc_info.value.failed == {"england": "404 from provider"}

    @pytest.mark.asyncio
    async def test_failure_cancels_outstanding_calls(self) -> None:
        england = StubAssessmentProvider(
            Jurisdiction.ENGLAND, failures=[LookupFailure("bad payload", transient=False)]
        )
        wales = StubAssessmentProvider(Jurisdiction.WALES, delay=1.0)

        with pytest.raises(AggregationPartialFailure) as exc_info:
            await _aggregator([england, wales]).aggregate(TENANT, ORG, [LONDON, CARDIFF])

        assert wales.cancelled
        assert exc_info.value.failed["wales"] == "cancelled after another jurisdiction failed"
        assert exc_info.value.succeeded == []

    @pytest.mark.asyncio
    async def test_deadline_cancels_outstanding_calls(self) -> None:
        england = StubAssessmentProvider(Jurisdiction.ENGLAND, score=82.0)
        wales = StubAssessmentProvider(Jurisdiction.WALES, delay=1.0)
        aggregator = _aggregator([england, wales], call_timeout=5.0, deadline=0.05)

        with pytest.raises(AggregationPartialFailure) as exc_info:
            await aggregator.aggregate(TENANT, ORG, [LONDON, CARDIFF])

        assert wales.cancelled
        assert exc_info.value.succeeded == ["england"]
        assert exc_info.value.failed == {"wales": "aggregation deadline of 0.05s exceeded"}

    @pytest.mark.asyncio
    async def test_missing_provider_fails_before_any_call(self) -> None:
        england = StubAssessmentProvider(Jurisdiction.ENGLAND)

        with pytest.raises(AggregationPartialFailure) as exc_info:
            await _aggregator([england]).aggregate(TENANT, ORG, [LONDON, CARDIFF])

        assert england.calls == 0
        assert exc_info.value.failed == {"wales": "no assessment provider registered"}


class TestAssessmentProviderRegistry:
    def test_duplicate_registration_is_rejected(self) -> None:
        registry = AssessmentProviderRegistry([StubAssessmentProvider(Jurisdiction.ENGLAND)])

        with pytest.raises(ValueError):
            registry.register(StubAssessmentProvider(Jurisdiction.ENGLAND))

    def test_membership(self) -> None:
        registry = AssessmentProviderRegistry([StubAssessmentProvider(Jurisdiction.JERSEY)])

        assert Jurisdiction.JERSEY in registry
        assert Jurisdiction.GUERNSEY not in registry
        assert registry.get(Jurisdiction.GUERNSEY) is None
