"""Cross-jurisdictional risk synthesis for aggregated compliance assessments.

Regulators name the same conceptual domain differently (CQC "safe",
Care Inspectorate "protection", CIW "safeguarding"...). Domain keys are first
normalized to a canonical domain, then fixed heuristic rules are applied over
the set of per-jurisdiction assessments:

  - divergent canonical domain scores across jurisdictions
  - jurisdictions scoring below the risk threshold
  - gaps shared by two or more jurisdictions
  - inspections past their scheduled date
  - overall score spread across locations

Recommendations are the ordered, case-insensitively deduplicated union of the
providers' recommendations plus one alignment action per divergent domain.
All outputs are deterministic for a given input.
"""

import re
from collections.abc import Mapping
from datetime import datetime

from aumos_tenant_trust.core.entities import JurisdictionAssessment
from aumos_tenant_trust.core.models import Jurisdiction
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

DOMAIN_ALIASES: dict[str, str] = {
    "safeguarding": "safeguarding",
    "safe": "safeguarding",
    "protection": "safeguarding",
    "adult_protection": "safeguarding",
    "adult_safeguarding": "safeguarding",
    "protection_from_abuse": "safeguarding",
    "medication": "medication_management",
    "medication_management": "medication_management",
    "medicines": "medication_management",
    "medicines_management": "medication_management",
    "medicines_optimisation": "medication_management",
    "medication_safety": "medication_management",
    "staffing": "staffing",
    "staff_training": "staffing",
    "workforce": "staffing",
    "leadership": "leadership",
    "well_led": "leadership",
    "governance": "leadership",
    "care_and_support": "care_and_support",
    "caring": "care_and_support",
    "responsive": "care_and_support",
    "effective": "effectiveness",
    "effectiveness": "effectiveness",
}

INCONSISTENT_STANDARDS_RISK = "Inconsistent care standards across locations"

_JURISDICTION_ORDER = {j: i for i, j in enumerate(Jurisdiction)}


def normalize_domain(domain: str) -> str:
    """Map a regulator's domain key onto its canonical domain name."""
    key = re.sub(r"[\s\-]+", "_", domain.strip().lower())
    return DOMAIN_ALIASES.get(key, key)


def _label(jurisdiction: Jurisdiction) -> str:
    return jurisdiction.value.replace("_", " ").title()


class RiskSynthesizer:
    """Derives cross-jurisdictional risks and harmonized recommendations.

    Args:
        risk_threshold: Jurisdictions scoring below this are flagged.
        divergence_threshold: Maximum tolerated spread, in points, between
            jurisdictions for one canonical domain (and for overall scores).
    """

    def __init__(
        self,
        risk_threshold: float = 75.0,
        divergence_threshold: float = 15.0,
    ) -> None:
        self._risk_threshold = risk_threshold
        self._divergence_threshold = divergence_threshold

    def canonical_domain_scores(
        self, assessments: Mapping[Jurisdiction, JurisdictionAssessment]
    ) -> dict[str, dict[Jurisdiction, float]]:
        """Group domain scores by canonical domain, then by jurisdiction.

        Where one assessment reports several aliases of the same canonical
        domain, the lowest score is taken.
        """
        grouped: dict[str, dict[Jurisdiction, float]] = {}
        for jurisdiction in self._ordered(assessments):
            for domain, score in assessments[jurisdiction].domain_scores.items():
                by_jurisdiction = grouped.setdefault(normalize_domain(domain), {})
                current = by_jurisdiction.get(jurisdiction)
                by_jurisdiction[jurisdiction] = score if current is None else min(current, score)
        return grouped

    def divergent_domains(
        self, assessments: Mapping[Jurisdiction, JurisdictionAssessment]
    ) -> dict[str, dict[Jurisdiction, float]]:
        """Canonical domains scored by two or more jurisdictions with a spread above threshold."""
        return {
            domain: scores
            for domain, scores in sorted(self.canonical_domain_scores(assessments).items())
            if len(scores) >= 2
            and max(scores.values()) - min(scores.values()) > self._divergence_threshold
        }

    def synthesize_risks(
        self,
        assessments: Mapping[Jurisdiction, JurisdictionAssessment],
        now: datetime,
    ) -> list[str]:
        """Apply the risk heuristics to a complete set of assessments.

        Args:
            assessments: Per-jurisdiction assessments.
            now: Reference time for inspection scheduling checks.

        Returns:
            Ordered list of risk statements.
        """
        risks: list[str] = []
        ordered = self._ordered(assessments)

        for domain, scores in self.divergent_domains(assessments).items():
            best = max(scores, key=scores.__getitem__)
            worst = min(scores, key=scores.__getitem__)
            risks.append(
                f"Divergent {domain.replace('_', ' ')} standards: "
                f"{_label(best)} {scores[best]:g} vs {_label(worst)} {scores[worst]:g}"
            )

        for jurisdiction in ordered:
            score = assessments[jurisdiction].overall_score
            if score < self._risk_threshold:
                risks.append(
                    f"{_label(jurisdiction)} compliance score {score:g} "
                    f"is below the {self._risk_threshold:g} risk threshold"
                )

        gap_owners: dict[str, list[Jurisdiction]] = {}
        gap_text: dict[str, str] = {}
        for jurisdiction in ordered:
            seen: set[str] = set()
            for gap in assessments[jurisdiction].gaps:
                key = gap.strip().lower()
                if not key or key in seen:
                    continue
                seen.add(key)
                gap_text.setdefault(key, gap.strip())
                gap_owners.setdefault(key, []).append(jurisdiction)
        for key, owners in gap_owners.items():
            if len(owners) >= 2:
                names = ", ".join(_label(j) for j in owners)
                risks.append(f"Shared compliance gap across {names}: {gap_text[key]}")

        for jurisdiction in ordered:
            next_inspection = assessments[jurisdiction].next_inspection
            if next_inspection is not None and next_inspection < now:
                risks.append(f"{_label(jurisdiction)} inspection overdue since {next_inspection.date().isoformat()}")

        if len(ordered) >= 2:
            scores = [assessments[j].overall_score for j in ordered]
            if max(scores) - min(scores) > self._divergence_threshold:
                risks.append(INCONSISTENT_STANDARDS_RISK)

        if risks:
            logger.info("Cross-jurisdictional risks identified", count=len(risks))
        return risks

    def harmonize_recommendations(
        self, assessments: Mapping[Jurisdiction, JurisdictionAssessment]
    ) -> list[str]:
        """Union providers' recommendations, deduplicated, plus alignment actions.

        Order follows jurisdiction order then each provider's own order; the
        first spelling of a recommendation wins.
        """
        seen: set[str] = set()
        recommendations: list[str] = []

        def add(text: str) -> None:
            key = text.strip().lower()
            if key and key not in seen:
                seen.add(key)
                recommendations.append(text.strip())

        for jurisdiction in self._ordered(assessments):
            for recommendation in assessments[jurisdiction].recommendations:
                add(recommendation)

        for domain, scores in self.divergent_domains(assessments).items():
            best = max(scores, key=scores.__getitem__)
            add(
                f"Align {domain.replace('_', ' ')} practice with the "
                f"{_label(best)} standard across all locations"
            )
        return recommendations

    @staticmethod
    def _ordered(
        assessments: Mapping[Jurisdiction, JurisdictionAssessment],
    ) -> list[Jurisdiction]:
        return sorted(assessments, key=_JURISDICTION_ORDER.__getitem__)
