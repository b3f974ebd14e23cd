"""Per-jurisdiction assessment provider adapters for aumos-tenant-trust.

Each regulator's assessment service is reached over HTTP:

    GET {base_url}/organizations/{organization_id}/assessment

and returns the organization's current assessment for that jurisdiction.
The adapter only reads it; scoring rubrics live with the provider.

Failure classification:
  - network errors and 5xx responses: transient LookupFailure (retryable)
  - 4xx responses and malformed payloads: non-transient LookupFailure
"""

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from aumos_tenant_trust.core.entities import JurisdictionAssessment, UtcDatetime
from aumos_tenant_trust.core.interfaces import IJurisdictionAssessmentProvider
from aumos_tenant_trust.core.models import REGULATORY_BODIES, Jurisdiction
from aumos_tenant_trust.errors import LookupFailure
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)


class ProviderAssessmentPayload(BaseModel):
    """Wire format of a provider's assessment response (snake or camel case)."""

    overall_score: float = Field(
        ge=0, le=100, validation_alias=AliasChoices("overall_score", "overallScore")
    )
    domain_scores: dict[str, float] = Field(
        default_factory=dict, validation_alias=AliasChoices("domain_scores", "domainScores")
    )
    gaps: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("gaps", "complianceGaps")
    )
    recommendations: list[str] = Field(default_factory=list)
    last_inspection: UtcDatetime | None = Field(
        default=None, validation_alias=AliasChoices("last_inspection", "lastInspection")
    )
    next_inspection: UtcDatetime | None = Field(
        default=None, validation_alias=AliasChoices("next_inspection", "nextInspection")
    )


class HttpJurisdictionAssessmentProvider:
    """IJurisdictionAssessmentProvider over one regulator's HTTP API.

    Args:
        jurisdiction: The jurisdiction this provider assesses.
        base_url: Base URL of the assessment service.
        client: Shared httpx.AsyncClient.
    """

    def __init__(
        self,
        jurisdiction: Jurisdiction,
        base_url: str,
        client: httpx.AsyncClient,
    ) -> None:
        self.jurisdiction = jurisdiction
        self._base_url = base_url.rstrip("/")
        self._client = client

    async def assess(self, organization_id: str) -> JurisdictionAssessment:
        """Fetch the organization's assessment for this jurisdiction.

        Args:
            organization_id: Organization to assess.

        Returns:
            The provider's JurisdictionAssessment.

        Raises:
            LookupFailure: If the provider is unreachable or answers with an
                error or an unreadable payload.
        """
        url = f"{self._base_url}/organizations/{organization_id}/assessment"
        try:
            response = await self._client.get(url)
        except httpx.TransportError as exc:
            logger.warning(
                "Assessment provider unreachable",
                jurisdiction=self.jurisdiction.value,
                error=str(exc),
            )
            raise LookupFailure(
                f"{self.jurisdiction.value} assessment provider unreachable",
                [str(exc)],
                transient=True,
            ) from exc

        if response.status_code >= 400:
            transient = response.status_code >= 500
            logger.warning(
                "Assessment provider returned error",
                jurisdiction=self.jurisdiction.value,
                status_code=response.status_code,
                transient=transient,
            )
            raise LookupFailure(
                f"{self.jurisdiction.value} assessment provider returned {response.status_code}",
                transient=transient,
            )

        try:
            payload = ProviderAssessmentPayload.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise LookupFailure(
                f"{self.jurisdiction.value} assessment payload is invalid",
                [str(exc)],
                transient=False,
            ) from exc

        return JurisdictionAssessment(
            jurisdiction=self.jurisdiction,
            regulatory_body=REGULATORY_BODIES[self.jurisdiction],
            overall_score=payload.overall_score,
            domain_scores=payload.domain_scores,
            gaps=tuple(payload.gaps),
            recommendations=tuple(payload.recommendations),
            last_inspection=payload.last_inspection,
            next_inspection=payload.next_inspection,
        )


class AssessmentProviderRegistry:
    """Lookup of the assessment provider registered for each jurisdiction.

    Args:
        providers: Providers to register; one per jurisdiction.
    """

    def __init__(self, providers: list[IJurisdictionAssessmentProvider] | None = None) -> None:
        self._providers: dict[Jurisdiction, IJurisdictionAssessmentProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: IJurisdictionAssessmentProvider) -> None:
        if provider.jurisdiction in self._providers:
            raise ValueError(f"Provider already registered for {provider.jurisdiction.value}")
        self._providers[provider.jurisdiction] = provider

    def get(self, jurisdiction: Jurisdiction) -> IJurisdictionAssessmentProvider | None:
        return self._providers.get(jurisdiction)

    def __contains__(self, jurisdiction: object) -> bool:
        return jurisdiction in self._providers

    @classmethod
    def from_urls(
        cls,
        urls: dict[str, str],
        client: httpx.AsyncClient,
    ) -> "AssessmentProviderRegistry":
        """Build a registry of HTTP providers from jurisdiction -> base URL settings.

        Raises:
            ValueError: If a key is not a known jurisdiction.
        """
        return cls(
            [
                HttpJurisdictionAssessmentProvider(Jurisdiction(key), url, client)
                for key, url in urls.items()
            ]
        )
