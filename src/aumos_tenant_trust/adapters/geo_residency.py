"""Geo/residency classification adapter for aumos-tenant-trust.

Classifies a request origin into a country code and decides whether that
origin is compatible with a tenant's data residency.

Origin precedence (see ``request_origin``): CDN country header, first
X-Forwarded-For hop, then the socket peer address.
"""

import ipaddress

from aumos_tenant_trust.core.models import DataResidency
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

LOCAL_ORIGIN = "LOCAL"

EU_COUNTRY_CODES: frozenset[str] = frozenset({
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR", "DE", "GR",
    "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL", "PL", "PT", "RO", "SK",
    "SI", "ES", "SE",
})

UK_COUNTRY_CODES: frozenset[str] = frozenset({"GB", "UK"})

# Headers set by the edge that carry the caller's country directly
COUNTRY_HEADERS: tuple[str, ...] = ("cf-ipcountry", "cloudfront-viewer-country")


def request_origin(headers: dict[str, str], client_host: str | None) -> str | None:
    """Pick the origin value to classify for one request.

    Args:
        headers: Request headers (keys compared case-insensitively).
        client_host: Socket peer address, if known.

    Returns:
        A country code, an IP address, or None.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    for header in COUNTRY_HEADERS:
        value = lowered.get(header)
        if value:
            return value.strip()
    forwarded = lowered.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return client_host


class StaticGeoResidencyClassifier:
    """IGeoResidencyClassifier backed by a static IP network table.

    Two-letter values are taken as country codes already resolved at the
    edge. Loopback, private and link-local addresses are LOCAL. Other
    addresses are looked up in ``networks``; anything else is unknown.

    Args:
        networks: Mapping of CIDR block to ISO 3166-1 alpha-2 country code.
    """

    def __init__(self, networks: dict[str, str] | None = None) -> None:
        self._networks = [
            (ipaddress.ip_network(cidr, strict=False), country.upper())
            for cidr, country in (networks or {}).items()
        ]

    async def classify(self, origin: str | None) -> str | None:
        if not origin:
            return LOCAL_ORIGIN
        value = origin.strip()
        if value.lower() == "localhost":
            return LOCAL_ORIGIN
        if len(value) == 2 and value.isalpha():
            return value.upper()
        try:
            address = ipaddress.ip_address(value)
        except ValueError:
            logger.debug("Unclassifiable request origin", origin=value)
            return None
        if address.is_loopback or address.is_private or address.is_link_local:
            return LOCAL_ORIGIN
        for network, country in self._networks:
            if address in network:
                return country
        return None


def is_residency_compliant(residency: DataResidency, country: str | None) -> bool:
    """Whether an origin country is acceptable for a tenant's data residency.

    Args:
        residency: The tenant's data residency constraint.
        country: Classified origin (country code, LOCAL, or None if unknown).
    """
    if residency is DataResidency.GLOBAL:
        return True
    if country is None:
        return False
    if residency is DataResidency.UK_ONLY:
        return country == LOCAL_ORIGIN or country in UK_COUNTRY_CODES
    if residency is DataResidency.EU_ONLY:
        return country in EU_COUNTRY_CODES
    if residency is DataResidency.UK_EU:
        return (
            country == LOCAL_ORIGIN
            or country in UK_COUNTRY_CODES
            or country in EU_COUNTRY_CODES
        )
    return False
