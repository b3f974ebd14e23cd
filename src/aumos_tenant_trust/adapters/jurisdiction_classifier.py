"""Jurisdiction classifier adapter for aumos-tenant-trust.

Maps an organization's locations to the British Isles regulatory
jurisdictions it operates under.

Postcodes are classified by their postcode *area*: the one or two leading
letters before the first digit (SW1A 1AA -> SW, CF10 1AA -> CF, G1 1AA -> G).
Each jurisdiction owns a set of areas and lookup is by exact membership, so
the tables are disjoint by construction whenever their sets do not intersect.
``find_table_overlaps`` checks that.
"""

import re
from collections.abc import Iterable
from itertools import combinations

from aumos_tenant_trust.core.entities import Location
from aumos_tenant_trust.core.models import Jurisdiction
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

# Border areas (SY, CH, TD) are assigned to the jurisdiction holding the
# post town; locations on the other side must carry an explicit country.
POSTCODE_AREA_TABLES: dict[Jurisdiction, frozenset[str]] = {
    Jurisdiction.ENGLAND: frozenset({
        "AL", "B", "BA", "BB", "BD", "BH", "BL", "BN", "BR", "BS", "CA", "CB",
        "CH", "CM", "CO", "CR", "CT", "CV", "CW", "DA", "DE", "DH", "DL", "DN",
        "DT", "DY", "E", "EC", "EN", "EX", "FY", "GL", "GU", "HA", "HD", "HG",
        "HP", "HR", "HU", "HX", "IG", "IP", "KT", "L", "LA", "LE", "LN", "LS",
        "LU", "M", "ME", "MK", "N", "NE", "NG", "NN", "NR", "NW", "OL", "OX",
        "PE", "PL", "PO", "PR", "RG", "RH", "RM", "S", "SE", "SG", "SK", "SL",
        "SM", "SN", "SO", "SP", "SR", "SS", "ST", "SW", "SY", "TA", "TF", "TN",
        "TQ", "TR", "TS", "TW", "UB", "W", "WA", "WC", "WD", "WF", "WN", "WR",
        "WS", "WV", "YO",
    }),
    Jurisdiction.SCOTLAND: frozenset({
        "AB", "DD", "DG", "EH", "FK", "G", "HS", "IV", "KA", "KW", "KY", "ML",
        "PA", "PH", "TD", "ZE",
    }),
    Jurisdiction.WALES: frozenset({"CF", "LD", "LL", "NP", "SA"}),
    Jurisdiction.NORTHERN_IRELAND: frozenset({"BT"}),
    Jurisdiction.JERSEY: frozenset({"JE"}),
    Jurisdiction.GUERNSEY: frozenset({"GY"}),
    Jurisdiction.ISLE_OF_MAN: frozenset({"IM"}),
}

COUNTRY_ALIASES: dict[str, Jurisdiction] = {
    "england": Jurisdiction.ENGLAND,
    "scotland": Jurisdiction.SCOTLAND,
    "wales": Jurisdiction.WALES,
    "cymru": Jurisdiction.WALES,
    "northern ireland": Jurisdiction.NORTHERN_IRELAND,
    "ni": Jurisdiction.NORTHERN_IRELAND,
    "jersey": Jurisdiction.JERSEY,
    "guernsey": Jurisdiction.GUERNSEY,
    "alderney": Jurisdiction.GUERNSEY,
    "sark": Jurisdiction.GUERNSEY,
    "isle of man": Jurisdiction.ISLE_OF_MAN,
    "iom": Jurisdiction.ISLE_OF_MAN,
}

_AREA_PATTERN = re.compile(r"^([A-Z]{1,2})[0-9]")
_JURISDICTION_ORDER = {j: i for i, j in enumerate(Jurisdiction)}


def find_table_overlaps(
    tables: dict[Jurisdiction, frozenset[str]] = POSTCODE_AREA_TABLES,
) -> dict[tuple[Jurisdiction, Jurisdiction], frozenset[str]]:
    """Return every pair of jurisdictions whose area tables intersect."""
    overlaps: dict[tuple[Jurisdiction, Jurisdiction], frozenset[str]] = {}
    for (left, left_areas), (right, right_areas) in combinations(tables.items(), 2):
        shared = left_areas & right_areas
        if shared:
            overlaps[(left, right)] = shared
    return overlaps


def postcode_area(postcode: str | None) -> str | None:
    """Extract the postcode area, or None if the value is not a UK-style postcode."""
    if not postcode:
        return None
    match = _AREA_PATTERN.match(re.sub(r"\s+", "", postcode).upper())
    return match.group(1) if match else None


class JurisdictionClassifier:
    """Classifies locations into regulatory jurisdictions.

    Classification is idempotent and order-independent: the result is a
    deduplicated tuple sorted in Jurisdiction declaration order.

    Args:
        tables: Postcode area tables; must be pairwise disjoint.
    """

    def __init__(
        self,
        tables: dict[Jurisdiction, frozenset[str]] | None = None,
    ) -> None:
        self._tables = tables or POSTCODE_AREA_TABLES
        overlaps = find_table_overlaps(self._tables)
        if overlaps:
            raise ValueError(f"Postcode area tables overlap: {overlaps}")
        self._area_index: dict[str, Jurisdiction] = {
            area: jurisdiction
            for jurisdiction, areas in self._tables.items()
            for area in areas
        }

    def classify_location(self, location: Location) -> Jurisdiction | None:
        """Classify one location, preferring an explicit country over the postcode.

        Args:
            location: The location to classify.

        Returns:
            The location's jurisdiction, or None when neither field is recognised.
        """
        if location.country:
            country = re.sub(r"[\s_-]+", " ", location.country).strip().lower()
            jurisdiction = COUNTRY_ALIASES.get(country)
            if jurisdiction is not None:
                return jurisdiction
        area = postcode_area(location.postcode)
        if area is None:
            return None
        return self._area_index.get(area)

    def classify(self, locations: Iterable[Location]) -> tuple[Jurisdiction, ...]:
        """Return the disjoint set of jurisdictions covering all locations.

        An organization with no classifiable location yields an empty tuple,
        meaning no applicable regulatory body rather than an error.
        """
        found: set[Jurisdiction] = set()
        unclassified = 0
        for location in locations:
            jurisdiction = self.classify_location(location)
            if jurisdiction is None:
                unclassified += 1
            else:
                found.add(jurisdiction)

        if unclassified:
            logger.debug("Unclassifiable locations skipped", count=unclassified)
        return tuple(sorted(found, key=_JURISDICTION_ORDER.__getitem__))
