"""Tests for the postcode-area jurisdiction classifier."""

import pytest

from aumos_tenant_trust.adapters.jurisdiction_classifier import (
    POSTCODE_AREA_TABLES,
    JurisdictionClassifier,
    find_table_overlaps,
    postcode_area,
)
from aumos_tenant_trust.core.entities import Location
from aumos_tenant_trust.core.models import Jurisdiction


@pytest.fixture
def classifier() -> JurisdictionClassifier:
    return JurisdictionClassifier()


class TestPostcodeTables:
    def test_tables_are_pairwise_disjoint(self) -> None:
        assert find_table_overlaps(POSTCODE_AREA_TABLES) == {}

    def test_every_jurisdiction_has_a_table(self) -> None:
        assert set(POSTCODE_AREA_TABLES) == set(Jurisdiction)

    def test_overlapping_tables_are_rejected(self) -> None:
        tables = {
            Jurisdiction.ENGLAND: frozenset({"CF", "SW"}),
            Jurisdiction.WALES: frozenset({"CF"}),
        }
        assert find_table_overlaps(tables) == {
            (Jurisdiction.ENGLAND, Jurisdiction.WALES): frozenset({"CF"})
        }
        with pytest.raises(ValueError):
            JurisdictionClassifier(tables)

    @pytest.mark.parametrize(
        ("postcode", "area"),
        [
            ("SW1A 1AA", "SW"),
            ("cf10 1aa", "CF"),
            ("G1 1AA", "G"),
            ("BT7 1NN", "BT"),
            ("not a postcode", None),
            ("", None),
            (None, None),
        ],
    )
    def test_postcode_area_extraction(self, postcode: str | None, area: str | None) -> None:
        assert postcode_area(postcode) == area


class TestJurisdictionClassifier:
    def test_england_and_wales_postcodes(self, classifier: JurisdictionClassifier) -> None:
        result = classifier.classify(
            [Location(postcode="SW1A1AA"), Location(postcode="CF101AA")]
        )
        assert result == (Jurisdiction.ENGLAND, Jurisdiction.WALES)

    def test_cardiff_is_not_classified_as_england(self, classifier: JurisdictionClassifier) -> None:
        assert classifier.classify_location(Location(postcode="CF10 1AA")) is Jurisdiction.WALES

    def test_classification_is_order_independent(self, classifier: JurisdictionClassifier) -> None:
        locations = [
            Location(postcode="EH1 1YZ"),
            Location(postcode="BT1 5GS"),
            Location(postcode="JE2 3AB"),
            Location(postcode="M1 1AE"),
        ]
        assert classifier.classify(locations) == classifier.classify(list(reversed(locations)))

    def test_classification_is_idempotent_and_deduplicated(
        self, classifier: JurisdictionClassifier
    ) -> None:
        locations = [Location(postcode="GY1 1AA"), Location(postcode="GY9 3AB")]
        first = classifier.classify(locations)
        assert first == (Jurisdiction.GUERNSEY,)
        assert classifier.classify(locations) == first

    def test_country_takes_precedence_over_postcode(self, classifier: JurisdictionClassifier) -> None:
        location = Location(country="Isle of Man", postcode="SW1A 1AA")
        assert classifier.classify_location(location) is Jurisdiction.ISLE_OF_MAN

    def test_country_aliases_are_normalized(self, classifier: JurisdictionClassifier) -> None:
        assert classifier.classify_location(Location(country="Northern_Ireland")) is (
            Jurisdiction.NORTHERN_IRELAND
        )
        assert classifier.classify_location(Location(country="CYMRU")) is Jurisdiction.WALES

    def test_unknown_country_falls_back_to_postcode(self, classifier: JurisdictionClassifier) -> None:
        location = Location(country="United Kingdom", postcode="AB10 1XG")
        assert classifier.classify_location(location) is Jurisdiction.SCOTLAND

    def test_unclassifiable_locations_yield_empty_result(
        self, classifier: JurisdictionClassifier
    ) -> None:
        result = classifier.classify([Location(country="France"), Location(postcode="75001")])
        assert result == ()

    def test_no_locations_yield_empty_result(self, classifier: JurisdictionClassifier) -> None:
        assert classifier.classify([]) == ()
