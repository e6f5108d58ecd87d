"""
Tests for RowNormalizer and its cleaning helpers.

Coverage:
- text cleaning and name fallback
- combined "City, State ZIP" cells
- country codes, region lookup and the inferred-country fill-in
- status vocabulary
- coordinate parsing
- idempotence on already normalized records
"""

from __future__ import annotations

import pytest

from app.domain.countries import INFERABLE_COUNTRIES, region_for_country
from app.domain.store_import import ColumnMapping
from app.normalizers.row_normalizer import (
    RowNormalizer,
    normalize_country,
    normalize_postcode,
    normalize_status,
    parse_coordinate,
    title_case,
)

MAPPING = ColumnMapping(
    name="Store",
    address="Street",
    city="Town",
    postcode="Zip",
    country="Nation",
    latitude="Lat",
    longitude="Lng",
    status="Status",
    external_id="Store ID",
    owner_name="Owner",
)


@pytest.fixture()
def normalizer() -> RowNormalizer:
    return RowNormalizer()


def _row(**overrides: object) -> dict[str, object]:
    row: dict[str, object] = {
        "Store": "Alpha",
        "Street": "Hauptstrasse 1",
        "Town": "berlin",
        "Zip": "10115",
        "Nation": "Germany",
        "Lat": "",
        "Lng": "",
        "Status": "",
        "Store ID": "",
        "Owner": "",
    }
    row.update(overrides)
    return row


# ---------------------------------------------------------------------------
# Record assembly
# ---------------------------------------------------------------------------


class TestNormalize:
    def test_builds_clean_record(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize(
            _row(Store="  Café   *Central*  ", Status="Operating", Owner=" Jane  Doe ", **{"Store ID": " S-1 "}),
            MAPPING,
            row_number=4,
        )

        assert record.name == "Café Central"
        assert record.city == "Berlin"
        assert record.country == "Germany"
        assert record.region == "EMEA"
        assert record.status == "Open"
        assert record.owner_name == "Jane Doe"
        assert record.external_id == "S-1"
        assert record.row_number == 4
        assert record.has_coordinates() is False

    def test_name_falls_back_to_address(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize(_row(Store=""), MAPPING)

        assert record.name == "Hauptstrasse 1"

    def test_splits_combined_city_cell(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize(_row(Town="Springfield, IL 62704", Zip="", Nation="US"), MAPPING)

        assert record.city == "Springfield"
        assert record.postcode == "62704"
        assert record.country == "United States"
        assert record.region == "AMER"

    def test_keeps_mapped_postcode_over_city_tail(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize(_row(Town="Berlin, BE 99999", Zip="10115"), MAPPING)

        assert record.city == "Berlin"
        assert record.postcode == "10115"

    def test_inferred_country_fills_blank_cell(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize(_row(Nation=""), MAPPING, "Germany")

        assert record.country == "Germany"
        assert record.region == "EMEA"

    def test_own_country_wins_over_inferred(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize(_row(Nation="fr"), MAPPING, "Germany")

        assert record.country == "France"

    def test_unknown_country_has_no_region(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize(_row(Nation="atlantis"), MAPPING)

        assert record.country == "Atlantis"
        assert record.region is None

    def test_unmapped_fields_are_empty(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize({"Store": "Alpha", "Street": "Main St 1"}, ColumnMapping(name="Store", address="Street"))

        assert record.city == ""
        assert record.country == ""
        assert record.postcode is None
        assert record.status is None

    def test_tolerates_non_string_cells(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize(_row(Zip=10115, Lat=52.52, Lng=13.405, Store=None), MAPPING)

        assert record.postcode == "10115"
        assert record.latitude == pytest.approx(52.52)
        assert record.longitude == pytest.approx(13.405)
        assert record.name == "Hauptstrasse 1"

    def test_is_idempotent(self, normalizer: RowNormalizer) -> None:
        record = normalizer.normalize(
            _row(Town="springfield, IL 62704", Zip="", Nation="usa", Status="coming soon", Lat="39,78", Lng="-89.65"),
            MAPPING,
            row_number=2,
        )

        assert normalizer.normalize_record(record) == record

    @pytest.mark.parametrize(
        "overrides",
        [
            {"Store": "x" * 254 + " tail"},
            {"Town": "y" * 99 + " burg"},
            {"Nation": "z" * 99 + " land"},
            {"Status": "s" * 31 + " mode"},
            {"Store ID": "e" * 254 + " 42"},
        ],
    )
    def test_is_idempotent_at_length_caps(self, normalizer: RowNormalizer, overrides: dict[str, str]) -> None:
        record = normalizer.normalize(_row(**overrides), MAPPING, row_number=2)

        assert normalizer.normalize_record(record) == record
        assert record.name == record.name.rstrip()


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


class TestFieldHelpers:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("US", "United States"),
            ("uk", "United Kingdom"),
            ("germany", "Germany"),
            ("  new   zealand ", "New Zealand"),
            ("NL", "Netherlands"),
            ("ch", "Switzerland"),
            ("", ""),
        ],
    )
    def test_normalize_country(self, raw: str, expected: str) -> None:
        assert normalize_country(raw) == expected

    @pytest.mark.parametrize("code", sorted(INFERABLE_COUNTRIES))
    def test_inferable_codes_resolve_to_known_countries(self, code: str) -> None:
        country = normalize_country(code)

        assert country == INFERABLE_COUNTRIES[code]
        assert region_for_country(country) is not None

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Operating", "Open"),
            ("ACTIVE", "Open"),
            ("temporarily closed", "Closed"),
            ("Permanently Closed", "Closed"),
            ("Coming Soon", "Planned"),
            ("under construction", "Planned"),
            ("seasonal", "Seasonal"),
            ("", None),
        ],
    )
    def test_normalize_status(self, raw: str, expected: str | None) -> None:
        assert normalize_status(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("52.52", 52.52), ("52,52", 52.52), ("-0.1276", -0.1276), ("", None), ("abc", None), ("nan", None), ("inf", None)],
    )
    def test_parse_coordinate(self, raw: str, expected: float | None) -> None:
        assert parse_coordinate(raw) == expected

    def test_normalize_postcode(self) -> None:
        assert normalize_postcode(" sw1a   1aa ") == "SW1A 1AA"
        assert normalize_postcode("   ") is None

    def test_title_case(self) -> None:
        assert title_case("NEW yORK") == "New York"
