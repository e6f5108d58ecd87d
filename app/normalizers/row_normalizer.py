"""
app/normalizers/row_normalizer.py

Best-effort cleaning of one mapped source row into a NormalizedStoreRecord.

Every helper here degrades bad input to a default instead of raising, so a
malformed cell can only ever make its own row invalid later on.
"""

from __future__ import annotations

import math
import re
from typing import Any, Mapping

from app.domain.countries import COUNTRY_CODE_NAMES, COUNTRY_REGIONS, region_for_country
from app.domain.store_import import ColumnMapping, NormalizedStoreRecord

MAX_TEXT_LENGTH = 255
MAX_CITY_LENGTH = 100
MAX_COUNTRY_LENGTH = 100
MAX_POSTCODE_LENGTH = 20
MAX_STATUS_LENGTH = 32

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_CHARS_RE = re.compile(r"[^\w\s\-.,#&()]")

_KNOWN_COUNTRIES_LOWER: dict[str, str] = {country.lower(): country for country in COUNTRY_REGIONS}

_STATUS_EXACT: dict[str, str] = {
    "open": "Open",
    "active": "Open",
    "operational": "Open",
    "operating": "Open",
    "open & operating": "Open",
    "open and operating": "Open",
    "closed": "Closed",
    "inactive": "Closed",
    "temporarily closed": "Closed",
    "planned": "Planned",
    "coming soon": "Planned",
    "under construction": "Planned",
    "in development": "Planned",
}

_STATUS_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("open", "operating"), "Open"),
    (("closed",), "Closed"),
    (("planned", "coming"), "Planned"),
)

_FIELD_ATTRIBUTES: tuple[str, ...] = (
    "name",
    "address",
    "city",
    "postcode",
    "country",
    "latitude",
    "longitude",
    "status",
    "external_id",
    "owner_name",
)


def cell_to_text(value: Any) -> str:
    """
    Render a loosely typed cell as trimmed text; blanks become "".
    """

    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def extract_fields(raw_row: Mapping[str, Any], mapping: ColumnMapping) -> dict[str, str]:
    """
    Pull the mapped cells for every store field; unmapped fields are "".
    """

    extracted: dict[str, str] = {}
    for attribute in _FIELD_ATTRIBUTES:
        header = mapping.header_for(attribute)
        extracted[attribute] = cell_to_text(raw_row.get(header)) if header else ""
    return extracted


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def normalize_text(value: str, *, max_length: int = MAX_TEXT_LENGTH) -> str:
    cleaned = _DISALLOWED_CHARS_RE.sub("", collapse_whitespace(value))
    return collapse_whitespace(cleaned)[:max_length].rstrip()


def title_case(value: str) -> str:
    """
    Upper-case the first letter of each space-separated word, lower the rest.
    """

    return " ".join(word[:1].upper() + word[1:].lower() for word in value.split(" ") if word)


def normalize_city(value: str) -> str:
    head = value.split(",", 1)[0]
    return title_case(normalize_text(head))[:MAX_CITY_LENGTH].rstrip()


def normalize_country(value: str) -> str:
    text = normalize_text(value)
    if not text:
        return ""
    code_match = COUNTRY_CODE_NAMES.get(text.upper())
    if code_match:
        return code_match
    known = _KNOWN_COUNTRIES_LOWER.get(text.lower())
    if known:
        return known
    return title_case(text)[:MAX_COUNTRY_LENGTH].rstrip()


def normalize_postcode(value: str) -> str | None:
    text = collapse_whitespace(value).upper()[:MAX_POSTCODE_LENGTH].strip()
    return text or None


def normalize_status(value: str) -> str | None:
    text = collapse_whitespace(value)
    if not text:
        return None

    lowered = text.lower()
    exact = _STATUS_EXACT.get(lowered)
    if exact:
        return exact
    for keywords, status in _STATUS_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return status
    return title_case(normalize_text(text))[:MAX_STATUS_LENGTH].rstrip() or None


def parse_coordinate(value: str) -> float | None:
    """
    Parse a coordinate cell; blanks, garbage and non-finite values give None.

    A single decimal comma (`52,52`) is accepted.
    """

    text = value.strip()
    if not text:
        return None
    if "," in text and "." not in text and text.count(",") == 1:
        text = text.replace(",", ".")
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def split_city_postcode(city: str) -> tuple[str, str]:
    """
    Split a combined "City, State ZIP" cell into (city, trailing token).
    """

    head, _, remainder = city.partition(",")
    tokens = remainder.split()
    return head.strip(), tokens[-1] if tokens else ""


class RowNormalizer:
    """
    Maps a raw row through a ColumnMapping into a NormalizedStoreRecord.
    """

    def normalize(
        self,
        raw_row: Mapping[str, Any],
        mapping: ColumnMapping,
        inferred_country: str | None = None,
        *,
        row_number: int | None = None,
    ) -> NormalizedStoreRecord:
        fields = extract_fields(raw_row, mapping)

        name_raw = fields["name"] or fields["address"]
        city_raw = fields["city"]
        postcode_raw = fields["postcode"]
        if "," in city_raw and not postcode_raw:
            city_raw, postcode_raw = split_city_postcode(city_raw)

        country = normalize_country(fields["country"])
        if not country and inferred_country:
            country = normalize_country(inferred_country)

        external_id = collapse_whitespace(fields["external_id"])[:MAX_TEXT_LENGTH].rstrip()
        owner_name = normalize_text(fields["owner_name"])

        return NormalizedStoreRecord(
            name=normalize_text(name_raw),
            address=normalize_text(fields["address"]),
            city=normalize_city(city_raw),
            country=country,
            postcode=normalize_postcode(postcode_raw),
            latitude=parse_coordinate(fields["latitude"]),
            longitude=parse_coordinate(fields["longitude"]),
            external_id=external_id or None,
            status=normalize_status(fields["status"]),
            owner_name=owner_name or None,
            region=region_for_country(country),
            row_number=row_number,
        )

    def normalize_record(self, record: NormalizedStoreRecord) -> NormalizedStoreRecord:
        """
        Run an already normalized record through the same cleaning again.
        """

        raw_row = {key: value for key, value in record.to_dict().items() if value is not None}
        mapping = ColumnMapping(**{attribute: key for attribute, key in _RECORD_KEYS.items()})
        return self.normalize(raw_row, mapping, row_number=record.row_number)


_RECORD_KEYS: dict[str, str] = {
    "name": "name",
    "address": "address",
    "city": "city",
    "postcode": "postcode",
    "country": "country",
    "latitude": "latitude",
    "longitude": "longitude",
    "status": "status",
    "external_id": "externalId",
    "owner_name": "ownerName",
}
