"""
app/mappers/column_mapping.py

Header-synonym based column mapping suggestions for store uploads.
"""

from __future__ import annotations

import re
from typing import Mapping, Sequence

from app.domain.store_import import ColumnMapping

# Attribute order is the order fields claim headers in.
DEFAULT_HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "name": (
        "name",
        "restaurant",
        "store",
        "store_name",
        "storename",
        "location_name",
        "business_name",
        "shop_name",
        "outlet_name",
    ),
    "address": (
        "address",
        "street",
        "line1",
        "addr",
        "location",
        "street_address",
        "full_address",
        "address_line_1",
    ),
    "city": (
        "city",
        "town",
        "locality",
        "municipality",
        "stadt",
        "ville",
        "ciudad",
        "place",
        "city, state zip",
    ),
    "postcode": (
        "postcode",
        "postal_code",
        "zip",
        "zipcode",
        "zip_code",
        "postal",
        "plz",
        "post_code",
        "code_postal",
    ),
    "country": ("country", "country_code", "nation", "land", "pays", "pais", "country_name"),
    "latitude": ("lat", "latitude", "y", "coord_y", "lat_coordinate", "geo_lat", "latitude_decimal"),
    "longitude": ("lng", "lon", "longitude", "x", "coord_x", "lng_coordinate", "geo_lng", "longitude_decimal"),
    "status": (
        "status",
        "state",
        "condition",
        "store_status",
        "restaurant_status",
        "operational_status",
        "business_status",
    ),
    "external_id": (
        "external_id",
        "store_id",
        "id",
        "external_store_id",
        "ref_id",
        "reference_id",
        "unique_id",
    ),
    "owner_name": ("owner", "owner_name", "franchisee", "franchisee_name", "operator"),
}

# Synonyms shorter than this never take part in containment matching.
_MIN_PARTIAL_LENGTH = 3


def normalize_header(header: str) -> str:
    """
    Lower-case, join word separators with `_` and drop other punctuation.
    """

    collapsed = re.sub(r"[_\s-]+", "_", header.strip().lower())
    return re.sub(r"[^\w]", "", collapsed)


class ColumnMappingInferrer:
    """
    Suggests a ColumnMapping from header names alone.

    Exact synonym matches are assigned first for every field, then remaining
    fields fall back to containment either way round. Each header feeds at
    most one field and the result depends only on the header list.
    """

    def __init__(self, *, synonyms: Mapping[str, Sequence[str]] | None = None) -> None:
        source = synonyms or DEFAULT_HEADER_SYNONYMS
        self._synonyms: dict[str, tuple[str, ...]] = {
            field: tuple(dict.fromkeys(normalize_header(item) for item in values if normalize_header(item)))
            for field, values in source.items()
        }

    def suggest(self, headers: Sequence[str]) -> ColumnMapping:
        candidates = [(header, normalize_header(header)) for header in headers if header and header.strip()]
        resolved: dict[str, str] = {}
        used: set[str] = set()

        for field, synonyms in self._synonyms.items():
            for header, normalized in candidates:
                if header not in used and normalized in synonyms:
                    resolved[field] = header
                    used.add(header)
                    break

        for field, synonyms in self._synonyms.items():
            if field in resolved:
                continue
            match = self._find_partial_match(synonyms, candidates, used)
            if match is not None:
                resolved[field] = match
                used.add(match)

        return ColumnMapping(**resolved)

    @staticmethod
    def _find_partial_match(
        synonyms: Sequence[str],
        candidates: Sequence[tuple[str, str]],
        used: set[str],
    ) -> str | None:
        for header, normalized in candidates:
            if header in used or len(normalized) < _MIN_PARTIAL_LENGTH:
                continue
            for synonym in synonyms:
                if len(synonym) < _MIN_PARTIAL_LENGTH:
                    continue
                if synonym in normalized or normalized in synonym:
                    return header
        return None
