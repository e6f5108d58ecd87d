"""
app/validators/store_row_validator.py

Schema checks for one mapped store row. Problems are returned, never raised.
"""

from __future__ import annotations

import math
import re
from typing import Any, Mapping

from app.domain.store_import import ColumnMapping, ValidationResult
from app.normalizers.row_normalizer import extract_fields, normalize_country, normalize_text

_COUNTRY_FORM_RE = re.compile(r"^[^\W\d_][\w .'()&-]*$")

SHORT_NAME_LENGTH = 3
SHORT_ADDRESS_LENGTH = 10


class RowValidator:
    """
    Validates a raw row against the store schema.

    Errors are formatted as `field: message`; warnings are advisory and never
    make a row invalid.
    """

    def validate(
        self,
        raw_row: Mapping[str, Any],
        mapping: ColumnMapping,
        inferred_country: str | None = None,
    ) -> ValidationResult:
        fields = extract_fields(raw_row, mapping)
        errors: list[str] = []
        warnings: list[str] = []

        address = normalize_text(fields["address"])
        name = normalize_text(fields["name"]) or address

        if not name:
            errors.append("name: Store name is required")
        if not address:
            errors.append("address: Address is required")

        country_raw = fields["country"] or (inferred_country or "")
        if country_raw and not self._is_country_form(country_raw):
            errors.append("country: Country must be a country name or code")

        latitude = self._check_coordinate(fields["latitude"], "latitude", 90.0, errors)
        longitude = self._check_coordinate(fields["longitude"], "longitude", 180.0, errors)

        if not fields["postcode"] and "," not in fields["city"]:
            warnings.append("Postcode is missing - this may affect geocoding accuracy")
        if latitude is None or longitude is None:
            warnings.append("Coordinates are missing - geocoding will be attempted")
        if not fields["external_id"]:
            warnings.append("External ID is missing - duplicate detection will rely on address matching")
        if name and len(name) < SHORT_NAME_LENGTH:
            warnings.append("Store name is very short - please verify")
        if address and len(address) < SHORT_ADDRESS_LENGTH:
            warnings.append("Address is very short - please verify")

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def _is_country_form(value: str) -> bool:
        normalized = normalize_country(value)
        return 2 <= len(normalized) <= 100 and bool(_COUNTRY_FORM_RE.match(normalized))

    @staticmethod
    def _check_coordinate(
        value: str,
        field: str,
        limit: float,
        errors: list[str],
    ) -> float | None:
        text = value.strip()
        if not text:
            return None
        if "," in text and "." not in text and text.count(",") == 1:
            text = text.replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            errors.append(f"{field}: {field.capitalize()} must be a number")
            return None
        if not math.isfinite(number) or not -limit <= number <= limit:
            errors.append(f"{field}: {field.capitalize()} must be between {-limit:g} and {limit:g}")
            return None
        return number
