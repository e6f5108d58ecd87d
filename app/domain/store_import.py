"""
app/domain/store_import.py

Value types passed between the stages of a store import run.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import Any, Literal, Mapping, Sequence

from app.errors import ValidationError

ConfidenceTier = Literal["high", "medium", "low"]
InferenceMethod = Literal["format", "filename", "data", "fallback"]
MatchType = Literal["external_id", "address_match"]
GeocodeStatus = Literal["success", "failed"]

# Logical field name (as exchanged with callers) -> ColumnMapping attribute.
MAPPING_FIELDS: dict[str, str] = {
    "name": "name",
    "address": "address",
    "city": "city",
    "postcode": "postcode",
    "country": "country",
    "latitude": "latitude",
    "longitude": "longitude",
    "status": "status",
    "externalId": "external_id",
    "ownerName": "owner_name",
}

_ATTRIBUTE_TO_FIELD = {attribute: name for name, attribute in MAPPING_FIELDS.items()}


@dataclass(frozen=True)
class MappingErrorDetail:
    code: str
    message: str
    field: str | None = None
    header: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "field": self.field,
            "header": self.header,
        }


@dataclass(frozen=True)
class ColumnMapping:
    """
    Which source header feeds each store field. Unmapped fields are None.
    """

    name: str | None = None
    address: str | None = None
    city: str | None = None
    postcode: str | None = None
    country: str | None = None
    latitude: str | None = None
    longitude: str | None = None
    status: str | None = None
    external_id: str | None = None
    owner_name: str | None = None

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any] | None,
        *,
        headers: Sequence[str] | None = None,
    ) -> ColumnMapping:
        """
        Build a mapping from caller input, validating it once.

        Keys may be the logical names (`externalId`) or attribute names
        (`external_id`). Blank values mean "not mapped". When `headers` is
        given, every mapped header must be one of them.

        Raises ValidationError(INVALID_MAPPING) listing every problem found.
        """

        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValidationError(
                "Column mapping must be an object of field -> header.",
                code="INVALID_MAPPING",
            )

        errors: list[MappingErrorDetail] = []
        values: dict[str, str] = {}
        known_headers = set(headers) if headers is not None else None

        for key, raw_header in data.items():
            attribute = MAPPING_FIELDS.get(key) or (key if key in _ATTRIBUTE_TO_FIELD else None)
            if attribute is None:
                errors.append(
                    MappingErrorDetail(
                        code="UNKNOWN_FIELD",
                        message=f"Unknown store field '{key}'.",
                        field=str(key),
                    )
                )
                continue
            if raw_header is None:
                continue
            if not isinstance(raw_header, str):
                errors.append(
                    MappingErrorDetail(
                        code="INVALID_HEADER",
                        message=f"Header for '{key}' must be a string.",
                        field=str(key),
                    )
                )
                continue

            header = raw_header.strip()
            if not header:
                continue
            if known_headers is not None and header not in known_headers:
                errors.append(
                    MappingErrorDetail(
                        code="HEADER_NOT_FOUND",
                        message=f"Header '{header}' is not present in the uploaded file.",
                        field=_ATTRIBUTE_TO_FIELD[attribute],
                        header=header,
                    )
                )
                continue
            values[attribute] = header

        if errors:
            raise ValidationError(
                "Column mapping is invalid.",
                code="INVALID_MAPPING",
                details={"errors": [error.to_dict() for error in errors]},
            )
        return cls(**values)

    def to_dict(self) -> dict[str, str]:
        return {
            _ATTRIBUTE_TO_FIELD[item.name]: getattr(self, item.name)
            for item in fields(self)
            if getattr(self, item.name) is not None
        }

    def header_for(self, attribute: str) -> str | None:
        return getattr(self, attribute)


@dataclass
class NormalizedStoreRecord:
    """
    One cleaned store row. Geocoding fills latitude/longitude in place.
    """

    name: str
    address: str
    city: str
    country: str
    postcode: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    external_id: str | None = None
    status: str | None = None
    owner_name: str | None = None
    region: str | None = None
    row_number: int | None = None

    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "postcode": self.postcode,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "externalId": self.external_id,
            "status": self.status,
            "ownerName": self.owner_name,
            "region": self.region,
        }


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RowValidationFailure:
    """
    An invalid source row, reported back to the operator.
    """

    row_number: int
    errors: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row_number, "errors": list(self.errors)}


@dataclass(frozen=True)
class DuplicateInfo:
    """
    `row_index` is the position in the checked record list; `row` and
    `duplicate_of` use the 1-based source row numbers reported for invalid rows.
    """

    row_index: int
    duplicate_of: str
    match_type: MatchType
    confidence: float
    row: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowIndex": self.row_index,
            "row": self.row,
            "duplicateOf": self.duplicate_of,
            "matchType": self.match_type,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class GeocodeRequest:
    address: str
    city: str
    postcode: str | None
    country: str

    def query(self) -> str:
        """Single-line address for free-text geocoders."""
        parts = [self.address, self.city, self.postcode or "", self.country]
        return ", ".join(part.strip() for part in parts if part and part.strip())


@dataclass(frozen=True)
class GeocodeResult:
    status: GeocodeStatus
    latitude: float | None = None
    longitude: float | None = None
    provider: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, *, latitude: float, longitude: float, provider: str) -> GeocodeResult:
        return cls(status="success", latitude=latitude, longitude=longitude, provider=provider)

    @classmethod
    def failed(cls, error: str, *, provider: str | None = None) -> GeocodeResult:
        return cls(status="failed", provider=provider, error=error)

    @property
    def is_success(self) -> bool:
        return self.status == "success"


def valid_coordinates(latitude: Any, longitude: Any) -> bool:
    """
    True when both values are finite numbers inside [-90, 90] x [-180, 180].
    """

    for value in (latitude, longitude):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


@dataclass
class ImportSummary:
    """
    Counters reported at the end of one ingestion run. Only ever incremented.
    """

    inserted: int = 0
    updated: int = 0
    pending_geocode: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "pendingGeocode": self.pending_geocode,
            "failed": self.failed,
        }


@dataclass(frozen=True)
class ParseResult:
    headers: list[str]
    rows: list[list[Any]]

    @property
    def total_rows(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class UploadSession:
    """
    Parsed upload held between the upload and ingest calls.

    Every row has exactly len(headers) cells.
    """

    id: str
    headers: list[str]
    rows: list[list[Any]]
    created_at: float
    filename: str = ""


@dataclass(frozen=True)
class CountryInference:
    country: str
    country_name: str
    confidence: ConfidenceTier
    method: InferenceMethod
    display_text: str

    def to_dict(self) -> dict[str, str]:
        return {
            "country": self.country,
            "countryName": self.country_name,
            "confidence": self.confidence,
            "method": self.method,
            "displayText": self.display_text,
        }
