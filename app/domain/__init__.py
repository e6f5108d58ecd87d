"""
app/domain package marker.
"""

from app.domain.store_import import (
    MAPPING_FIELDS,
    ColumnMapping,
    CountryInference,
    DuplicateInfo,
    GeocodeRequest,
    GeocodeResult,
    ImportSummary,
    NormalizedStoreRecord,
    ParseResult,
    RowValidationFailure,
    UploadSession,
    ValidationResult,
    valid_coordinates,
)

__all__ = [
    "MAPPING_FIELDS",
    "ColumnMapping",
    "CountryInference",
    "DuplicateInfo",
    "GeocodeRequest",
    "GeocodeResult",
    "ImportSummary",
    "NormalizedStoreRecord",
    "ParseResult",
    "RowValidationFailure",
    "UploadSession",
    "ValidationResult",
    "valid_coordinates",
]
