"""
app/schemas/store_import.py

Request and response schemas for the store upload / ingest endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SampleRowResponse(_CamelModel):
    index: int = Field(..., ge=0)
    data: dict[str, Any]
    validation_status: str = Field("valid", alias="validationStatus")
    validation_errors: list[str] = Field(default_factory=list, alias="validationErrors")
    is_duplicate: bool = Field(False, alias="isDuplicate")


class CountryInferenceResponse(_CamelModel):
    country: str
    country_name: str = Field(..., alias="countryName")
    confidence: str
    method: str
    display_text: str = Field(..., alias="displayText")


class StoreUploadResponse(_CamelModel):
    """
    Parsed upload preview plus the session id to ingest it with.
    """

    session_id: str = Field(..., alias="sessionId")
    filename: str
    headers: list[str]
    sample_rows: list[SampleRowResponse] = Field(default_factory=list, alias="sampleRows")
    suggested_mapping: dict[str, str] = Field(default_factory=dict, alias="suggestedMapping")
    total_rows: int = Field(..., ge=0, alias="totalRows")
    country_inference: CountryInferenceResponse = Field(..., alias="countryInference")
    processing_time_ms: int = Field(..., ge=0, alias="processingTimeMs")


class StoreIngestRequest(_CamelModel):
    session_id: str = Field(..., min_length=1, alias="sessionId")
    mapping: dict[str, Any] | None = None
    country: str | None = None
    user_region: str | None = Field(None, alias="userRegion")


class DuplicateResponse(_CamelModel):
    row_index: int = Field(..., ge=0, alias="rowIndex")
    row: int | None = Field(None, ge=1)
    duplicate_of: str = Field(..., alias="duplicateOf")
    match_type: str = Field(..., alias="matchType")
    confidence: float = Field(..., ge=0, le=1)


class InvalidRowResponse(_CamelModel):
    row: int = Field(..., ge=1)
    errors: list[str]


class StoreIngestResponse(_CamelModel):
    """
    Import summary counters with timing and diagnostics.
    """

    ingest_id: str = Field(..., alias="ingestId")
    inserted: int = Field(..., ge=0)
    updated: int = Field(..., ge=0)
    pending_geocode: int = Field(..., ge=0, alias="pendingGeocode")
    failed: int = Field(..., ge=0)
    processing_time_ms: int = Field(..., ge=0, alias="processingTimeMs")
    phase_timings_ms: dict[str, int] = Field(default_factory=dict, alias="phaseTimingsMs")
    total_rows: int = Field(..., ge=0, alias="totalRows")
    valid_rows: int = Field(..., ge=0, alias="validRows")
    duplicates: list[DuplicateResponse] = Field(default_factory=list)
    invalid_rows: list[InvalidRowResponse] = Field(default_factory=list, alias="invalidRows")
    stores_with_coordinates: int | None = Field(None, alias="storesWithCoordinates")


class HealthResponse(BaseModel):
    status: str
    service: str
