"""
app/services/store_import_orchestrator.py

Sequences one store import: upload (parse, suggest mapping, hold the session)
and ingest (validate, deduplicate, geocode, persist, verify).

State per ingest run:

    Idle -> Parsed -> Validated -> Deduplicated -> Geocoded -> Persisted -> Completed
      \________________________ any non-terminal ________________________/ -> Failed

The orchestrator itself is stateless; every call builds its own PipelineRun,
so concurrent runs share nothing but the UploadSessionStore.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any

from app.config import get_geocoding_settings, get_ingest_settings, get_upload_settings
from app.connectors.geocoding_providers import build_geocoding_provider
from app.domain.store_import import (
    ColumnMapping,
    CountryInference,
    DuplicateInfo,
    ImportSummary,
    NormalizedStoreRecord,
    RowValidationFailure,
    UploadSession,
)
from app.errors import StoreImportError, ValidationError
from app.inference.country_inferrer import CountryInferrer
from app.logging_utils import log_event
from app.mappers.column_mapping import ColumnMappingInferrer
from app.normalizers.row_normalizer import RowNormalizer
from app.parsers.tabular_file_parser import TabularFileParser
from app.services.batch_upserter import BatchUpserter
from app.services.duplicate_detector import DuplicateDetector
from app.services.geocoding_batcher import GeocodingBatcher
from app.services.upload_session_store import UploadSessionStore
from app.validators.store_row_validator import RowValidator
from db.repositories.store_repository import SQLAlchemyStoreStorage
from db.session import SessionLocal

logger = logging.getLogger(__name__)

PHASES: tuple[str, ...] = ("validate", "deduplicate", "geocode", "upsert", "verify")
COUNTRY_SAMPLE_ROWS = 20


class PipelineState(str, Enum):
    IDLE = "idle"
    PARSED = "parsed"
    VALIDATED = "validated"
    DEDUPLICATED = "deduplicated"
    GEOCODED = "geocoded"
    PERSISTED = "persisted"
    COMPLETED = "completed"
    FAILED = "failed"


_NEXT_STATE: dict[PipelineState, PipelineState] = {
    PipelineState.IDLE: PipelineState.PARSED,
    PipelineState.PARSED: PipelineState.VALIDATED,
    PipelineState.VALIDATED: PipelineState.DEDUPLICATED,
    PipelineState.DEDUPLICATED: PipelineState.GEOCODED,
    PipelineState.GEOCODED: PipelineState.PERSISTED,
    PipelineState.PERSISTED: PipelineState.COMPLETED,
}


class PipelineRun:
    """
    State and phase timings of a single upload or ingest call.
    """

    def __init__(self, *, run_id: str, clock: Callable[[], float] = time.perf_counter) -> None:
        self.run_id = run_id
        self.state = PipelineState.IDLE
        self.phase_timings_ms: dict[str, int] = {}
        self._clock = clock
        self._started_at = clock()

    def advance(self, target: PipelineState) -> None:
        expected = _NEXT_STATE.get(self.state)
        if expected is not target:
            raise RuntimeError(f"Invalid pipeline transition {self.state.value} -> {target.value}")
        logger.debug("Pipeline transition run_id=%s %s->%s", self.run_id, self.state.value, target.value)
        self.state = target

    def fail(self, error: Exception) -> None:
        if self.state in (PipelineState.COMPLETED, PipelineState.FAILED):
            return
        log_event(
            logger,
            logging.ERROR,
            "store_import.failed",
            run_id=self.run_id,
            state=self.state.value,
            error_type=error.__class__.__name__,
            error=str(error),
        )
        self.state = PipelineState.FAILED

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        started_at = self._clock()
        try:
            yield
        finally:
            duration_ms = int(round((self._clock() - started_at) * 1000))
            self.phase_timings_ms[name] = duration_ms
            log_event(
                logger,
                logging.INFO,
                "store_import.phase",
                run_id=self.run_id,
                phase=name,
                duration_ms=duration_ms,
            )

    def skip_phase(self, name: str) -> None:
        self.phase_timings_ms[name] = 0

    def elapsed_ms(self) -> int:
        return int(round((self._clock() - self._started_at) * 1000))


@dataclass(frozen=True)
class UploadOutcome:
    session_id: str
    filename: str
    headers: list[str]
    sample_rows: list[dict[str, Any]]
    suggested_mapping: ColumnMapping
    total_rows: int
    country_inference: CountryInference
    processing_time_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "filename": self.filename,
            "headers": list(self.headers),
            "sampleRows": self.sample_rows,
            "suggestedMapping": self.suggested_mapping.to_dict(),
            "totalRows": self.total_rows,
            "countryInference": self.country_inference.to_dict(),
            "processingTimeMs": self.processing_time_ms,
        }


@dataclass(frozen=True)
class IngestOutcome:
    ingest_id: str
    summary: ImportSummary
    processing_time_ms: int
    phase_timings_ms: dict[str, int]
    total_rows: int
    valid_rows: int
    duplicates: list[DuplicateInfo] = field(default_factory=list)
    invalid_rows: list[RowValidationFailure] = field(default_factory=list)
    stores_with_coordinates: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ingestId": self.ingest_id,
            **self.summary.to_dict(),
            "processingTimeMs": self.processing_time_ms,
            "phaseTimingsMs": dict(self.phase_timings_ms),
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "duplicates": [duplicate.to_dict() for duplicate in self.duplicates],
            "invalidRows": [row.to_dict() for row in self.invalid_rows],
            "storesWithCoordinates": self.stores_with_coordinates,
        }


class PipelineOrchestrator:
    def __init__(
        self,
        *,
        parser: TabularFileParser,
        session_store: UploadSessionStore,
        geocoder: GeocodingBatcher,
        upserter: BatchUpserter,
        mapping_inferrer: ColumnMappingInferrer | None = None,
        normalizer: RowNormalizer | None = None,
        validator: RowValidator | None = None,
        country_inferrer: CountryInferrer | None = None,
        duplicate_detector: DuplicateDetector | None = None,
        preview_rows: int = 10,
        max_reported_row_errors: int = 200,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._parser = parser
        self._session_store = session_store
        self._geocoder = geocoder
        self._upserter = upserter
        self._mapping_inferrer = mapping_inferrer or ColumnMappingInferrer()
        self._normalizer = normalizer or RowNormalizer()
        self._validator = validator or RowValidator()
        self._country_inferrer = country_inferrer or CountryInferrer(mapping_inferrer=self._mapping_inferrer)
        self._duplicate_detector = duplicate_detector or DuplicateDetector()
        self._preview_rows = max(0, preview_rows)
        self._max_reported_row_errors = max(0, max_reported_row_errors)
        self._clock = clock

    @property
    def max_upload_bytes(self) -> int | None:
        return self._parser.max_file_size_bytes

    def check_upload(self, *, filename: str, size_bytes: int) -> None:
        """Reject an upload by its declared size and name before the body is read."""
        self._parser.validate_file(filename=filename, size_bytes=size_bytes)

    def upload(self, *, content: bytes, filename: str, user_region: str | None = None) -> UploadOutcome:
        """
        Parse an uploaded file and hold it as an UploadSession.

        Raises UploadError, TooManyRowsError or FileParsingError.
        """

        self._session_store.evict_expired()
        run = PipelineRun(run_id=f"upload-{uuid.uuid4().hex[:12]}", clock=self._clock)
        try:
            file_kind = self._parser.validate_file(filename=filename, size_bytes=len(content))
            parsed = self._parser.parse(content, file_kind)
            run.advance(PipelineState.PARSED)
        except StoreImportError as exc:
            run.fail(exc)
            raise

        suggested = self._mapping_inferrer.suggest(parsed.headers)
        inference = self._country_inferrer.infer(
            parsed.headers,
            filename,
            parsed.rows[:COUNTRY_SAMPLE_ROWS],
            mapping=suggested,
            user_region=user_region,
        )
        session = self._session_store.create(headers=parsed.headers, rows=parsed.rows, filename=filename)

        log_event(
            logger,
            logging.INFO,
            "store_import.uploaded",
            session_id=session.id,
            file_kind=file_kind,
            total_rows=parsed.total_rows,
            mapped_fields=sorted(suggested.to_dict()),
        )
        return UploadOutcome(
            session_id=session.id,
            filename=filename,
            headers=list(parsed.headers),
            sample_rows=self._preview(parsed.headers, parsed.rows),
            suggested_mapping=suggested,
            total_rows=parsed.total_rows,
            country_inference=inference,
            processing_time_ms=run.elapsed_ms(),
        )

    def ingest(
        self,
        *,
        session_id: str,
        mapping: ColumnMapping | Mapping[str, Any] | None = None,
        country: str | None = None,
        user_region: str | None = None,
    ) -> IngestOutcome:
        """
        Run validation through persistence for a held upload session.

        Raises ValidationError (missing session, bad mapping, country required,
        no valid rows) or DatabaseError. Row-level problems only show up in
        the returned counters.
        """

        self._session_store.evict_expired()
        run = PipelineRun(run_id=f"ingest-{uuid.uuid4().hex[:12]}", clock=self._clock)
        try:
            with self._session_store.checkout(session_id) as session:
                if session is None:
                    raise ValidationError(
                        "Upload session not found or expired. Please upload the file again.",
                        code="SESSION_NOT_FOUND",
                        details={"sessionId": session_id},
                    )
                run.advance(PipelineState.PARSED)
                outcome = self._run_ingest(run, session, mapping, country, user_region)
                self._session_store.delete(session_id)
        except StoreImportError as exc:
            run.fail(exc)
            raise

        log_event(
            logger,
            logging.INFO,
            "store_import.completed",
            run_id=run.run_id,
            session_id=session_id,
            processing_time_ms=outcome.processing_time_ms,
            **outcome.summary.to_dict(),
        )
        return outcome

    def _run_ingest(
        self,
        run: PipelineRun,
        session: UploadSession,
        mapping: ColumnMapping | Mapping[str, Any] | None,
        country: str | None,
        user_region: str | None,
    ) -> IngestOutcome:
        column_mapping = self._resolve_mapping(session, mapping)
        inferred_country = self._resolve_country(session, column_mapping, country, user_region)

        records: list[NormalizedStoreRecord] = []
        invalid_rows: list[RowValidationFailure] = []
        invalid_count = 0
        warning_count = 0
        first_failure: RowValidationFailure | None = None

        with run.phase("validate"):
            for index, row in enumerate(session.rows):
                row_number = index + 1
                raw_row = dict(zip(session.headers, row))
                result = self._validator.validate(raw_row, column_mapping, inferred_country)
                warning_count += len(result.warnings)
                if not result.is_valid:
                    invalid_count += 1
                    failure = RowValidationFailure(row_number=row_number, errors=list(result.errors))
                    if first_failure is None:
                        first_failure = failure
                    if len(invalid_rows) < self._max_reported_row_errors:
                        invalid_rows.append(failure)
                    logger.debug("Row invalid row=%s errors=%s", row_number, result.errors)
                    continue
                records.append(
                    self._normalizer.normalize(raw_row, column_mapping, inferred_country, row_number=row_number)
                )

        if invalid_count:
            logger.warning("Rows failed validation invalid=%s total=%s", invalid_count, len(session.rows))
        if not records:
            first_error = "; ".join(first_failure.errors) if first_failure else "unknown error"
            raise ValidationError(
                f"No valid rows found in the uploaded data. {invalid_count} row(s) failed validation. "
                f"First error: {first_error}",
                code="NO_VALID_ROWS",
                details={"invalidRows": [failure.to_dict() for failure in invalid_rows[:10]]},
            )
        run.advance(PipelineState.VALIDATED)

        with run.phase("deduplicate"):
            duplicates = self._duplicate_detector.detect(records)
        run.advance(PipelineState.DEDUPLICATED)

        if any(not record.has_coordinates() for record in records):
            with run.phase("geocode"):
                self._geocoder.geocode_records(records)
        else:
            run.skip_phase("geocode")
        run.advance(PipelineState.GEOCODED)

        summary = ImportSummary(failed=invalid_count)
        with run.phase("upsert"):
            self._upserter.upsert(records, summary)
        run.advance(PipelineState.PERSISTED)

        with run.phase("verify"):
            stores_with_coordinates = self._upserter.verify(records)
        run.advance(PipelineState.COMPLETED)

        logger.info(
            "Ingest finished run_id=%s valid=%s invalid=%s warnings=%s duplicates=%s",
            run.run_id,
            len(records),
            invalid_count,
            warning_count,
            len(duplicates),
        )
        return IngestOutcome(
            ingest_id=run.run_id,
            summary=summary,
            processing_time_ms=run.elapsed_ms(),
            phase_timings_ms={name: run.phase_timings_ms.get(name, 0) for name in PHASES},
            total_rows=len(session.rows),
            valid_rows=len(records),
            duplicates=duplicates,
            invalid_rows=invalid_rows,
            stores_with_coordinates=stores_with_coordinates,
        )

    def _resolve_mapping(
        self,
        session: UploadSession,
        mapping: ColumnMapping | Mapping[str, Any] | None,
    ) -> ColumnMapping:
        if mapping is None:
            return self._mapping_inferrer.suggest(session.headers)
        if isinstance(mapping, ColumnMapping):
            return ColumnMapping.from_dict(mapping.to_dict(), headers=session.headers)
        return ColumnMapping.from_dict(mapping, headers=session.headers)

    def _resolve_country(
        self,
        session: UploadSession,
        mapping: ColumnMapping,
        country: str | None,
        user_region: str | None,
    ) -> str | None:
        """
        Country used for rows whose own country cell is blank.

        An explicit country always wins. Without one, the inferred country is
        used unless its confidence is low; a low guess blocks the import only
        when no country column is mapped either.
        """

        if country and country.strip():
            return country.strip()

        inference = self._country_inferrer.infer(
            session.headers,
            session.filename,
            session.rows[:COUNTRY_SAMPLE_ROWS],
            mapping=mapping,
            user_region=user_region,
        )
        if inference.confidence != "low":
            return inference.country_name
        if mapping.country is None:
            raise ValidationError(
                "Country could not be determined. Map a country column or choose a country.",
                code="COUNTRY_REQUIRED",
                details={"countryInference": inference.to_dict()},
            )
        return None

    def _preview(self, headers: list[str], rows: list[list[Any]]) -> list[dict[str, Any]]:
        return [
            {
                "index": index,
                "data": dict(zip(headers, row)),
                "validationStatus": "valid",
                "validationErrors": [],
                "isDuplicate": False,
            }
            for index, row in enumerate(rows[: self._preview_rows])
        ]


@lru_cache(maxsize=1)
def get_upload_session_store() -> UploadSessionStore:
    return UploadSessionStore(ttl_seconds=get_upload_settings().session_ttl_seconds)


@lru_cache(maxsize=1)
def get_store_import_orchestrator() -> PipelineOrchestrator:
    """
    Build and cache the orchestrator with env-driven settings.
    """

    upload_settings = get_upload_settings()
    geocoding_settings = get_geocoding_settings()
    ingest_settings = get_ingest_settings()
    return PipelineOrchestrator(
        parser=TabularFileParser(
            max_rows=upload_settings.max_rows_per_upload,
            max_file_size_bytes=upload_settings.max_file_size_bytes,
            supported_file_types=upload_settings.supported_file_types,
        ),
        session_store=get_upload_session_store(),
        geocoder=GeocodingBatcher.from_settings(
            geocoding_settings,
            provider=build_geocoding_provider(geocoding_settings),
        ),
        upserter=BatchUpserter(
            storage=SQLAlchemyStoreStorage(SessionLocal),
            chunk_size=ingest_settings.upsert_batch_size,
        ),
        preview_rows=upload_settings.preview_rows,
        max_reported_row_errors=ingest_settings.max_logged_row_errors,
    )
