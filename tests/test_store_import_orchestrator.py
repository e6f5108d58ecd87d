"""
End-to-end tests for PipelineOrchestrator with in-memory storage and a fake
geocoding provider.

Coverage:
- upload: preview, suggested mapping, country inference, held session
- ingest: inferred country fill-in, duplicates, invalid rows, phase timings
- geocoding failures become pendingGeocode, never run failures
- run-aborting errors: missing session, no valid rows, country required
"""

from __future__ import annotations

import pytest
from conftest import FakeGeocodingProvider, InMemoryStoreStorage, no_results

from app.domain.store_import import GeocodeRequest, GeocodeResult
from app.errors import FileParsingError, TooManyRowsError, ValidationError
from app.parsers.tabular_file_parser import TabularFileParser
from app.services.batch_upserter import BatchUpserter
from app.services.geocoding_batcher import GeocodingBatcher
from app.services.store_import_orchestrator import PHASES, PipelineOrchestrator, PipelineRun, PipelineState
from app.services.upload_session_store import UploadSessionStore

GERMANY_CSV = (
    b"Store,Street,Town,Zip,Nation\n"
    b"Alpha,Hauptstrasse 1,Berlin,10115,Germany\n"
    b"Beta,Marienplatz 2,Munich,80331,\n"
    b"Gamma,Reeperbahn 3,Hamburg,20359,Germany\n"
)


def _build(
    storage: InMemoryStoreStorage,
    provider: FakeGeocodingProvider | None,
    *,
    max_rows: int = 5000,
) -> tuple[PipelineOrchestrator, UploadSessionStore]:
    session_store = UploadSessionStore(ttl_seconds=3600)
    orchestrator = PipelineOrchestrator(
        parser=TabularFileParser(max_rows=max_rows, max_file_size_bytes=1024 * 1024),
        session_store=session_store,
        geocoder=GeocodingBatcher(provider=provider, delay_seconds=0, sleep=lambda seconds: None),
        upserter=BatchUpserter(storage=storage, chunk_size=50),
    )
    return orchestrator, session_store


@pytest.fixture()
def storage() -> InMemoryStoreStorage:
    return InMemoryStoreStorage()


@pytest.fixture()
def pipeline(storage: InMemoryStoreStorage, fake_provider: FakeGeocodingProvider):
    return _build(storage, fake_provider)


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class TestUpload:
    def test_germany_upload(self, pipeline) -> None:
        orchestrator, session_store = pipeline

        outcome = orchestrator.upload(content=GERMANY_CSV, filename="germany_stores.csv")
        payload = outcome.to_dict()

        assert payload["totalRows"] == 3
        assert payload["headers"] == ["Store", "Street", "Town", "Zip", "Nation"]
        assert payload["suggestedMapping"] == {
            "name": "Store",
            "address": "Street",
            "city": "Town",
            "postcode": "Zip",
            "country": "Nation",
        }
        assert payload["countryInference"]["country"] == "DE"
        assert payload["countryInference"]["confidence"] == "medium"
        assert payload["sampleRows"][1]["data"]["Town"] == "Munich"
        assert session_store.get(outcome.session_id) is not None

    def test_preview_is_capped(self, storage: InMemoryStoreStorage) -> None:
        orchestrator, _ = _build(storage, None)
        content = b"Name,Address\n" + b"".join(f"S{i},{i} Long Street\n".encode() for i in range(25))

        outcome = orchestrator.upload(content=content, filename="stores.csv")

        assert len(outcome.sample_rows) == 10
        assert outcome.total_rows == 25

    def test_bad_file_creates_no_session(self, pipeline) -> None:
        orchestrator, session_store = pipeline

        with pytest.raises(FileParsingError):
            orchestrator.upload(content=b"%PDF-1.4", filename="stores.pdf")

        assert len(session_store) == 0

    def test_too_many_rows(self, storage: InMemoryStoreStorage) -> None:
        orchestrator, session_store = _build(storage, None, max_rows=2)

        with pytest.raises(TooManyRowsError):
            orchestrator.upload(content=GERMANY_CSV, filename="germany_stores.csv")

        assert len(session_store) == 0


# ---------------------------------------------------------------------------
# Ingest
# ---------------------------------------------------------------------------


class TestIngest:
    def test_germany_ingest_fills_inferred_country(self, pipeline, storage: InMemoryStoreStorage) -> None:
        orchestrator, session_store = pipeline
        upload = orchestrator.upload(content=GERMANY_CSV, filename="germany_stores.csv")

        outcome = orchestrator.ingest(session_id=upload.session_id)

        beta = storage.by_name("Beta")
        assert beta["country"] == "Germany"
        assert beta["region"] == "EMEA"
        assert beta["postcode"] == "80331"
        assert outcome.summary.to_dict() == {"inserted": 3, "updated": 0, "pendingGeocode": 0, "failed": 0}
        assert outcome.stores_with_coordinates == 3
        assert session_store.get(upload.session_id) is None

    def test_reports_timings_for_every_phase(self, pipeline) -> None:
        orchestrator, _ = pipeline
        upload = orchestrator.upload(content=GERMANY_CSV, filename="germany_stores.csv")

        payload = orchestrator.ingest(session_id=upload.session_id).to_dict()

        assert set(payload["phaseTimingsMs"]) == set(PHASES)
        assert all(value >= 0 for value in payload["phaseTimingsMs"].values())
        assert payload["processingTimeMs"] >= 0

    def test_geocoding_failures_become_pending(self, storage: InMemoryStoreStorage) -> None:
        def script(request: GeocodeRequest, attempt: int) -> GeocodeResult:
            number = int(request.address.split(" ", 1)[0])
            if number % 4 == 0:
                raise no_results(request.address)
            return GeocodeResult.success(latitude=52.0, longitude=13.0, provider="fake")

        orchestrator, _ = _build(storage, FakeGeocodingProvider(script))
        content = b"Name,Address,City,Country\n" + b"".join(
            f"Store {i},{i} Main Street,Berlin,Germany\n".encode() for i in range(40)
        )
        upload = orchestrator.upload(content=content, filename="stores.csv")

        outcome = orchestrator.ingest(session_id=upload.session_id)

        assert outcome.summary.inserted == 40
        assert outcome.summary.pending_geocode == 10
        assert outcome.summary.failed == 0
        assert storage.by_name("Store 4")["latitude"] is None
        assert storage.by_name("Store 5")["latitude"] == 52.0

    def test_rows_with_coordinates_skip_geocoding(self, storage: InMemoryStoreStorage) -> None:
        provider = FakeGeocodingProvider()
        orchestrator, _ = _build(storage, provider)
        content = b"Name,Address,Country,Lat,Lng\nAlpha,Hauptstrasse 1,DE,52.5,13.4\n"
        upload = orchestrator.upload(content=content, filename="stores.csv")

        outcome = orchestrator.ingest(session_id=upload.session_id)

        assert provider.total_calls == 0
        assert outcome.phase_timings_ms["geocode"] == 0
        assert outcome.summary.pending_geocode == 0

    def test_invalid_rows_count_as_failed(self, pipeline, storage: InMemoryStoreStorage) -> None:
        orchestrator, _ = pipeline
        content = b"Name,Address,Country,Lat\nAlpha,Hauptstrasse 1,DE,\n,,DE,\nGamma,Reeperbahn 3,DE,north\n"
        upload = orchestrator.upload(content=content, filename="stores.csv")

        outcome = orchestrator.ingest(session_id=upload.session_id)

        assert outcome.summary.inserted == 1
        assert outcome.summary.failed == 2
        assert [row.row_number for row in outcome.invalid_rows] == [2, 3]
        assert outcome.valid_rows == 1
        assert outcome.total_rows == 3

    def test_duplicates_are_reported_not_removed(self, pipeline) -> None:
        orchestrator, _ = pipeline
        content = (
            b"Name,Address,Country,Store ID\n"
            b",,DE,S0\n"
            b"Alpha,Main Street 1,DE,S1\n"
            b"Alpha 2,Other Street 9,DE,s1\n"
        )
        upload = orchestrator.upload(content=content, filename="stores.csv")

        outcome = orchestrator.ingest(session_id=upload.session_id)

        duplicate = outcome.duplicates[0].to_dict()
        assert len(outcome.duplicates) == 1
        assert duplicate["matchType"] == "external_id"
        assert (duplicate["rowIndex"], duplicate["row"], duplicate["duplicateOf"]) == (1, 3, "Row 2")
        assert [row.row_number for row in outcome.invalid_rows] == [1]
        assert outcome.summary.inserted == 2

    def test_explicit_mapping_and_country(self, pipeline, storage: InMemoryStoreStorage) -> None:
        orchestrator, _ = pipeline
        content = b"Col A,Col B,Col C\nAlpha,1 Rue de Rivoli,75001\n"
        upload = orchestrator.upload(content=content, filename="stores.csv")

        orchestrator.ingest(
            session_id=upload.session_id,
            mapping={"name": "Col A", "address": "Col B", "postcode": "Col C"},
            country="France",
        )

        row = storage.by_name("Alpha")
        assert row["country"] == "France"
        assert row["region"] == "EMEA"


# ---------------------------------------------------------------------------
# Run-aborting errors
# ---------------------------------------------------------------------------


class TestIngestErrors:
    def test_unknown_session(self, pipeline) -> None:
        orchestrator, _ = pipeline

        with pytest.raises(ValidationError) as exc_info:
            orchestrator.ingest(session_id="upload-0-missing")

        assert exc_info.value.code == "SESSION_NOT_FOUND"

    def test_no_valid_rows(self, pipeline, storage: InMemoryStoreStorage) -> None:
        orchestrator, session_store = pipeline
        upload = orchestrator.upload(content=b"Name,Address,Country\n,,Germany\n,,Germany\n", filename="stores.csv")

        with pytest.raises(ValidationError) as exc_info:
            orchestrator.ingest(session_id=upload.session_id)

        assert exc_info.value.code == "NO_VALID_ROWS"
        assert exc_info.value.message == (
            "No valid rows found in the uploaded data. 2 row(s) failed validation. "
            "First error: name: Store name is required; address: Address is required"
        )
        assert storage.rows == {}
        assert session_store.get(upload.session_id) is not None

    def test_country_required_when_guess_is_weak(self, pipeline) -> None:
        orchestrator, _ = pipeline
        upload = orchestrator.upload(content=b"Name,Address,Zip\nAlpha,Main Street 1,10115\n", filename="stores.csv")

        with pytest.raises(ValidationError) as exc_info:
            orchestrator.ingest(session_id=upload.session_id)

        assert exc_info.value.code == "COUNTRY_REQUIRED"
        assert exc_info.value.details["countryInference"]["confidence"] == "low"

    def test_mapping_to_unknown_header(self, pipeline) -> None:
        orchestrator, _ = pipeline
        upload = orchestrator.upload(content=GERMANY_CSV, filename="germany_stores.csv")

        with pytest.raises(ValidationError) as exc_info:
            orchestrator.ingest(session_id=upload.session_id, mapping={"name": "Shop"})

        assert exc_info.value.code == "INVALID_MAPPING"


class TestPipelineRun:
    def test_rejects_skipped_states(self) -> None:
        run = PipelineRun(run_id="run-1")

        with pytest.raises(RuntimeError):
            run.advance(PipelineState.VALIDATED)

    def test_fail_is_terminal(self) -> None:
        run = PipelineRun(run_id="run-1")
        run.advance(PipelineState.PARSED)

        run.fail(ValueError("boom"))

        assert run.state is PipelineState.FAILED
