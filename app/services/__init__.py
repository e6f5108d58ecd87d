"""
app/services package marker.
"""

from app.services.batch_upserter import BatchUpserter
from app.services.duplicate_detector import DuplicateDetector
from app.services.geocoding_batcher import GeocodingBatcher, exponential_backoff
from app.services.store_import_orchestrator import (
    IngestOutcome,
    PipelineOrchestrator,
    PipelineRun,
    PipelineState,
    UploadOutcome,
    get_store_import_orchestrator,
    get_upload_session_store,
)
from app.services.upload_session_store import UploadSessionStore

__all__ = [
    "BatchUpserter",
    "DuplicateDetector",
    "GeocodingBatcher",
    "IngestOutcome",
    "PipelineOrchestrator",
    "PipelineRun",
    "PipelineState",
    "UploadOutcome",
    "UploadSessionStore",
    "exponential_backoff",
    "get_store_import_orchestrator",
    "get_upload_session_store",
]
