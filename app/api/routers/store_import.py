"""
app/api/routers/store_import.py

Store bulk upload and ingest HTTP endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, UploadFile

from app.api.dependencies import get_store_upload
from app.errors import StoreImportError
from app.schemas.store_import import StoreIngestRequest, StoreIngestResponse, StoreUploadResponse
from app.services.store_import_orchestrator import PipelineOrchestrator, get_store_import_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stores", tags=["store-import"])


def _http_error(exc: StoreImportError) -> HTTPException:
    logger.warning("Store import request failed code=%s status=%s", exc.code, exc.status_code)
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())


@router.post("/upload", response_model=StoreUploadResponse)
def upload_stores(
    file: UploadFile = Depends(get_store_upload),
    orchestrator: PipelineOrchestrator = Depends(get_store_import_orchestrator),
) -> StoreUploadResponse:
    """
    Parse a CSV / spreadsheet of stores and hold it for ingestion.
    """

    filename = file.filename or ""
    try:
        if file.size is not None:
            orchestrator.check_upload(filename=filename, size_bytes=file.size)
        limit = orchestrator.max_upload_bytes
        # One byte past the limit is enough for the size check to reject it.
        content = file.file.read() if limit is None else file.file.read(limit + 1)
        outcome = orchestrator.upload(content=content, filename=filename)
    except StoreImportError as exc:
        raise _http_error(exc) from exc
    finally:
        file.file.close()

    return StoreUploadResponse.model_validate(outcome.to_dict())


@router.post("/ingest", response_model=StoreIngestResponse)
def ingest_stores(
    payload: StoreIngestRequest,
    orchestrator: PipelineOrchestrator = Depends(get_store_import_orchestrator),
) -> StoreIngestResponse:
    """
    Validate, deduplicate, geocode and persist a held upload session.
    """

    try:
        outcome = orchestrator.ingest(
            session_id=payload.session_id,
            mapping=payload.mapping,
            country=payload.country,
            user_region=payload.user_region,
        )
    except StoreImportError as exc:
        raise _http_error(exc) from exc

    return StoreIngestResponse.model_validate(outcome.to_dict())
