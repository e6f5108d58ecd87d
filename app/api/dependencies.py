"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from fastapi import File, HTTPException, UploadFile

from app.errors import UploadError


def get_store_upload(file: UploadFile | None = File(None)) -> UploadFile:
    """
    Require a named multipart `file` part; type and size checks happen later.
    """

    if file is None or not (file.filename or "").strip():
        error = UploadError("No file was uploaded.", code="MISSING_FILE")
        raise HTTPException(status_code=error.status_code, detail=error.to_dict())
    return file
