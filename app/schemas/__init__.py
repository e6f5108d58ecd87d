"""
app/schemas package marker.
"""

from app.schemas.store_import import (
    HealthResponse,
    StoreIngestRequest,
    StoreIngestResponse,
    StoreUploadResponse,
)

__all__ = [
    "HealthResponse",
    "StoreIngestRequest",
    "StoreIngestResponse",
    "StoreUploadResponse",
]
