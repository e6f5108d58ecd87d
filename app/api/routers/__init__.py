"""
app/api/routers package marker.
"""

from app.api.routers.store_import import router as store_import_router

__all__ = [
    "store_import_router",
]
