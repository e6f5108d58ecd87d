"""
Repository layer exports.
"""

from db.repositories.errors import StoreRepositoryError, StoreStorageError
from db.repositories.store_repository import (
    WRITABLE_COLUMNS,
    SQLAlchemyStoreStorage,
    StoreRepository,
)

__all__ = [
    "StoreRepository",
    "SQLAlchemyStoreStorage",
    "WRITABLE_COLUMNS",
    "StoreRepositoryError",
    "StoreStorageError",
]
