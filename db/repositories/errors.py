"""
Repository-layer exceptions for store persistence.
"""

from __future__ import annotations


class StoreRepositoryError(Exception):
    """Base exception for store repository failures."""


class StoreStorageError(StoreRepositoryError):
    """Raised when a transaction cannot be opened or committed."""
