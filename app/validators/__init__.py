"""
app/validators package marker.
"""

from app.validators.store_row_validator import RowValidator

__all__ = [
    "RowValidator",
]
