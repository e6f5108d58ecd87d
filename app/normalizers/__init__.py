"""
app/normalizers package marker.
"""

from app.normalizers.row_normalizer import RowNormalizer, extract_fields

__all__ = [
    "RowNormalizer",
    "extract_fields",
]
