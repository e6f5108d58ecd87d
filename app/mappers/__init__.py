"""
app/mappers package marker.
"""

from app.mappers.column_mapping import DEFAULT_HEADER_SYNONYMS, ColumnMappingInferrer, normalize_header

__all__ = [
    "DEFAULT_HEADER_SYNONYMS",
    "ColumnMappingInferrer",
    "normalize_header",
]
