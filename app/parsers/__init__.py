"""
app/parsers package marker.
"""

from app.parsers.tabular_file_parser import TabularFileParser, file_kind_for

__all__ = [
    "TabularFileParser",
    "file_kind_for",
]
