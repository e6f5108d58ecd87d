"""
app/parsers/tabular_file_parser.py

Turns uploaded CSV / spreadsheet bytes into a header row plus data rows.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import PurePath
from typing import Any, Iterable, Iterator, Sequence

from openpyxl import load_workbook

from app.domain.store_import import ParseResult
from app.errors import FileParsingError, TooManyRowsError, UploadError

logger = logging.getLogger(__name__)

SPREADSHEET_KINDS = {"xlsx", "xls"}
_CANDIDATE_DELIMITERS: tuple[str, ...] = (",", ";", "\t")


def file_kind_for(filename: str) -> str:
    """Lower-case extension without the dot; empty when there is none."""
    return PurePath(filename or "").suffix.lower().lstrip(".")


class TabularFileParser:
    """
    Reads the first table of an uploaded file.

    Cells come back as loosely typed scalars: CSV cells are trimmed strings,
    spreadsheet cells keep numbers as numbers. Blank cells are "".
    """

    def __init__(
        self,
        *,
        max_rows: int,
        max_file_size_bytes: int | None = None,
        supported_file_types: Sequence[str] = ("csv", "xlsx", "xls"),
    ) -> None:
        self._max_rows = max_rows
        self._max_file_size_bytes = max_file_size_bytes
        self._supported_file_types = tuple(kind.lower().lstrip(".") for kind in supported_file_types)

    @property
    def max_file_size_bytes(self) -> int | None:
        return self._max_file_size_bytes

    def validate_file(self, *, filename: str, size_bytes: int) -> str:
        """
        Check size, extension and emptiness before any parsing happens.

        Returns the file kind (extension) to pass to `parse`.
        """

        if self._max_file_size_bytes is not None and size_bytes > self._max_file_size_bytes:
            limit_mb = self._max_file_size_bytes / (1024 * 1024)
            raise UploadError(
                f"File size ({_format_size(size_bytes)}) exceeds maximum limit of {limit_mb:g}MB.",
                code="FILE_TOO_LARGE",
                details={"sizeBytes": size_bytes, "maxBytes": self._max_file_size_bytes},
            )

        kind = file_kind_for(filename)
        if kind not in self._supported_file_types:
            allowed = ", ".join(f".{item}" for item in self._supported_file_types)
            raise FileParsingError(
                f"Unsupported file type '{kind or filename}'. Allowed types: {allowed}.",
                code="INVALID_FILE_TYPE",
            )

        if size_bytes == 0:
            raise FileParsingError("The uploaded file is empty.", code="EMPTY_FILE")
        return kind

    def parse(self, content: bytes, file_kind: str) -> ParseResult:
        kind = file_kind.lower().lstrip(".")
        if kind not in self._supported_file_types:
            raise FileParsingError(f"Unsupported file type '{kind}'.", code="INVALID_FILE_TYPE")
        if not content:
            raise FileParsingError("The uploaded file is empty.", code="EMPTY_FILE")

        if kind in SPREADSHEET_KINDS:
            raw_rows: Iterable[list[Any]] = self._iter_spreadsheet_rows(content)
        else:
            raw_rows = self._iter_csv_rows(content)

        result = self._build_table(raw_rows)
        logger.info(
            "Parsed upload kind=%s headers=%s rows=%s",
            kind,
            len(result.headers),
            result.total_rows,
        )
        return result

    def _build_table(self, raw_rows: Iterable[list[Any]]) -> ParseResult:
        header_row: list[Any] | None = None
        column_indexes: list[int] = []
        headers: list[str] = []
        rows: list[list[Any]] = []

        for raw_row in raw_rows:
            if _is_blank_row(raw_row):
                continue

            if header_row is None:
                header_row = raw_row
                column_indexes = [index for index, cell in enumerate(raw_row) if _cell_text(cell)]
                headers = _unique_headers(_cell_text(raw_row[index]) for index in column_indexes)
                continue

            rows.append([raw_row[index] if index < len(raw_row) else "" for index in column_indexes])
            if len(rows) > self._max_rows:
                raise TooManyRowsError(row_count=len(rows), max_rows=self._max_rows)

        if not headers:
            raise FileParsingError("The file does not contain a header row.", code="EMPTY_FILE")
        if not rows:
            raise FileParsingError(
                "The file must contain a header row and at least one data row.",
                code="EMPTY_FILE",
            )
        return ParseResult(headers=headers, rows=rows)

    def _iter_csv_rows(self, content: bytes) -> Iterator[list[Any]]:
        text = _decode_text(content)
        if "\x00" in text:
            raise FileParsingError(
                "The file contains binary data and cannot be read as CSV.",
                code="ENCODING_ERROR",
            )

        reader = csv.reader(
            io.StringIO(text, newline=""),
            delimiter=_detect_delimiter(text),
            quotechar='"',
            doublequote=True,
            strict=False,
        )
        try:
            for raw_row in reader:
                yield [cell.strip() for cell in raw_row]
        except csv.Error as exc:
            raise FileParsingError(
                f"Invalid CSV format at line {reader.line_num}: {exc}",
                code="FILE_CORRUPTED",
            ) from exc

    def _iter_spreadsheet_rows(self, content: bytes) -> Iterator[list[Any]]:
        try:
            workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except Exception as exc:  # noqa: BLE001
            raise FileParsingError(
                f"Failed to read spreadsheet: {exc}",
                code="FILE_CORRUPTED",
            ) from exc

        try:
            if not workbook.worksheets:
                raise FileParsingError("The workbook has no sheets.", code="EMPTY_FILE")
            sheet = workbook.worksheets[0]
            # read_only sheets parse their XML lazily, so damage surfaces here.
            try:
                for values in sheet.iter_rows(values_only=True):
                    yield [_spreadsheet_cell(value) for value in values]
            except Exception as exc:  # noqa: BLE001
                raise FileParsingError(
                    f"Failed to read spreadsheet rows: {exc}",
                    code="FILE_CORRUPTED",
                ) from exc
        finally:
            workbook.close()


def _decode_text(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("CSV is not UTF-8, falling back to latin-1")
    return content.decode("latin-1")


def _detect_delimiter(text: str) -> str:
    """
    Pick the candidate delimiter occurring most often on the first non-blank line.
    """

    first_line = next((line for line in text.splitlines() if line.strip()), "")
    counts = {delimiter: first_line.count(delimiter) for delimiter in _CANDIDATE_DELIMITERS}
    best = max(_CANDIDATE_DELIMITERS, key=lambda delimiter: counts[delimiter])
    return best if counts[best] > 0 else ","


def _spreadsheet_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _is_blank_row(row: Sequence[Any]) -> bool:
    return all(not _cell_text(cell) for cell in row)


def _unique_headers(names: Iterable[str]) -> list[str]:
    """
    Suffix repeated header names (`Name`, `Name_2`) so each stays addressable.

    A suffix never collides with a header that is already taken.
    """

    used: set[str] = set()
    headers: list[str] = []
    for name in names:
        candidate = name
        suffix = 1
        while candidate in used:
            suffix += 1
            candidate = f"{name}_{suffix}"
        used.add(candidate)
        headers.append(candidate)
    return headers


def _format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"
