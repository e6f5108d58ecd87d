"""
app/inference/country_inferrer.py

Guesses the country of an upload that has no usable country column.

Signals, strongest first:
1) postcode format: every country whose pattern matches is scored; only a
   single unambiguous winner counts (`high`).
2) filename tokens: country names, codes, demonyms, major cities (`medium`).
3) state / region names found in text cells (`medium`).
4) the operator's own region, e.g. `emea` (`medium`).
5) a fixed default (`low`), which callers must not import on silently.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from pathlib import PurePath
from typing import Any, Sequence

from app.domain.countries import (
    DEFAULT_COUNTRY_CODE,
    FILENAME_TOKENS,
    POSTCODE_PATTERNS,
    REGION_TOKENS,
    USER_REGION_COUNTRIES,
    country_name_for_code,
)
from app.domain.store_import import ColumnMapping, CountryInference
from app.mappers.column_mapping import ColumnMappingInferrer
from app.normalizers.row_normalizer import cell_to_text

logger = logging.getLogger(__name__)

MAX_SAMPLE_ROWS = 20
MAX_SAMPLE_POSTCODES = 10
_REGION_CELL_RE = re.compile(r"^[^\W\d_][^\W\d_\s-]*(?:[\s-][^\W\d_]+)*$")


class CountryInferrer:
    def __init__(self, *, mapping_inferrer: ColumnMappingInferrer | None = None) -> None:
        self._mapping_inferrer = mapping_inferrer or ColumnMappingInferrer()

    def infer(
        self,
        headers: Sequence[str],
        filename: str,
        sample_rows: Sequence[Sequence[Any]],
        *,
        mapping: ColumnMapping | None = None,
        user_region: str | None = None,
    ) -> CountryInference:
        """
        Return the best supported country guess; never raises for bad data.
        """

        rows = list(sample_rows[:MAX_SAMPLE_ROWS])
        resolved_mapping = mapping or self._mapping_inferrer.suggest(headers)

        for inference in (
            self.infer_from_postcodes(headers, rows, resolved_mapping),
            self.infer_from_filename(filename),
            self.infer_from_region_names(rows),
            self.infer_from_user_region(user_region),
        ):
            if inference is not None:
                logger.info(
                    "Country inferred country=%s confidence=%s method=%s",
                    inference.country,
                    inference.confidence,
                    inference.method,
                )
                return inference

        name = country_name_for_code(DEFAULT_COUNTRY_CODE)
        logger.info("Country inference fell back to default country=%s", DEFAULT_COUNTRY_CODE)
        return CountryInference(
            country=DEFAULT_COUNTRY_CODE,
            country_name=name,
            confidence="low",
            method="fallback",
            display_text=f"Detected: {name} (default fallback)",
        )

    def infer_from_postcodes(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[Any]],
        mapping: ColumnMapping,
    ) -> CountryInference | None:
        header = mapping.postcode
        if not header or header not in headers:
            return None

        column = list(headers).index(header)
        postcodes = list(
            dict.fromkeys(
                text
                for text in (cell_to_text(row[column]) for row in rows if column < len(row))
                if text
            )
        )[:MAX_SAMPLE_POSTCODES]
        if not postcodes:
            return None

        scores: Counter[str] = Counter()
        for postcode in postcodes:
            for code, pattern in POSTCODE_PATTERNS.items():
                if pattern.match(postcode):
                    scores[code] += 1

        ranked = scores.most_common()
        if not ranked:
            return None
        best_code, best_score = ranked[0]
        tied = len(ranked) > 1 and ranked[1][1] == best_score
        if tied or best_score * 2 < len(postcodes):
            return None

        name = country_name_for_code(best_code)
        evidence = ", ".join(postcodes[:3])
        return CountryInference(
            country=best_code,
            country_name=name,
            confidence="high",
            method="format",
            display_text=f"Detected: {name} (from postcode format: {evidence})",
        )

    def infer_from_filename(self, filename: str) -> CountryInference | None:
        stem = PurePath(filename or "").stem.lower()
        normalized = re.sub(r"[_\-.]+", " ", stem).strip()
        if not normalized:
            return None

        best: tuple[int, str, str] | None = None
        for code, tokens in FILENAME_TOKENS.items():
            for token in tokens:
                if not re.search(rf"\b{re.escape(token)}\b", normalized):
                    continue
                if best is None or len(token) > best[0]:
                    best = (len(token), code, token)

        if best is None:
            return None

        _, code, token = best
        name = country_name_for_code(code)
        return CountryInference(
            country=code,
            country_name=name,
            confidence="medium",
            method="filename",
            display_text=f'Detected: {name} (from filename "{token}")',
        )

    def infer_from_region_names(self, rows: Sequence[Sequence[Any]]) -> CountryInference | None:
        cells = {
            text.lower()
            for row in rows
            for text in (cell_to_text(cell) for cell in row if isinstance(cell, str))
            if 3 <= len(text) <= 30 and _REGION_CELL_RE.match(text)
        }
        if not cells:
            return None

        scores: Counter[str] = Counter()
        for code, tokens in REGION_TOKENS.items():
            for token in tokens:
                if token in cells:
                    scores[code] += 1

        ranked = scores.most_common()
        if not ranked or (len(ranked) > 1 and ranked[1][1] == ranked[0][1]):
            return None

        code = ranked[0][0]
        name = country_name_for_code(code)
        return CountryInference(
            country=code,
            country_name=name,
            confidence="medium",
            method="data",
            display_text=f"Detected: {name} (from state/region names)",
        )

    def infer_from_user_region(self, user_region: str | None) -> CountryInference | None:
        if not user_region:
            return None
        code = USER_REGION_COUNTRIES.get(user_region.strip().lower())
        if code is None:
            return None

        name = country_name_for_code(code)
        return CountryInference(
            country=code,
            country_name=name,
            confidence="medium",
            method="fallback",
            display_text=f"Detected: {name} (from user region: {user_region.strip()})",
        )
