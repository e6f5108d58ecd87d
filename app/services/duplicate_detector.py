"""
app/services/duplicate_detector.py

Flags rows in one upload that describe the same physical store.

Detection is advisory: nothing is removed or merged, callers only receive
DuplicateInfo annotations.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from app.domain.store_import import DuplicateInfo, NormalizedStoreRecord

logger = logging.getLogger(__name__)

DUPLICATE_CONFIDENCE_THRESHOLD = 0.8

NAME_WEIGHT = 0.4
ADDRESS_WEIGHT = 0.3
CITY_WEIGHT = 0.2
COUNTRY_WEIGHT = 0.1

_NON_WORD_RE = re.compile(r"[^\w]")


def levenshtein_distance(left: str, right: str) -> int:
    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)
    if len(left) < len(right):
        left, right = right, left

    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (left_char != right_char),
                )
            )
        previous = current
    return previous[-1]


def string_similarity(left: str, right: str) -> float:
    """
    1 - normalized Levenshtein distance. Equal strings score 1, an empty side 0.
    """

    if left == right:
        return 1.0
    if not left or not right:
        return 0.0
    longest = max(len(left), len(right))
    return (longest - levenshtein_distance(left, right)) / longest


def address_key(record: NormalizedStoreRecord) -> str:
    parts = (record.name, record.address, record.city, record.postcode or "", record.country)
    return "|".join(_NON_WORD_RE.sub("", part.lower()) for part in parts)


def duplicate_confidence(candidate: NormalizedStoreRecord, original: NormalizedStoreRecord) -> float:
    score = NAME_WEIGHT * string_similarity(candidate.name.lower(), original.name.lower())
    score += ADDRESS_WEIGHT * string_similarity(candidate.address.lower(), original.address.lower())
    if candidate.city.lower() == original.city.lower():
        score += CITY_WEIGHT
    if candidate.country.lower() == original.country.lower():
        score += COUNTRY_WEIGHT
    return round(score, 4)


def _row_label(records: Sequence[NormalizedStoreRecord], index: int) -> str:
    row_number = records[index].row_number
    return f"Row {row_number if row_number is not None else index + 1}"


class DuplicateDetector:
    def __init__(self, *, threshold: float = DUPLICATE_CONFIDENCE_THRESHOLD) -> None:
        self._threshold = threshold

    def detect(self, records: Sequence[NormalizedStoreRecord]) -> list[DuplicateInfo]:
        """
        Single pass over `records` in order; later rows are reported against
        the first row that shares their external id or address key.
        """

        duplicates: list[DuplicateInfo] = []
        first_by_external_id: dict[str, int] = {}
        first_by_address: dict[str, int] = {}

        for index, record in enumerate(records):
            if record.external_id:
                external_key = record.external_id.lower()
                existing = first_by_external_id.get(external_key)
                if existing is not None:
                    duplicates.append(
                        DuplicateInfo(
                            row_index=index,
                            duplicate_of=_row_label(records, existing),
                            match_type="external_id",
                            confidence=1.0,
                            row=record.row_number,
                        )
                    )
                    continue
                first_by_external_id[external_key] = index

            key = address_key(record)
            existing = first_by_address.get(key)
            if existing is None:
                first_by_address[key] = index
                continue

            confidence = duplicate_confidence(record, records[existing])
            if confidence >= self._threshold:
                duplicates.append(
                    DuplicateInfo(
                        row_index=index,
                        duplicate_of=_row_label(records, existing),
                        match_type="address_match",
                        confidence=confidence,
                        row=record.row_number,
                    )
                )

        if duplicates:
            logger.info("Duplicate rows flagged count=%s total=%s", len(duplicates), len(records))
        return duplicates
