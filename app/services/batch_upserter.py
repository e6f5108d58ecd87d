"""
app/services/batch_upserter.py

Chunked, transactional persistence of normalized store records.

Each chunk runs in its own transaction and each row inside it in its own
savepoint, so a constraint violation costs exactly one row. Failures that
cannot be pinned on a row (lost connection, failed commit) abort the run with
DatabaseError; chunks committed before that stay committed.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Sequence

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from app.domain.store_import import ImportSummary, NormalizedStoreRecord, valid_coordinates
from app.errors import DatabaseError
from db.repositories.errors import StoreStorageError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 50

# Errors that mean the database itself is unavailable, not that a row is bad.
_FATAL_ROW_ERRORS = (OperationalError, InterfaceError)


class StoreWriter(Protocol):
    def find_by_natural_key(self, *, name: str, city: str, country: str) -> Any | None:
        ...

    def insert(self, payload: dict[str, Any]) -> Any:
        ...

    def update(self, store: Any, payload: dict[str, Any]) -> Any:
        ...

    def savepoint(self) -> AbstractContextManager[None]:
        ...


class StoreStorage(Protocol):
    def chunk(self) -> AbstractContextManager[StoreWriter]:
        ...

    def verify_coordinates(self, names: Iterable[str]) -> int:
        ...


@dataclass
class _ChunkCounts:
    inserted: int = 0
    updated: int = 0
    pending_geocode: int = 0
    failed: int = 0


class BatchUpserter:
    def __init__(
        self,
        *,
        storage: StoreStorage,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._storage = storage
        self._chunk_size = max(1, chunk_size)

    def upsert(
        self,
        records: Sequence[NormalizedStoreRecord],
        summary: ImportSummary | None = None,
    ) -> ImportSummary:
        """
        Insert or update every record, matching existing rows by (name, city, country).

        Counters are added to `summary` only once a chunk has committed.
        """

        summary = summary or ImportSummary()
        total_chunks = (len(records) + self._chunk_size - 1) // self._chunk_size

        for chunk_number, start in enumerate(range(0, len(records), self._chunk_size), start=1):
            chunk = records[start : start + self._chunk_size]
            try:
                counts = self._upsert_chunk(chunk)
            except StoreStorageError as exc:
                logger.error(
                    "Store upsert aborted chunk=%s/%s inserted=%s updated=%s error=%s",
                    chunk_number,
                    total_chunks,
                    summary.inserted,
                    summary.updated,
                    exc,
                )
                raise DatabaseError(
                    "Database error while saving stores. Earlier batches were saved.",
                    details={
                        "chunk": chunk_number,
                        "totalChunks": total_chunks,
                        "committed": summary.to_dict(),
                    },
                ) from exc

            summary.inserted += counts.inserted
            summary.updated += counts.updated
            summary.pending_geocode += counts.pending_geocode
            summary.failed += counts.failed
            logger.info(
                "Store chunk committed chunk=%s/%s inserted=%s updated=%s failed=%s",
                chunk_number,
                total_chunks,
                counts.inserted,
                counts.updated,
                counts.failed,
            )

        return summary

    def verify(self, records: Sequence[NormalizedStoreRecord]) -> int | None:
        """
        Count persisted rows (by name) that carry coordinates. Reporting only.
        """

        names = [record.name for record in records]
        try:
            return self._storage.verify_coordinates(names)
        except StoreStorageError as exc:
            logger.warning("Coordinate verification read failed error=%s", exc)
            return None

    def _upsert_chunk(self, chunk: Sequence[NormalizedStoreRecord]) -> _ChunkCounts:
        counts = _ChunkCounts()
        with self._storage.chunk() as writer:
            for record in chunk:
                payload, has_coordinates = self._payload(record)
                try:
                    with writer.savepoint():
                        existing = writer.find_by_natural_key(
                            name=record.name,
                            city=record.city,
                            country=record.country,
                        )
                        if existing is not None:
                            writer.update(existing, payload)
                        else:
                            writer.insert(payload)
                except _FATAL_ROW_ERRORS:
                    raise
                except SQLAlchemyError as exc:
                    counts.failed += 1
                    logger.warning(
                        "Store row failed to persist row=%s error=%s",
                        record.row_number,
                        exc.__class__.__name__,
                    )
                    logger.debug("Store row failure detail row=%s error=%s", record.row_number, exc)
                    continue

                if existing is not None:
                    counts.updated += 1
                else:
                    counts.inserted += 1
                if not has_coordinates:
                    counts.pending_geocode += 1
        return counts

    @staticmethod
    def _payload(record: NormalizedStoreRecord) -> tuple[dict[str, Any], bool]:
        has_coordinates = valid_coordinates(record.latitude, record.longitude)
        payload = {
            "name": record.name,
            "address": record.address,
            "city": record.city,
            "postcode": record.postcode,
            "country": record.country,
            "region": record.region,
            "status": record.status,
            "owner_name": record.owner_name,
            "external_id": record.external_id,
            "latitude": record.latitude if has_coordinates else None,
            "longitude": record.longitude if has_coordinates else None,
        }
        return payload, has_coordinates
