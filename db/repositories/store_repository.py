"""
Repository and transaction helpers for the `stores` table.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.store import Store
from db.repositories.errors import StoreStorageError

logger = logging.getLogger(__name__)

WRITABLE_COLUMNS: tuple[str, ...] = (
    "name",
    "address",
    "city",
    "postcode",
    "country",
    "region",
    "status",
    "owner_name",
    "external_id",
    "latitude",
    "longitude",
)

_VERIFY_NAME_CHUNK = 500


class StoreRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def find_by_natural_key(self, *, name: str, city: str, country: str) -> Store | None:
        stmt = (
            select(Store)
            .where(
                and_(
                    Store.name == name,
                    Store.city == city,
                    Store.country == country,
                )
            )
            .order_by(Store.created_at.asc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def insert(self, payload: Mapping[str, Any]) -> Store:
        store = Store(**_writable(payload))
        self._session.add(store)
        self._session.flush()
        return store

    def update(self, store: Store, payload: Mapping[str, Any]) -> Store:
        for column, value in _writable(payload).items():
            setattr(store, column, value)
        store.updated_at = datetime.now(timezone.utc)
        self._session.flush()
        return store

    def count_with_coordinates(self, names: Iterable[str]) -> int:
        unique_names = sorted({name for name in names if name})
        total = 0
        for start in range(0, len(unique_names), _VERIFY_NAME_CHUNK):
            batch = unique_names[start : start + _VERIFY_NAME_CHUNK]
            stmt = select(func.count(Store.id)).where(
                Store.name.in_(batch),
                Store.latitude.is_not(None),
                Store.longitude.is_not(None),
            )
            total += int(self._session.scalar(stmt) or 0)
        return total

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """
        Isolate one row's writes; on error only this savepoint is rolled back.
        """

        with self._session.begin_nested():
            yield


class SQLAlchemyStoreStorage:
    """
    Session-factory backed storage used by the batch upserter.

    Each `chunk()` opens its own session and transaction, so a failure in one
    chunk never touches rows committed by earlier chunks.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def chunk(self) -> Iterator[StoreRepository]:
        try:
            session = self._session_factory()
        except SQLAlchemyError as exc:
            raise StoreStorageError(f"Could not open a database session: {exc}") from exc

        try:
            with session.begin():
                yield StoreRepository(session)
        except SQLAlchemyError as exc:
            logger.exception("Store chunk transaction failed error=%s", exc)
            raise StoreStorageError(f"Store chunk transaction failed: {exc}") from exc
        finally:
            session.close()

    def verify_coordinates(self, names: Iterable[str]) -> int:
        try:
            session = self._session_factory()
        except SQLAlchemyError as exc:
            raise StoreStorageError(f"Could not open a database session: {exc}") from exc

        try:
            return StoreRepository(session).count_with_coordinates(names)
        except SQLAlchemyError as exc:
            raise StoreStorageError(f"Coordinate verification failed: {exc}") from exc
        finally:
            session.close()


def _writable(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {column: payload[column] for column in WRITABLE_COLUMNS if column in payload}
