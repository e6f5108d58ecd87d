"""
Shared fakes and fixtures for the store import tests.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.domain.store_import import GeocodeRequest, GeocodeResult, NormalizedStoreRecord
from app.errors import GeocodingProviderError
from db.base import Base
from db.models.store import Store


class FakeGeocodingProvider:
    """
    Thread-safe scripted provider.

    `script(request, attempt)` returns a GeocodeResult or raises; the default
    resolves every address to a fixed point.
    """

    name = "fake"

    def __init__(self, script: Callable[[GeocodeRequest, int], GeocodeResult] | None = None) -> None:
        self._script = script or (
            lambda request, attempt: GeocodeResult.success(latitude=52.52, longitude=13.405, provider=self.name)
        )
        self._lock = threading.Lock()
        self.calls: dict[str, int] = {}

    def geocode(self, request: GeocodeRequest) -> GeocodeResult:
        with self._lock:
            attempt = self.calls.get(request.address, 0) + 1
            self.calls[request.address] = attempt
        return self._script(request, attempt)

    @property
    def total_calls(self) -> int:
        with self._lock:
            return sum(self.calls.values())


def no_results(address: str) -> GeocodingProviderError:
    return GeocodingProviderError(f"fake: no results for {address}", provider="fake", retryable=False)


class _InMemoryWriter:
    def __init__(self, storage: "InMemoryStoreStorage") -> None:
        self._storage = storage
        self.pending: dict[tuple[str, str, str], dict[str, Any]] = {}

    def find_by_natural_key(self, *, name: str, city: str, country: str) -> dict[str, Any] | None:
        key = (name, city, country)
        return self.pending.get(key) or self._storage.rows.get(key)

    def insert(self, payload: dict[str, Any]) -> dict[str, Any]:
        if payload["name"] in self._storage.reject_names:
            raise IntegrityError("INSERT INTO stores", {}, Exception("duplicate key value"))
        row = dict(payload)
        self.pending[(row["name"], row["city"], row["country"])] = row
        return row

    def update(self, store: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
        updated = {**store, **payload}
        self.pending[(updated["name"], updated["city"], updated["country"])] = updated
        return updated

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        yield


class InMemoryStoreStorage:
    """
    Dict-backed StoreStorage; a chunk's rows only land in `rows` on commit.
    """

    def __init__(self, *, reject_names: Iterable[str] = (), fail_on_chunk: int | None = None) -> None:
        self.rows: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.reject_names = set(reject_names)
        self.fail_on_chunk = fail_on_chunk
        self.chunks_opened = 0
        self.chunks_committed = 0

    @contextmanager
    def chunk(self) -> Iterator[_InMemoryWriter]:
        from db.repositories.errors import StoreStorageError

        self.chunks_opened += 1
        if self.fail_on_chunk == self.chunks_opened:
            raise StoreStorageError("connection lost")
        writer = _InMemoryWriter(self)
        yield writer
        self.rows.update(writer.pending)
        self.chunks_committed += 1

    def verify_coordinates(self, names: Iterable[str]) -> int:
        wanted = set(names)
        return sum(
            1
            for row in self.rows.values()
            if row["name"] in wanted and row["latitude"] is not None and row["longitude"] is not None
        )

    def by_name(self, name: str) -> dict[str, Any]:
        return next(row for row in self.rows.values() if row["name"] == name)


def make_record(index: int, **overrides: Any) -> NormalizedStoreRecord:
    values: dict[str, Any] = {
        "name": f"Store {index}",
        "address": f"{index} Main Street",
        "city": "Berlin",
        "country": "Germany",
        "postcode": "10115",
        "region": "EMEA",
        "row_number": index + 1,
    }
    values.update(overrides)
    return NormalizedStoreRecord(**values)


@pytest.fixture()
def fake_provider() -> FakeGeocodingProvider:
    return FakeGeocodingProvider()


@pytest.fixture()
def memory_storage() -> InMemoryStoreStorage:
    return InMemoryStoreStorage()


@pytest.fixture()
def sqlite_session_factory():
    """
    In-memory SQLite with working SAVEPOINTs for the stores table.
    """

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine, tables=[Store.__table__])
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()
