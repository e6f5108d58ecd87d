"""
app/config.py

Environment-driven settings for upload limits, geocoding and ingestion.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables, falling back on bad input.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str | None) -> str | None:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped or default


def _get_csv_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw_value = _get_str_env(name, None)
    if raw_value is None:
        return default
    items = tuple(item.strip().lower().lstrip(".") for item in raw_value.split(",") if item.strip())
    return items or default


@dataclass(frozen=True)
class UploadSettings:
    """
    Limits applied to an uploaded store file before and during parsing.
    """

    max_file_size_mb: int
    max_rows_per_upload: int
    supported_file_types: tuple[str, ...]
    preview_rows: int
    session_ttl_seconds: int

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@dataclass(frozen=True)
class GeocodingSettings:
    """
    Sub-batching, retry and provider credentials for address geocoding.
    """

    batch_size: int
    delay_ms: int
    max_concurrency: int
    max_retries: int
    backoff_initial_seconds: float
    backoff_multiplier: float
    timeout_seconds: float
    rate_limit_per_second: float
    mapbox_token: str | None
    google_api_key: str | None
    nominatim_enabled: bool
    nominatim_user_agent: str


@dataclass(frozen=True)
class IngestSettings:
    upsert_batch_size: int
    max_logged_row_errors: int


@lru_cache(maxsize=1)
def get_upload_settings() -> UploadSettings:
    return UploadSettings(
        max_file_size_mb=max(1, _get_int_env("STORE_UPLOAD_MAX_FILE_SIZE_MB", 10)),
        max_rows_per_upload=max(1, _get_int_env("STORE_UPLOAD_MAX_ROWS", 5000)),
        supported_file_types=_get_csv_env(
            "STORE_UPLOAD_SUPPORTED_FILE_TYPES",
            ("csv", "xlsx", "xls"),
        ),
        preview_rows=max(0, _get_int_env("STORE_UPLOAD_PREVIEW_ROWS", 10)),
        session_ttl_seconds=max(1, _get_int_env("STORE_UPLOAD_SESSION_TTL_SECONDS", 3600)),
    )


@lru_cache(maxsize=1)
def get_geocoding_settings() -> GeocodingSettings:
    """
    Return cached geocoding settings.

    Provider credentials are optional; a provider without credentials is
    simply left out of the fallback chain.
    """

    return GeocodingSettings(
        batch_size=max(1, _get_int_env("GEOCODING_BATCH_SIZE", 10)),
        delay_ms=max(0, _get_int_env("GEOCODING_DELAY_MS", 100)),
        max_concurrency=max(1, _get_int_env("GEOCODING_MAX_CONCURRENCY", 3)),
        max_retries=max(0, _get_int_env("GEOCODING_MAX_RETRIES", 2)),
        backoff_initial_seconds=max(0.0, _get_float_env("GEOCODING_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("GEOCODING_BACKOFF_MULTIPLIER", 2.0)),
        timeout_seconds=max(1.0, _get_float_env("GEOCODING_TIMEOUT_SECONDS", 10.0)),
        rate_limit_per_second=max(0.0, _get_float_env("GEOCODING_RATE_LIMIT_PER_SECOND", 10.0)),
        mapbox_token=_get_str_env("MAPBOX_ACCESS_TOKEN", None),
        google_api_key=_get_str_env("GOOGLE_MAPS_API_KEY", None),
        nominatim_enabled=_get_bool_env("NOMINATIM_ENABLED", True),
        nominatim_user_agent=_get_str_env("NOMINATIM_USER_AGENT", "store-bulk-import/0.1")
        or "store-bulk-import/0.1",
    )


@lru_cache(maxsize=1)
def get_ingest_settings() -> IngestSettings:
    return IngestSettings(
        upsert_batch_size=max(1, _get_int_env("STORE_INGEST_UPSERT_BATCH_SIZE", 50)),
        max_logged_row_errors=max(0, _get_int_env("STORE_INGEST_MAX_LOGGED_ROW_ERRORS", 200)),
    )
