"""
db/config.py

Where the store database lives and how its connection pool is sized.

`.env` / `.env.local` at the project root are read once per lookup; anything
already exported in the process environment takes precedence over them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_ENV_FILES: tuple[str, ...] = (".env", ".env.local")
_CLOUD_LIKE_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})
_PSYCOPG_PREFIX = "postgresql+psycopg://"


def parse_env_line(raw_line: str) -> tuple[str, str] | None:
    """Split one `KEY=VALUE` / `export KEY=VALUE` line; None for comments and noise."""
    line = raw_line.strip()
    if line.startswith("export "):
        line = line[len("export ") :].lstrip()
    if not line or line.startswith("#") or "=" not in line:
        return None

    key, value = (part.strip() for part in line.split("=", 1))
    if not key:
        return None
    return key, value.strip('"').strip("'")


def load_env_files(root: Path = _PROJECT_ROOT) -> None:
    for filename in _ENV_FILES:
        env_path = root / filename
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            parsed = parse_env_line(raw_line)
            if parsed is not None:
                os.environ.setdefault(*parsed)


def normalize_postgres_url(url: str) -> str:
    """
    Point `postgres://` and bare `postgresql://` URLs at the psycopg 3 driver.
    """

    scheme, separator, rest = url.partition("://")
    if separator and scheme in {"postgres", "postgresql"}:
        return _PSYCOPG_PREFIX + rest
    return url


def resolve_database_url() -> str:
    """
    Pick the store database URL.

    DATABASE_URL always wins. CLOUD_DATABASE_URL is only considered when
    ENVIRONMENT names a deployed environment; LOCAL_DATABASE_URL is the
    developer fallback.
    """

    load_env_files()

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    candidates = [os.getenv("DATABASE_URL")]
    if environment in _CLOUD_LIKE_ENVIRONMENTS:
        candidates.append(os.getenv("CLOUD_DATABASE_URL"))
    candidates.append(os.getenv("LOCAL_DATABASE_URL"))

    for candidate in candidates:
        if candidate and candidate.strip():
            return normalize_postgres_url(candidate.strip())

    raise RuntimeError(
        "No store database configured: set DATABASE_URL "
        "(or LOCAL_DATABASE_URL / CLOUD_DATABASE_URL with ENVIRONMENT)."
    )


def _env_int(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    try:
        return int(raw_value) if raw_value is not None else default
    except ValueError:
        return default


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool
    pool_size: int
    max_overflow: int
    pool_recycle_seconds: int

    def __post_init__(self) -> None:
        if not self.url.startswith("postgresql"):
            raise RuntimeError("The store database must be PostgreSQL.")


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    url = resolve_database_url()
    return DatabaseSettings(
        url=url,
        echo=os.getenv("SQL_ECHO", "").strip().lower() in {"1", "true", "yes", "on"},
        pool_size=_env_int("DB_POOL_SIZE", 5),
        max_overflow=_env_int("DB_MAX_OVERFLOW", 10),
        pool_recycle_seconds=_env_int("DB_POOL_RECYCLE", 1800),
    )
