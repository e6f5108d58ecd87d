from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.schemas.store_import import HealthResponse

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Fail startup when a table registered on Base.metadata is missing.

    Does NOT auto-migrate; run `alembic upgrade head` first.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    actual = set(sa_inspect(get_engine()).get_table_names())
    missing = set(Base.metadata.tables.keys()) - actual
    if missing:
        logger.critical(
            "Schema mismatch missing_tables=%s. Run 'alembic upgrade head' and restart.",
            ",".join(sorted(missing)),
        )
        raise RuntimeError(f"Schema mismatch: missing tables {', '.join(sorted(missing))}.")


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema on boot; drop held uploads on exit."""
    _check_db()
    logger.info("Database connectivity confirmed")
    _check_schema()
    logger.info("Database schema validated")
    try:
        yield
    finally:
        from app.services.store_import_orchestrator import get_upload_session_store

        evicted = get_upload_session_store().evict_expired(now=float("inf"))
        logger.info("Upload sessions released on shutdown count=%s", len(evicted))


def create_app(*, check_database: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _configure_logging()

    application = FastAPI(
        title="Store Bulk Import API",
        version="0.1.0",
        lifespan=_lifespan if check_database else None,
    )

    from app.api.routers import store_import_router

    application.include_router(store_import_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck() -> HealthResponse:
        return HealthResponse(status="ok", service="store-bulk-import")

    return application


app = create_app()
