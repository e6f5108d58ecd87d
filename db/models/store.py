"""
db/models/store.py

Persisted store locations written by the bulk import pipeline.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Float, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class Store(Base, TimestampMixin):
    __tablename__ = "stores"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    postcode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    region: Mapped[str | None] = mapped_column(
        String(8),
        nullable=True,
        comment="AMER / EMEA / APAC, derived from country",
    )
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    owner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Identifier from the operator's source system",
    )
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("external_id", name="uq_stores_external_id"),
        Index("ix_stores_natural_key", "name", "city", "country"),
        Index("ix_stores_name", "name"),
    )
