"""create stores table

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=100), nullable=False),
        sa.Column("postcode", sa.String(length=20), nullable=True),
        sa.Column("country", sa.String(length=100), nullable=False),
        sa.Column(
            "region",
            sa.String(length=8),
            nullable=True,
            comment="AMER / EMEA / APAC, derived from country",
        ),
        sa.Column("status", sa.String(length=32), nullable=True),
        sa.Column("owner_name", sa.String(length=255), nullable=True),
        sa.Column(
            "external_id",
            sa.String(length=255),
            nullable=True,
            comment="Identifier from the operator's source system",
        ),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_id", name="uq_stores_external_id"),
    )
    op.create_index("ix_stores_natural_key", "stores", ["name", "city", "country"], unique=False)
    op.create_index("ix_stores_name", "stores", ["name"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_stores_name", table_name="stores")
    op.drop_index("ix_stores_natural_key", table_name="stores")
    op.drop_table("stores")
