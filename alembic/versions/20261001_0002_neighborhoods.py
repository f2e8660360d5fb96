"""Neighborhood dataset table keyed by (city, code)."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261001_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "neighborhoods",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=False),
        sa.Column("neighborhood_type", sa.String(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False, server_default="0"),
        sa.Column("longitude", sa.Float(), nullable=False, server_default="0"),
        sa.Column("population_density", sa.Float(), nullable=True),
        sa.Column("average_woz_value", sa.Float(), nullable=True),
        sa.Column("crime_rate", sa.Float(), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("city", "code", name="uq_neighborhoods_city_code"),
    )
    op.create_index("ix_neighborhoods_code", "neighborhoods", ["code"], unique=False)
    op.create_index("ix_neighborhoods_city", "neighborhoods", ["city"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_neighborhoods_city", table_name="neighborhoods")
    op.drop_index("ix_neighborhoods_code", table_name="neighborhoods")
    op.drop_table("neighborhoods")
