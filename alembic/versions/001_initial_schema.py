"""Initial schema: station_info.

Revision ID: 001
Revises:
Create Date: 2025-11-03
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "station_info",
        sa.Column("station_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("admin_id", sa.Integer, nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("soil_saturation", sa.Float, nullable=True),
        sa.Column("precipitation", sa.Float, nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_available", sa.Boolean, nullable=False, server_default=sa.true()),
        # Per-sensor saturation ceilings
        sa.Column("wc1", sa.Float, nullable=True),
        sa.Column("wc2", sa.Float, nullable=True),
        sa.Column("wc3", sa.Float, nullable=True),
        sa.Column("wc4", sa.Float, nullable=True),
        sa.Column("ftp_file_path", sa.String(255), nullable=True),
        sa.Column("history_data_url", sa.String(255), nullable=True),
        sa.Column("sensor_image_url", sa.String(255), nullable=True),
        sa.Column("data_image_url", sa.String(255), nullable=True),
    )
    op.create_index("idx_station_info_last_updated", "station_info", ["last_updated"])


def downgrade() -> None:
    op.drop_index("idx_station_info_last_updated", table_name="station_info")
    op.drop_table("station_info")
