"""pool_schema

Revision ID: 3f1c2a7b9d04
Revises: 
Create Date: 2026-10-19 09:12:31.448102

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c2a7b9d04'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tables: vehicle, pool, rider, reservation."""
    op.create_table(
        "vehicle",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default="tricycle"),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("battery", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("max_capacity", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("passenger_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("color", sa.String(), nullable=True),
        sa.Column("driver", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("speed", sa.Float(), nullable=True),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("trips_today", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved_for_pool", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pool_id", sa.String(), nullable=True),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reserved_by", sa.String(), nullable=True),
        sa.Column("last_update", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vehicle_reserved_for_pool", "vehicle", ["reserved_for_pool"])
    op.create_index("ix_vehicle_pool_id", "vehicle", ["pool_id"])
    op.create_table(
        "pool",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("destination_name", sa.String(), nullable=False),
        sa.Column("destination_lat", sa.Float(), nullable=False),
        sa.Column("destination_lng", sa.Float(), nullable=False),
        sa.Column("vehicle_id", sa.Integer(), nullable=False),
        sa.Column("assigned_vehicle_id", sa.Integer(), nullable=True),
        sa.Column("max_riders", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="waiting"),
        sa.Column("optimized_route", sa.JSON(), nullable=True),
        sa.Column("sync_state", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pool_destination_name", "pool", ["destination_name"])
    op.create_index("ix_pool_vehicle_id", "pool", ["vehicle_id"])
    op.create_index("ix_pool_status", "pool", ["status"])
    op.create_table(
        "rider",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("rider_id", sa.String(), nullable=False),
        sa.Column("pool_id", sa.String(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("pickup_lat", sa.Float(), nullable=False),
        sa.Column("pickup_lng", sa.Float(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["pool_id"], ["pool.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rider_rider_id", "rider", ["rider_id"])
    op.create_index("ix_rider_pool_id", "rider", ["pool_id"])
    op.create_table(
        "reservation",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False, server_default="solo"),
        sa.Column("vehicle_id", sa.Integer(), nullable=True),
        sa.Column("pool_id", sa.String(), nullable=True),
        sa.Column("user_name", sa.String(), nullable=True),
        sa.Column("passenger_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pickup_lat", sa.Float(), nullable=True),
        sa.Column("pickup_lng", sa.Float(), nullable=True),
        sa.Column("destination_name", sa.String(), nullable=True),
        sa.Column("dest_lat", sa.Float(), nullable=True),
        sa.Column("dest_lng", sa.Float(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="reserved"),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reservation_vehicle_id", "reservation", ["vehicle_id"])
    op.create_index("ix_reservation_status", "reservation", ["status"])


def downgrade() -> None:
    """Drop all pool service tables."""
    op.drop_index("ix_reservation_status", table_name="reservation")
    op.drop_index("ix_reservation_vehicle_id", table_name="reservation")
    op.drop_table("reservation")
    op.drop_index("ix_rider_pool_id", table_name="rider")
    op.drop_index("ix_rider_rider_id", table_name="rider")
    op.drop_table("rider")
    op.drop_index("ix_pool_status", table_name="pool")
    op.drop_index("ix_pool_vehicle_id", table_name="pool")
    op.drop_index("ix_pool_destination_name", table_name="pool")
    op.drop_table("pool")
    op.drop_index("ix_vehicle_pool_id", table_name="vehicle")
    op.drop_index("ix_vehicle_reserved_for_pool", table_name="vehicle")
    op.drop_table("vehicle")
