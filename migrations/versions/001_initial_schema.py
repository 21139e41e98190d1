"""Initial schema: users, drivers, cab types and trips.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(64), unique=True, nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("full_name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("full_name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("license_plate", sa.String(20), nullable=False),
        sa.Column("car_model", sa.String(80), nullable=False),
        sa.Column("rating", sa.Float, default=5.0, nullable=False),
        sa.Column("is_available", sa.Boolean, default=True, nullable=False),
        sa.Column("current_lat", sa.Float, nullable=False),
        sa.Column("current_lng", sa.Float, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_drivers_available", "drivers", ["is_available"])
    op.create_index(
        "idx_drivers_location", "drivers", ["current_lat", "current_lng"]
    )

    # ── cab_types ─────────────────────────────────────────────────────
    op.create_table(
        "cab_types",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(60), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("base_price", sa.Float, nullable=False),
        sa.Column("price_per_km", sa.Float, nullable=False),
        sa.Column("seating_capacity", sa.Integer, nullable=False),
    )

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=True
        ),
        sa.Column(
            "cab_type_id",
            sa.Integer,
            sa.ForeignKey("cab_types.id"),
            nullable=False,
        ),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("destination_address", sa.String(255), nullable=False),
        sa.Column("distance", sa.Float, nullable=False),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "pending",
                "confirmed",
                "in_progress",
                "completed",
                "cancelled",
                name="tripstatus",
            ),
            default="pending",
            nullable=False,
        ),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_trips_user", "trips", ["user_id"])
    op.create_index("idx_trips_driver", "trips", ["driver_id"])
    op.create_index("idx_trips_status", "trips", ["status"])


def downgrade() -> None:
    op.drop_table("trips")
    op.drop_table("cab_types")
    op.drop_table("drivers")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS tripstatus")
