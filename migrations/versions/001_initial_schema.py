"""Initial schema: the rides table.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _enum_column(name: str, *values: str, nullable: bool = False) -> sa.Column:
    # Stored as VARCHAR + CHECK, matching ``native_enum=False`` on the model
    return sa.Column(
        name,
        sa.Enum(
            *values,
            name=f"{name}_enum",
            native_enum=False,
            create_constraint=True,
            length=20,
        ),
        nullable=nullable,
    )


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("passenger", sa.JSON, nullable=False),
        sa.Column("passenger_id", sa.String(64), nullable=False),
        sa.Column("driver", sa.JSON, nullable=True),
        sa.Column("driver_id", sa.String(64), nullable=True),
        sa.Column("origin", sa.String(500), nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=True),
        sa.Column("origin_lng", sa.Float, nullable=True),
        sa.Column("destination", sa.String(500), nullable=False),
        sa.Column("destination_lat", sa.Float, nullable=True),
        sa.Column("destination_lng", sa.Float, nullable=True),
        sa.Column("waypoints", sa.JSON, nullable=False),
        sa.Column("route_polyline", sa.Text, nullable=True),
        _enum_column(
            "service_type", "MOTO_TAXI", "DELIVERY_MOTO", "DELIVERY_BIKE"
        ),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("distance", sa.String(32), nullable=False),
        sa.Column("duration", sa.String(32), nullable=False),
        _enum_column("payment_method", "pix", "cash", "corporate"),
        _enum_column(
            "payment_status", "pending", "pending_invoice", "completed"
        ),
        _enum_column(
            "status",
            "pending",
            "accepted",
            "in_progress",
            "completed",
            "cancelled",
        ),
        sa.Column("delivery_details", sa.JSON, nullable=True),
        sa.Column("security_code", sa.String(4), nullable=True),
        sa.Column("company_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_passenger", "rides", ["passenger_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])
    op.create_index("idx_rides_company", "rides", ["company_id"])


def downgrade() -> None:
    op.drop_index("idx_rides_company", table_name="rides")
    op.drop_index("idx_rides_driver", table_name="rides")
    op.drop_index("idx_rides_passenger", table_name="rides")
    op.drop_index("idx_rides_status", table_name="rides")
    op.drop_table("rides")
