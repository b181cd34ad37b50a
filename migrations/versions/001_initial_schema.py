"""Initial schema: users, rides, bookings and the background job ledger.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


RIDE_STATUS = sa.Enum(
    "open", "full", "cancelled", "completed", "expired", name="ride_status"
)
BOOKING_STATUS = sa.Enum(
    "pending", "paid", "completed", "cancelled", "expired", name="booking_status"
)
APPROVAL_STATUS = sa.Enum("pending", "approved", "rejected", name="approval_status")
JOB_TYPE = sa.Enum(
    "expire_rides", "complete_rides", "refresh_ratings", name="job_type"
)
JOB_STATUS = sa.Enum("running", "completed", "failed", name="job_status")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("is_driver", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("rating_driver", sa.Float, default=5.0),
        sa.Column("rating_rider", sa.Float, default=5.0),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "driver_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("origin_label", sa.String(255), nullable=False, server_default=""),
        sa.Column(
            "destination_label", sa.String(255), nullable=False, server_default=""
        ),
        sa.Column("seats_total", sa.Integer, nullable=False),
        sa.Column("seats_available", sa.Integer, nullable=False),
        sa.Column("status", RIDE_STATUS, nullable=False, server_default="open"),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("arrival_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "auto_completed", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
        sa.CheckConstraint("seats_total >= 1", name="ck_rides_seats_total"),
        sa.CheckConstraint(
            "seats_available >= 0 AND seats_available <= seats_total",
            name="ck_rides_seats_available",
        ),
    )
    op.create_index(
        "idx_rides_status_departure", "rides", ["status", "departure_time"]
    )
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column(
            "rider_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("seats_booked", sa.Integer, nullable=False),
        sa.Column("status", BOOKING_STATUS, nullable=False, server_default="pending"),
        sa.Column(
            "approval_status",
            APPROVAL_STATUS,
            nullable=False,
            server_default="pending",
        ),
        sa.Column("price_per_seat", sa.Float, nullable=False),
        sa.Column("total_price", sa.Float, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("payment_intent_ref", sa.String(255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "seats_booked >= 1 AND seats_booked <= 8",
            name="ck_bookings_seats_booked",
        ),
    )
    op.create_index("idx_bookings_ride_status", "bookings", ["ride_id", "status"])
    op.create_index("idx_bookings_ride_rider", "bookings", ["ride_id", "rider_id"])

    # ── background_jobs ───────────────────────────────────────────────
    op.create_table(
        "background_jobs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("job_type", JOB_TYPE, nullable=False),
        sa.Column("status", JOB_STATUS, nullable=False, server_default="running"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("affected_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_background_jobs_created", "background_jobs", ["created_at"])
    op.create_index("idx_background_jobs_type", "background_jobs", ["job_type"])


def downgrade() -> None:
    op.drop_table("background_jobs")
    op.drop_table("bookings")
    op.drop_table("rides")
    op.drop_table("users")
    for enum_name in (
        "job_status",
        "job_type",
        "approval_status",
        "booking_status",
        "ride_status",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
