"""Initial schema: fulfillers, bookings and reviews.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ENUM_TYPES = (
    "fulfillerkind",
    "approvalstatus",
    "availability",
    "bookingtype",
    "bookingstatus",
    "pricesetby",
    "paymentmethod",
    "paymentstatus",
    "confirmedby",
    "cancelledby",
    "reviewtype",
)


def upgrade() -> None:
    # ── fulfillers ────────────────────────────────────────────────────
    op.create_table(
        "fulfillers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column(
            "kind",
            sa.Enum("driver", "logistics", name="fulfillerkind"),
            nullable=False,
        ),
        sa.Column("display_name", sa.String(120), nullable=False, default=""),
        sa.Column(
            "approval_status",
            sa.Enum(
                "pending_approval",
                "approved",
                "rejected",
                "suspended",
                "active",
                name="approvalstatus",
            ),
            nullable=False,
        ),
        sa.Column(
            "availability",
            sa.Enum(
                "offline",
                "available",
                "busy",
                "on_trip",
                "on_delivery",
                name="availability",
            ),
            nullable=False,
        ),
        sa.Column("current_booking_id", sa.Integer, nullable=True),
        sa.Column("rating_average", sa.Float, nullable=False, default=0.0),
        sa.Column("rating_total", sa.Integer, nullable=False, default=0),
        sa.Column("rating_breakdown", sa.JSON, nullable=False),
        sa.Column("rating_version", sa.Integer, nullable=False, default=0),
        sa.Column("approved_by", sa.Integer, nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        sa.Column("suspended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("suspension_reason", sa.String(500), nullable=True),
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
        sa.UniqueConstraint("user_id", "kind", name="uq_fulfillers_user_kind"),
    )
    op.create_index("idx_fulfillers_approval", "fulfillers", ["approval_status"])
    op.create_index("idx_fulfillers_availability", "fulfillers", ["availability"])
    op.create_index("idx_fulfillers_rating", "fulfillers", ["rating_average"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("requester_id", sa.Integer, nullable=False),
        sa.Column(
            "type", sa.Enum("ride", "delivery", name="bookingtype"), nullable=False
        ),
        sa.Column(
            "status",
            sa.Enum(
                "pending",
                "driver_assigned",
                "driver_en_route",
                "picked_up",
                "in_transit",
                "completed",
                "cancelled",
                name="bookingstatus",
            ),
            nullable=False,
        ),
        sa.Column(
            "fulfiller_id",
            sa.Integer,
            sa.ForeignKey("fulfillers.id"),
            nullable=True,
        ),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("destination_address", sa.String(255), nullable=False),
        sa.Column("destination_lat", sa.Float, nullable=True),
        sa.Column("destination_lng", sa.Float, nullable=True),
        sa.Column("package_description", sa.String(500), nullable=True),
        sa.Column("package_weight_kg", sa.Float, nullable=True),
        sa.Column("package_length_cm", sa.Float, nullable=True),
        sa.Column("package_width_cm", sa.Float, nullable=True),
        sa.Column("package_height_cm", sa.Float, nullable=True),
        sa.Column("package_value", sa.Float, nullable=True),
        sa.Column(
            "package_is_fragile", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("package_special_instructions", sa.String(500), nullable=True),
        sa.Column("price_amount", sa.Float, nullable=True),
        sa.Column("price_currency", sa.String(3), nullable=True),
        sa.Column(
            "price_set_by",
            sa.Enum("admin", "driver", name="pricesetby"),
            nullable=True,
        ),
        sa.Column("price_set_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "payment_method",
            sa.Enum("cash", "transfer", name="paymentmethod"),
            nullable=False,
        ),
        sa.Column(
            "payment_status",
            sa.Enum("pending", "confirmed", "failed", name="paymentstatus"),
            nullable=False,
        ),
        sa.Column("payment_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "payment_confirmed_by",
            sa.Enum("user", "admin", name="confirmedby"),
            nullable=True,
        ),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("en_route_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("picked_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("in_transit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column(
            "cancelled_by",
            sa.Enum("user", "driver", "admin", name="cancelledby"),
            nullable=True,
        ),
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
    )
    op.create_index(
        "idx_bookings_requester", "bookings", ["requester_id", "created_at"]
    )
    op.create_index("idx_bookings_fulfiller", "bookings", ["fulfiller_id", "status"])
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_type_status", "bookings", ["type", "status"])

    # ── reviews ───────────────────────────────────────────────────────
    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "booking_id",
            sa.Integer,
            sa.ForeignKey("bookings.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column("reviewer_id", sa.Integer, nullable=False),
        sa.Column(
            "fulfiller_id",
            sa.Integer,
            sa.ForeignKey("fulfillers.id"),
            nullable=False,
        ),
        sa.Column(
            "type",
            sa.Enum("user_to_driver", name="reviewtype"),
            nullable=False,
        ),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("comment", sa.String(500), nullable=True),
        sa.Column("feedback", sa.JSON, nullable=False),
        sa.Column(
            "is_anonymous", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_reviews_fulfiller", "reviews", ["fulfiller_id", "created_at"])
    op.create_index("idx_reviews_reviewer", "reviews", ["reviewer_id", "created_at"])


def downgrade() -> None:
    op.drop_table("reviews")
    op.drop_table("bookings")
    op.drop_table("fulfillers")
    for name in ENUM_TYPES:
        op.execute(f"DROP TYPE IF EXISTS {name}")
