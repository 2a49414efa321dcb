"""Initial schema: profiles, contractors, jobs, offers, cost factors, payments

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JOB_CATEGORIES = ("plumbing", "electrical", "paint", "handyman", "roof", "hvac", "flooring")
JOB_STATUSES = (
    "draft",
    "awaiting_accept",
    "accepted",
    "scheduled",
    "in_progress",
    "ready_for_review",
    "disputed",
    "completed",
    "cancelled",
)
OFFER_KINDS = ("broadcast", "accept", "counter", "decline", "expired")
USER_ROLES = ("client", "landlord", "property_manager", "contractor", "admin")
PAYMENT_STATUSES = ("pending", "succeeded", "failed", "released", "refunded")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Enum names match the ORM's SAEnum(name=...) so both sides agree
    job_category = sa.Enum(*[c.upper() for c in JOB_CATEGORIES], name="job_category")
    job_status = sa.Enum(*[s.upper() for s in JOB_STATUSES], name="job_status")
    offer_kind = sa.Enum(*[k.upper() for k in OFFER_KINDS], name="offer_kind")
    user_role = sa.Enum(*[r.upper() for r in USER_ROLES], name="user_role")
    payment_status = sa.Enum(*[s.upper() for s in PAYMENT_STATUSES], name="payment_status")

    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("role", user_role, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "contractors",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "profile_id",
            sa.Uuid(),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("company", sa.String(200), nullable=False),
        sa.Column("license_state", sa.String(20), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("stripe_account_id", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "cost_factors",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("location_key", sa.String(20), nullable=False),
        sa.Column("category", job_category, nullable=False),
        sa.Column("labor_rate_cents_per_hour", sa.BigInteger(), nullable=False),
        sa.Column("material_multiplier", sa.Numeric(6, 3), nullable=False),
        sa.Column("small_job_min_cents", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "location_key", "category", name="uq_cost_factors_location_category"
        ),
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "client_id",
            sa.Uuid(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", job_category, nullable=False),
        sa.Column("status", job_status, nullable=False),
        sa.Column("city", sa.String(100), nullable=False),
        sa.Column("zip", sa.String(20), nullable=False),
        sa.Column("photos_json", sa.JSON(), nullable=False),
        sa.Column("condition_tags_json", sa.JSON(), nullable=False),
        sa.Column("detection_confidence", sa.Numeric(5, 4), nullable=True),
        sa.Column("scope_md", sa.Text(), nullable=True),
        sa.Column("client_price_cents", sa.BigInteger(), nullable=False),
        sa.Column("contractor_net_cents", sa.BigInteger(), nullable=False),
        sa.Column("platform_fee_cents", sa.BigInteger(), nullable=False),
        sa.Column("margin_pct", sa.Numeric(5, 4), nullable=False),
        sa.Column("rush_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("after_hours_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("renter_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "landlord_id",
            sa.Uuid(),
            sa.ForeignKey("profiles.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "client_price_cents >= contractor_net_cents", name="ck_jobs_price_covers_net"
        ),
    )
    op.create_index("ix_jobs_client_id", "jobs", ["client_id"])
    op.create_index("ix_jobs_status", "jobs", ["status"])

    op.create_table(
        "job_offers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "job_id",
            sa.Uuid(),
            sa.ForeignKey("jobs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "contractor_id",
            sa.Uuid(),
            sa.ForeignKey("contractors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", offer_kind, nullable=False),
        sa.Column("counter_net_cents", sa.BigInteger(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("job_id", "contractor_id", name="uq_job_offers_job_contractor"),
    )
    op.create_index("ix_job_offers_job_id", "job_offers", ["job_id"])
    # At most one accepted offer per job
    op.create_index(
        "uq_job_offers_one_accept",
        "job_offers",
        ["job_id"],
        unique=True,
        postgresql_where=sa.text("kind = 'ACCEPT'"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "job_id",
            sa.Uuid(),
            sa.ForeignKey("jobs.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "client_id",
            sa.Uuid(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "contractor_id",
            sa.Uuid(),
            sa.ForeignKey("contractors.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=False, unique=True),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("fee_cents", sa.BigInteger(), nullable=False),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("refunded_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("stripe_transfer_id", sa.String(255), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payments_job_id", "payments", ["job_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor_profile_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column("meta_json", sa.JSON(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "reviews",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "job_id",
            sa.Uuid(),
            sa.ForeignKey("jobs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rater_profile_id", sa.Uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column(
            "ratee_contractor_id", sa.Uuid(), sa.ForeignKey("contractors.id"), nullable=False
        ),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
    )


def downgrade() -> None:
    for table in (
        "reviews",
        "audit_logs",
        "payments",
        "job_offers",
        "jobs",
        "cost_factors",
        "contractors",
        "profiles",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_name in ("payment_status", "user_role", "offer_kind", "job_status", "job_category"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
