"""Initial schema for payments, escrow and reputation."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

from kindkart.services.catalogue import BADGE_DEFINITIONS

revision = "20261016_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None

_ENUM_NAMES = (
    "membership_status",
    "help_request_status",
    "transaction_status",
    "escrow_status",
    "action_category",
    "badge_category",
    "badge_condition_type",
    "achievement_category",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:  # noqa: D401
    """Create tables, constraints and indexes, and seed the badge catalogue."""

    membership_status = sa.Enum("pending", "approved", "rejected", name="membership_status")
    help_request_status = sa.Enum(
        "pending", "accepted", "in_progress", "completed", "cancelled", name="help_request_status"
    )
    transaction_status = sa.Enum(
        "pending", "completed", "failed", "cancelled", "refunded", name="transaction_status"
    )
    escrow_status = sa.Enum("held", "released", "disputed", name="escrow_status")
    action_category = sa.Enum("helper", "requester", "community", "other", name="action_category")
    badge_category = sa.Enum("helper", "requester", "community", "special", name="badge_category")
    badge_condition_type = sa.Enum(
        "completed_helps",
        "completed_requests",
        "communities_created",
        "community_rank",
        "fast_responses",
        "on_time_payments",
        "completion_rate",
        name="badge_condition_type",
    )
    achievement_category = sa.Enum("milestone", "streak", "quality", "community", name="achievement_category")

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("profile_photo", sa.String(length=512), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("phone", name="uq_users_phone"),
    )

    op.create_table(
        "communities",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("invite_code", sa.String(length=32), nullable=False),
        sa.Column("creator_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("invite_code", name="uq_communities_invite_code"),
    )
    op.create_index("ix_communities_creator_id", "communities", ["creator_id"])

    op.create_table(
        "community_members",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "community_id",
            sa.String(length=36),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", membership_status, nullable=False, server_default="pending"),
        *_timestamps(),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_members_community_user"),
    )
    op.create_index("ix_community_members_user_id", "community_members", ["user_id"])

    op.create_table(
        "help_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "community_id",
            sa.String(length=36),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "requester_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("helper_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", help_request_status, nullable=False, server_default="pending"),
        sa.Column("attachments", sa.JSON(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_help_requests_community_id", "help_requests", ["community_id"])
    op.create_index("ix_help_requests_requester_id", "help_requests", ["requester_id"])
    op.create_index("ix_help_requests_helper_id_status", "help_requests", ["helper_id", "status"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "request_id",
            sa.String(length=36),
            sa.ForeignKey("help_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("payer_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payee_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="INR"),
        sa.Column("status", transaction_status, nullable=False, server_default="pending"),
        sa.Column("gateway_reference", sa.String(length=128), nullable=True),
        sa.Column("open_slot", sa.String(length=80), nullable=True),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("open_slot", name="uq_transactions_open_slot"),
    )
    op.create_index("ix_transactions_request_id", "transactions", ["request_id"])
    op.create_index("ix_transactions_payer_id", "transactions", ["payer_id"])
    op.create_index("ix_transactions_payee_id", "transactions", ["payee_id"])
    op.create_index("ix_transactions_gateway_reference", "transactions", ["gateway_reference"])

    op.create_table(
        "escrow_holds",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.String(length=36),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("release_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", escrow_status, nullable=False, server_default="held"),
        sa.Column("verification_proof", sa.Text(), nullable=True),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("transaction_id", name="uq_escrow_holds_transaction_id"),
    )

    op.create_table(
        "reputations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("total_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("community_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("helper_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("requester_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_reputations_user_id"),
    )

    op.create_table(
        "credit_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action_key", sa.String(length=64), nullable=False),
        sa.Column("category", action_category, nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("context", sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_credit_events_user_created", "credit_events", ["user_id", "created_at"])

    badges = op.create_table(
        "badges",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("icon", sa.String(length=16), nullable=False, server_default=""),
        sa.Column("color", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("category", badge_category, nullable=False),
        sa.Column("condition_type", badge_condition_type, nullable=False),
        sa.Column("threshold", sa.Numeric(10, 4), nullable=False),
        *_timestamps(),
    )
    op.bulk_insert(
        badges,
        [
            {
                "id": definition.id,
                "name": definition.name,
                "description": definition.description,
                "icon": definition.icon,
                "color": definition.color,
                "category": definition.category.value,
                "condition_type": definition.condition_type.value,
                "threshold": definition.threshold,
            }
            for definition in BADGE_DEFINITIONS
        ],
    )

    op.create_table(
        "badge_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("badge_id", sa.String(length=64), sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("context", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_badge_assignments_user_badge"),
    )
    op.create_index("ix_badge_assignments_user_id", "badge_assignments", ["user_id"])

    op.create_table(
        "achievements",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("icon", sa.String(length=16), nullable=False, server_default=""),
        sa.Column("category", achievement_category, nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_progress", sa.Integer(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "key", name="uq_achievements_user_key"),
    )
    op.create_index("ix_achievements_user_id", "achievements", ["user_id"])


def downgrade() -> None:  # noqa: D401
    """Drop all tables created in upgrade."""

    op.drop_index("ix_achievements_user_id", table_name="achievements")
    op.drop_table("achievements")
    op.drop_index("ix_badge_assignments_user_id", table_name="badge_assignments")
    op.drop_table("badge_assignments")
    op.drop_table("badges")
    op.drop_index("ix_credit_events_user_created", table_name="credit_events")
    op.drop_table("credit_events")
    op.drop_table("reputations")
    op.drop_table("escrow_holds")
    for index in (
        "ix_transactions_gateway_reference",
        "ix_transactions_payee_id",
        "ix_transactions_payer_id",
        "ix_transactions_request_id",
    ):
        op.drop_index(index, table_name="transactions")
    op.drop_table("transactions")
    for index in (
        "ix_help_requests_helper_id_status",
        "ix_help_requests_requester_id",
        "ix_help_requests_community_id",
    ):
        op.drop_index(index, table_name="help_requests")
    op.drop_table("help_requests")
    op.drop_index("ix_community_members_user_id", table_name="community_members")
    op.drop_table("community_members")
    op.drop_index("ix_communities_creator_id", table_name="communities")
    op.drop_table("communities")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in _ENUM_NAMES:
            op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))
