"""Reward engine tables.

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


UUID = sa.dialects.postgresql.UUID(as_uuid=True)

ENUM_TYPES = (
    ("collectible_kind", ("location", "event", "code")),
    ("unlock_source", ("proximity", "code", "manual")),
    ("mission_verification_type", ("button", "automatic", "streak", "proof")),
    ("mission_submission_status", ("pending", "approved", "rejected")),
    ("transaction_entry_kind", ("redemption", "boost_activation")),
    ("quest_enrollment_status", ("in_progress", "completed")),
)


def _enum(name: str) -> sa.Enum:
    values = dict(ENUM_TYPES)[name]
    return sa.Enum(*values, name=name)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("multiplier", sa.Numeric(4, 2), nullable=True),
        sa.Column("multiplier_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "merchants",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("redemption_code", sa.String(length=16), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("balance >= 0", name="ck_merchants_balance_non_negative"),
    )
    op.create_index("ix_merchants_redemption_code", "merchants", ["redemption_code"], unique=True)

    op.create_table(
        "collectibles",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("kind", _enum("collectible_kind"), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("unlock_radius_m", sa.Float(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("merchant_id", UUID, sa.ForeignKey("merchants.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_collectibles_slug", "collectibles", ["slug"], unique=True)
    op.create_index("ix_collectibles_merchant_id", "collectibles", ["merchant_id"])

    op.create_table(
        "unlock_records",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("collectible_id", UUID, sa.ForeignKey("collectibles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source", _enum("unlock_source"), nullable=False),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "collectible_id", name="uq_unlock_records_user_collectible"),
    )
    op.create_index("ix_unlock_records_user_id", "unlock_records", ["user_id"])

    op.create_table(
        "mission_definitions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cadence", sa.String(length=16), nullable=False),
        sa.Column("verification_type", _enum("mission_verification_type"), nullable=False),
        sa.Column("reward_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak_source_code", sa.String(), nullable=True),
        sa.Column("streak_threshold", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_mission_definitions_code", "mission_definitions", ["code"], unique=True)

    op.create_table(
        "mission_submissions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "mission_id",
            UUID,
            sa.ForeignKey("mission_definitions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_key", sa.String(length=16), nullable=False),
        sa.Column("status", _enum("mission_submission_status"), nullable=False),
        sa.Column("credited_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_mission_submissions_active_period",
        "mission_submissions",
        ["user_id", "mission_id", "period_key"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'approved')"),
        sqlite_where=sa.text("status IN ('pending', 'approved')"),
    )
    op.create_index("ix_mission_submissions_user_mission", "mission_submissions", ["user_id", "mission_id"])

    op.create_table(
        "transaction_logs",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("merchant_id", UUID, sa.ForeignKey("merchants.id"), nullable=True),
        sa.Column("entry_kind", _enum("transaction_entry_kind"), nullable=False),
        sa.Column("base_points", sa.Integer(), nullable=False),
        sa.Column("multiplier", sa.Numeric(4, 2), nullable=False),
        sa.Column("effective_points", sa.Integer(), nullable=False),
        sa.Column("note", sa.String(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_transaction_logs_user_merchant_occurred",
        "transaction_logs",
        ["user_id", "merchant_id", "occurred_at"],
    )

    op.create_table(
        "quest_sets",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("reward_collectible_id", UUID, sa.ForeignKey("collectibles.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_quest_sets_slug", "quest_sets", ["slug"], unique=True)

    op.create_table(
        "quest_steps",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("quest_set_id", UUID, sa.ForeignKey("quest_sets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("collectible_id", UUID, sa.ForeignKey("collectibles.id"), nullable=True),
        sa.Column("merchant_id", UUID, sa.ForeignKey("merchants.id"), nullable=True),
        sa.UniqueConstraint("quest_set_id", "step_order", name="uq_quest_steps_set_order"),
        sa.CheckConstraint(
            "(collectible_id IS NOT NULL AND merchant_id IS NULL) "
            "OR (collectible_id IS NULL AND merchant_id IS NOT NULL)",
            name="ck_quest_steps_single_reference",
        ),
    )

    op.create_table(
        "quest_step_completions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("step_id", UUID, sa.ForeignKey("quest_steps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "step_id", name="uq_quest_step_completions_user_step"),
    )
    op.create_index("ix_quest_step_completions_user_id", "quest_step_completions", ["user_id"])

    op.create_table(
        "quest_enrollments",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quest_set_id", UUID, sa.ForeignKey("quest_sets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", _enum("quest_enrollment_status"), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "quest_set_id", name="uq_quest_enrollments_user_set"),
    )


def downgrade() -> None:
    op.drop_table("quest_enrollments")
    op.drop_index("ix_quest_step_completions_user_id", table_name="quest_step_completions")
    op.drop_table("quest_step_completions")
    op.drop_table("quest_steps")
    op.drop_index("ix_quest_sets_slug", table_name="quest_sets")
    op.drop_table("quest_sets")
    op.drop_index("ix_transaction_logs_user_merchant_occurred", table_name="transaction_logs")
    op.drop_table("transaction_logs")
    op.drop_index("ix_mission_submissions_user_mission", table_name="mission_submissions")
    op.drop_index("uq_mission_submissions_active_period", table_name="mission_submissions")
    op.drop_table("mission_submissions")
    op.drop_index("ix_mission_definitions_code", table_name="mission_definitions")
    op.drop_table("mission_definitions")
    op.drop_index("ix_unlock_records_user_id", table_name="unlock_records")
    op.drop_table("unlock_records")
    op.drop_index("ix_collectibles_merchant_id", table_name="collectibles")
    op.drop_index("ix_collectibles_slug", table_name="collectibles")
    op.drop_table("collectibles")
    op.drop_index("ix_merchants_redemption_code", table_name="merchants")
    op.drop_table("merchants")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for name, _ in ENUM_TYPES:
        _enum(name).drop(bind, checkfirst=True)
