"""initial walletdrop schema

Revision ID: 0001_walletdrop
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_walletdrop"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "wallets",
        sa.Column("wallet_id", sa.String(), nullable=False),
        sa.Column("external_user_id", sa.String(), nullable=False),
        sa.Column("handle", sa.String(), nullable=False),
        sa.Column("secret_encrypted", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("public_key", sa.String(), nullable=False),
        sa.Column("account_alias", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("delivery_state", sa.String(), nullable=False),
        sa.Column("state_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("claim_link_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("first_message_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("first_message_failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("second_message_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("second_message_failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claim_accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_funded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("current_balance", sa.Numeric(20, 8), nullable=False, server_default="0"),
        sa.Column("last_balance_check", sa.DateTime(timezone=True), nullable=True),
        sa.Column("airdrop_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("airdrop_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pre_event_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("post_event_confirmation_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("wallet_id"),
    )
    op.create_index("ix_wallets_external_user_id", "wallets", ["external_user_id"], unique=True)
    op.create_index("ix_wallets_account_alias", "wallets", ["account_alias"])
    op.create_index("ix_wallets_account_id", "wallets", ["account_id"])
    op.create_index("ix_wallets_created_at", "wallets", ["created_at"])
    op.create_index("ix_wallets_delivery_state", "wallets", ["delivery_state"])
    op.create_index("ix_wallets_is_funded", "wallets", ["is_funded"])
    op.create_index("ix_wallets_airdrop_sent", "wallets", ["airdrop_sent"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("external_user_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_external_user_id", "audit_log", ["external_user_id"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])

    op.create_table(
        "processed_events",
        sa.Column("event_id", sa.String(length=50), nullable=False),
        sa.Column("author_id", sa.String(length=50), nullable=False),
        sa.Column("author_handle", sa.String(), nullable=False),
        sa.Column("raw_text", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("outcome", sa.String(length=50), nullable=False),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index("ix_processed_events_author_id", "processed_events", ["author_id"])
    op.create_index("ix_processed_events_processed_at", "processed_events", ["processed_at"])

    op.create_table(
        "rate_limits",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rate_limits_actor_action_created", "rate_limits", ["actor_id", "action", "created_at"])
    op.create_index("ix_rate_limits_action_created", "rate_limits", ["action", "created_at"])

    op.create_table(
        "waitlist",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("external_user_id", sa.String(length=50), nullable=False),
        sa.Column("handle", sa.String(), nullable=False),
        sa.Column("source_event_id", sa.String(length=50), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("notified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_waitlist_external_user_id", "waitlist", ["external_user_id"], unique=True)
    op.create_index("ix_waitlist_joined_at", "waitlist", ["joined_at"])
    op.create_index("ix_waitlist_notified", "waitlist", ["notified"])


def downgrade() -> None:
    op.drop_index("ix_waitlist_notified", table_name="waitlist")
    op.drop_index("ix_waitlist_joined_at", table_name="waitlist")
    op.drop_index("ix_waitlist_external_user_id", table_name="waitlist")
    op.drop_table("waitlist")
    op.drop_index("ix_rate_limits_action_created", table_name="rate_limits")
    op.drop_index("ix_rate_limits_actor_action_created", table_name="rate_limits")
    op.drop_table("rate_limits")
    op.drop_index("ix_processed_events_processed_at", table_name="processed_events")
    op.drop_index("ix_processed_events_author_id", table_name="processed_events")
    op.drop_table("processed_events")
    op.drop_index("ix_audit_log_created_at", table_name="audit_log")
    op.drop_index("ix_audit_log_external_user_id", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_index("ix_wallets_airdrop_sent", table_name="wallets")
    op.drop_index("ix_wallets_is_funded", table_name="wallets")
    op.drop_index("ix_wallets_delivery_state", table_name="wallets")
    op.drop_index("ix_wallets_created_at", table_name="wallets")
    op.drop_index("ix_wallets_account_id", table_name="wallets")
    op.drop_index("ix_wallets_account_alias", table_name="wallets")
    op.drop_index("ix_wallets_external_user_id", table_name="wallets")
    op.drop_table("wallets")
