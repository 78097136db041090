"""Create creator earnings tables

Revision ID: e001_earnings_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "e001_earnings_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Ledger
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("payer_id", sa.String(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("platform_fee", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("provider_confirmation_id", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider_confirmation_id"),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
        sa.CheckConstraint(
            "platform_fee >= 0 AND platform_fee <= amount",
            name="ck_transactions_platform_fee_bounds",
        ),
    )
    op.create_index("ix_transactions_payer_id", "transactions", ["payer_id"])
    op.create_index("ix_transactions_creator_id", "transactions", ["creator_id"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])

    op.create_table(
        "creator_fee_profiles",
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("elite_founding_locked", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("locked_fee_percentage", sa.Integer(), nullable=True),
        sa.Column("elite_granted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("elite_granted_by", sa.String(), nullable=True),
        sa.Column("total_earnings", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("creator_id"),
    )

    # Payouts
    op.create_table(
        "connected_accounts",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("stripe_account_id", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_account_id"),
    )
    op.create_index("ix_connected_accounts_creator_id", "connected_accounts", ["creator_id"], unique=True)

    op.create_table(
        "creator_payouts",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("connected_account_id", sa.String(255), nullable=False),
        sa.Column("stripe_transfer_id", sa.String(255), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("arrival_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_code", sa.String(100), nullable=True),
        sa.Column("failure_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_transfer_id"),
    )
    op.create_index("ix_creator_payouts_creator_id", "creator_payouts", ["creator_id"])

    # Failover queue
    op.create_table(
        "failover_records",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("operation_kind", sa.String(50), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("max_retries", sa.Integer(), server_default=sa.text("5"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_failover_records_operation_kind", "failover_records", ["operation_kind"])
    op.create_index("ix_failover_records_creator_id", "failover_records", ["creator_id"])
    op.create_index("ix_failover_records_created_at", "failover_records", ["created_at"])
    op.create_index(
        "idx_failover_records_retryable",
        "failover_records",
        ["created_at"],
        postgresql_where=sa.text("status = 'pending'"),
    )

    # Audit log
    op.create_table(
        "payment_audit_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("level", sa.String(10), nullable=False),
        sa.Column("operation", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("creator_id", sa.String(), nullable=True),
        sa.Column("transaction_id", sa.String(), nullable=True),
        sa.Column("payout_id", sa.String(), nullable=True),
        sa.Column("amount", sa.BigInteger(), nullable=True),
        sa.Column("error_details", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payment_audit_log_timestamp", "payment_audit_log", ["timestamp"])
    op.create_index("ix_payment_audit_log_level", "payment_audit_log", ["level"])
    op.create_index("ix_payment_audit_log_operation", "payment_audit_log", ["operation"])
    op.create_index("ix_payment_audit_log_creator_id", "payment_audit_log", ["creator_id"])
    op.create_index("ix_payment_audit_log_transaction_id", "payment_audit_log", ["transaction_id"])
    op.create_index("ix_payment_audit_log_payout_id", "payment_audit_log", ["payout_id"])

    # Webhooks
    op.create_table(
        "payment_webhook_events",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("provider_code", sa.String(50), nullable=False),
        sa.Column("provider_event_id", sa.String(255), nullable=False),
        sa.Column("provider_event_type", sa.String(100), nullable=False),
        sa.Column("status", sa.String(50), server_default="pending", nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("signature_verified", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider_code", "provider_event_id", name="uq_webhook_provider_event"),
    )

    # Scheduler leases
    op.create_table(
        "scheduled_task_leases",
        sa.Column("task_name", sa.String(100), nullable=False),
        sa.Column("holder", sa.String(100), nullable=True),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("task_name"),
    )


def downgrade() -> None:
    op.drop_table("scheduled_task_leases")
    op.drop_table("payment_webhook_events")
    op.drop_table("payment_audit_log")
    op.drop_table("failover_records")
    op.drop_table("creator_payouts")
    op.drop_table("connected_accounts")
    op.drop_table("creator_fee_profiles")
    op.drop_table("transactions")
