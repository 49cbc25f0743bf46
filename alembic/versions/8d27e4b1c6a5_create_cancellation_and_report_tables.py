"""create cancellation and report tables

Revision ID: 8d27e4b1c6a5
Revises: 3f1a9c2e7b40
Create Date: 2026-09-28 10:47:03.218790

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '8d27e4b1c6a5'
down_revision: Union[str, Sequence[str], None] = '3f1a9c2e7b40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ACTIVE_CANCELLATION = "status IN ('pending', 'consented')"


def upgrade():
    op.create_table(
        "cancellation_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), nullable=False),
        sa.Column("initiator_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("other_party_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("refund_type", sa.String(), nullable=False, server_default="full"),
        sa.Column("refund_amount", sa.Integer(), nullable=True),
        sa.Column("previous_status", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("other_confirmed", sa.Boolean(), nullable=True),
        sa.Column("other_response_date", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_cancellation_requests_transaction_id", "cancellation_requests", ["transaction_id"])
    op.create_index("ix_cancellation_requests_status", "cancellation_requests", ["status"])
    op.create_index("ix_cancellation_requests_expires_at", "cancellation_requests", ["expires_at"])
    op.create_index(
        "uq_cancellation_requests_active_transaction",
        "cancellation_requests",
        ["transaction_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_CANCELLATION),
        sqlite_where=sa.text(ACTIVE_CANCELLATION),
    )

    op.create_table(
        "cancellation_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "cancellation_id",
            sa.Integer(),
            sa.ForeignKey("cancellation_requests.id"),
            nullable=False,
        ),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("actor_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_cancellation_history_cancellation_id", "cancellation_history", ["cancellation_id"])

    op.create_table(
        "chat_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("chat_id", sa.Integer(), sa.ForeignKey("chats.id"), nullable=False),
        sa.Column("reporter_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reported_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("message_id", sa.Integer(), sa.ForeignKey("chat_messages.id"), nullable=True),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("signal_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("auto_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("resolution_reason", sa.String(), nullable=True),
        sa.Column("penalty_applied", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("appeal_status", sa.String(), nullable=False, server_default="none"),
        sa.Column("appeal_reason", sa.String(), nullable=True),
        sa.Column("appeal_date", sa.DateTime(), nullable=True),
        sa.Column("appeal_outcome", sa.String(), nullable=True),
        sa.Column("created", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_chat_reports_chat_id", "chat_reports", ["chat_id"])
    op.create_index("ix_chat_reports_reporter_id", "chat_reports", ["reporter_id"])
    op.create_index("ix_chat_reports_reported_id", "chat_reports", ["reported_id"])
    op.create_index("ix_chat_reports_created", "chat_reports", ["created"])

    op.create_table(
        "report_signals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("report_id", sa.Integer(), sa.ForeignKey("chat_reports.id"), nullable=False),
        sa.Column("signal_type", sa.String(), nullable=False),
        sa.Column("signal_weight", sa.Float(), nullable=False),
        sa.Column("signal_data", sa.JSON(), nullable=True),
        sa.Column("created", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_report_signals_report_id", "report_signals", ["report_id"])

    op.create_table(
        "report_audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("report_id", sa.Integer(), sa.ForeignKey("chat_reports.id"), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("actor_type", sa.String(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("old_status", sa.String(), nullable=True),
        sa.Column("new_status", sa.String(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_report_audit_log_report_id", "report_audit_log", ["report_id"])

    op.create_table(
        "reporter_trust_scores",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("trust_score", sa.Float(), nullable=False, server_default="50"),
        sa.Column("total_reports", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("valid_reports", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("false_reports", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_flagged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cooldown_until", sa.DateTime(), nullable=True),
        sa.Column("last_report_date", sa.DateTime(), nullable=True),
    )


def downgrade():
    op.drop_table("reporter_trust_scores")

    op.drop_index("ix_report_audit_log_report_id", table_name="report_audit_log")
    op.drop_table("report_audit_log")

    op.drop_index("ix_report_signals_report_id", table_name="report_signals")
    op.drop_table("report_signals")

    op.drop_index("ix_chat_reports_created", table_name="chat_reports")
    op.drop_index("ix_chat_reports_reported_id", table_name="chat_reports")
    op.drop_index("ix_chat_reports_reporter_id", table_name="chat_reports")
    op.drop_index("ix_chat_reports_chat_id", table_name="chat_reports")
    op.drop_table("chat_reports")

    op.drop_index("ix_cancellation_history_cancellation_id", table_name="cancellation_history")
    op.drop_table("cancellation_history")

    op.drop_index("uq_cancellation_requests_active_transaction", table_name="cancellation_requests")
    op.drop_index("ix_cancellation_requests_expires_at", table_name="cancellation_requests")
    op.drop_index("ix_cancellation_requests_status", table_name="cancellation_requests")
    op.drop_index("ix_cancellation_requests_transaction_id", table_name="cancellation_requests")
    op.drop_table("cancellation_requests")
