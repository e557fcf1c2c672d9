"""Initial schema - disputes, message threads, audit log, settlement outbox

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Disputes
    op.create_table(
        "disputes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("dispute_type", sa.String(40), nullable=False),
        sa.Column("priority", sa.Integer, nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("evidence_urls", postgresql.JSONB, nullable=True),
        sa.Column("filed_by_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("filed_against_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="OPEN", index=True),
        sa.Column("version", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("assigned_to_id", postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution", sa.String(40), nullable=True),
        sa.Column("resolution_notes", sa.Text, nullable=True),
        sa.Column("refund_percent", sa.Integer, nullable=True),
        sa.Column("resolved_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalation_reason", sa.Text, nullable=True),
        sa.Column("escalated_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("priority BETWEEN 1 AND 5", name="ck_disputes_priority"),
        sa.CheckConstraint(
            "refund_percent IS NULL OR refund_percent BETWEEN 0 AND 100",
            name="ck_disputes_refund_percent",
        ),
    )
    op.create_index(
        "uq_disputes_active_booking",
        "disputes",
        ["booking_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('OPEN', 'ASSIGNED', 'UNDER_REVIEW', 'ESCALATED')"),
    )

    # Message threads
    op.create_table(
        "dispute_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "dispute_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("disputes.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("is_internal", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("attachment_urls", postgresql.JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("dispute_id", "position", name="uq_dispute_messages_position"),
    )

    # Audit log
    op.create_table(
        "audit_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_type", sa.String(100), nullable=False, index=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("diff", postgresql.JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    # Settlement outbox
    op.create_table(
        "settlement_instructions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "dispute_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("disputes.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("resolution_type", sa.String(40), nullable=False),
        sa.Column("refund_percent", sa.Integer, nullable=True),
        sa.Column("customer_refund_percent", sa.Integer, nullable=False),
        sa.Column("penalty", sa.String(30), nullable=True),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "delivery_status", sa.String(20), nullable=False, server_default="PENDING", index=True
        ),
        sa.Column("attempts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("external_reference", sa.String(255), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("settlement_instructions")
    op.drop_table("audit_log")
    op.drop_table("dispute_messages")
    op.drop_index("uq_disputes_active_booking", table_name="disputes")
    op.drop_table("disputes")
