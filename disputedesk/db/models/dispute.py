import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from disputedesk.common.enums import ACTIVE_DISPUTE_STATUSES, DisputeResolution, DisputeStatus, DisputeType
from disputedesk.db.base import Base, BaseModel, UUIDPrimaryKeyMixin, VersionedMixin

_ACTIVE_STATUS_CLAUSE = text(
    "status IN (" + ", ".join(f"'{s.value}'" for s in ACTIVE_DISPUTE_STATUSES) + ")"
)


class Dispute(BaseModel, VersionedMixin):
    __tablename__ = "disputes"
    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 5", name="priority"),
        CheckConstraint("refund_percent IS NULL OR refund_percent BETWEEN 0 AND 100", name="refund_percent"),
        # At most one active dispute per booking
        Index(
            "uq_disputes_active_booking",
            "booking_id",
            unique=True,
            postgresql_where=_ACTIVE_STATUS_CLAUSE,
            sqlite_where=_ACTIVE_STATUS_CLAUSE,
        ),
    )

    booking_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    dispute_type: Mapped[DisputeType] = mapped_column(String(40), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_urls: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)

    filed_by_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    filed_against_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)

    status: Mapped[DisputeStatus] = mapped_column(
        String(20), nullable=False, default=DisputeStatus.OPEN.value, index=True
    )
    assigned_to_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True
    )
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    resolution: Mapped[DisputeResolution | None] = mapped_column(String(40), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolved_by_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    escalation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    escalated_by_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class DisputeMessage(Base, UUIDPrimaryKeyMixin):
    """Append-only thread entry. Rows are never updated or deleted."""

    __tablename__ = "dispute_messages"
    __table_args__ = (UniqueConstraint("dispute_id", "position", name="uq_dispute_messages_position"),)

    dispute_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("disputes.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    author_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attachment_urls: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
