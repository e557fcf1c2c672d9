import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from disputedesk.common.enums import DisputeResolution, PenaltyType, SettlementStatus
from disputedesk.db.base import BaseModel


class SettlementInstructionRecord(BaseModel):
    """Outbox row for a settlement instruction handed to the escrow collaborator."""

    __tablename__ = "settlement_instructions"

    dispute_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("disputes.id"), nullable=False, unique=True
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    resolution_type: Mapped[DisputeResolution] = mapped_column(String(40), nullable=False)
    refund_percent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    customer_refund_percent: Mapped[int] = mapped_column(Integer, nullable=False)
    penalty: Mapped[PenaltyType | None] = mapped_column(String(30), nullable=True)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    delivery_status: Mapped[SettlementStatus] = mapped_column(
        String(20), nullable=False, default=SettlementStatus.PENDING.value, index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
