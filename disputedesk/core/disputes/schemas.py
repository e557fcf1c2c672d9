from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from disputedesk.common.enums import (
    ActorRole,
    DisputeAction,
    DisputeResolution,
    DisputeStatus,
    DisputeType,
    PenaltyType,
)


class Actor(BaseModel):
    """Caller identity as supplied by the auth provider."""

    id: uuid.UUID
    role: ActorRole

    @property
    def is_operator(self) -> bool:
        return self.role == ActorRole.OPERATOR


class DisputeSnapshot(BaseModel):
    """Immutable view of a stored dispute that the workflow engine reasons over."""

    id: uuid.UUID
    booking_id: uuid.UUID
    dispute_type: DisputeType
    priority: int
    status: DisputeStatus
    version: int
    filed_by_id: uuid.UUID
    filed_against_id: uuid.UUID
    assigned_to_id: uuid.UUID | None = None
    assigned_at: datetime | None = None
    resolution: DisputeResolution | None = None
    refund_percent: int | None = None
    resolved_at: datetime | None = None
    escalated_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True, "frozen": True}

    def is_party(self, actor_id: uuid.UUID) -> bool:
        return actor_id in (self.filed_by_id, self.filed_against_id)


# ---------- Commands ----------
# Field-level checks (empty notes, refund range, ...) are left to the engine so
# that an illegal state is reported before a malformed payload.


class AssignCommand(BaseModel):
    action: ClassVar[DisputeAction] = DisputeAction.ASSIGN
    operator_id: uuid.UUID


class StartReviewCommand(BaseModel):
    action: ClassVar[DisputeAction] = DisputeAction.START_REVIEW


class ResolveCommand(BaseModel):
    action: ClassVar[DisputeAction] = DisputeAction.RESOLVE
    resolution: DisputeResolution
    notes: str = ""
    refund_percent: int | float | None = None


class EscalateCommand(BaseModel):
    action: ClassVar[DisputeAction] = DisputeAction.ESCALATE
    reason: str = ""


class CloseCommand(BaseModel):
    action: ClassVar[DisputeAction] = DisputeAction.CLOSE


DisputeCommand = AssignCommand | StartReviewCommand | ResolveCommand | EscalateCommand | CloseCommand


# ---------- Effects ----------


class SettlementInstruction(BaseModel):
    dispute_id: uuid.UUID
    booking_id: uuid.UUID
    resolution_type: DisputeResolution
    refund_percent: int | None = None
    customer_refund_percent: int
    penalty: PenaltyType | None = None
    computed_at: datetime


class DisputeEvent(BaseModel):
    event: str
    recipient_ids: list[uuid.UUID] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


class Transition(BaseModel):
    """Result of applying a command: the field changes to commit and the effects to emit."""

    dispute_id: uuid.UUID
    action: DisputeAction
    from_status: DisputeStatus
    to_status: DisputeStatus
    expected_version: int
    changes: dict[str, Any]
    settlement: SettlementInstruction | None = None
    events: list[DisputeEvent] = Field(default_factory=list)


# ---------- Queries ----------


class DisputeFilter(BaseModel):
    status: list[DisputeStatus] | None = None
    dispute_type: list[DisputeType] | None = None
    assigned_to_id: uuid.UUID | None = None
    priority: int | None = Field(default=None, ge=1, le=5)
    from_date: datetime | None = None
    to_date: datetime | None = None
    party_id: uuid.UUID | None = None


class DisputeStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    resolutions_by_type: dict[str, int]
    avg_resolution_time_hours: float
