import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from disputedesk.api.deps import get_current_actor, get_db, require_role
from disputedesk.common.enums import ActorRole, DisputeResolution, DisputeStatus, DisputeType
from disputedesk.common.pagination import PageInfo, PaginatedResponse, PaginationParams, paginate
from disputedesk.core.disputes import store
from disputedesk.core.disputes.assignment import AssignmentService
from disputedesk.core.disputes.messaging import MessagingService, project_messages
from disputedesk.core.disputes.schemas import Actor, DisputeFilter, DisputeStats
from disputedesk.core.disputes.service import DisputeService
from disputedesk.core.disputes.settlement import (
    get_instruction_for_dispute,
    instruction_from_record,
    refund_amount_cents,
)
from disputedesk.core.disputes.stats import StatsAggregator
from disputedesk.integrations.bookings import BookingClient

router = APIRouter(prefix="/disputes", tags=["Disputes"])

dispute_service = DisputeService()
assignment_service = AssignmentService(dispute_service)
messaging_service = MessagingService()
stats_aggregator = StatsAggregator()


# ---------- Schemas ----------


class DisputeCreateRequest(BaseModel):
    booking_id: uuid.UUID
    filed_against_id: uuid.UUID
    dispute_type: DisputeType
    priority: int
    title: str
    description: str
    evidence_urls: list[str] | None = None
    filed_by_id: uuid.UUID | None = None


class TransitionRequest(BaseModel):
    expected_version: int | None = None


class AssignRequest(TransitionRequest):
    operator_id: uuid.UUID


class ResolveRequest(TransitionRequest):
    resolution: DisputeResolution
    notes: str = ""
    refund_percent: int | float | None = None


class EscalateRequest(TransitionRequest):
    reason: str = ""


class MessageCreateRequest(TransitionRequest):
    content: str = ""
    is_internal: bool = False
    attachment_urls: list[str] | None = None


class DisputeResponse(BaseModel):
    id: uuid.UUID
    booking_id: uuid.UUID
    dispute_type: str
    priority: int
    title: str
    description: str
    evidence_urls: list[str] | None
    filed_by_id: uuid.UUID
    filed_against_id: uuid.UUID
    status: str
    version: int
    assigned_to_id: uuid.UUID | None
    assigned_at: datetime | None
    resolution: str | None
    resolution_notes: str | None
    refund_percent: int | None
    resolved_by_id: uuid.UUID | None
    resolved_at: datetime | None
    escalation_reason: str | None
    escalated_by_id: uuid.UUID | None
    escalated_at: datetime | None
    closed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    id: uuid.UUID
    dispute_id: uuid.UUID
    position: int
    author_id: uuid.UUID
    content: str
    is_internal: bool
    attachment_urls: list[str] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingContext(BaseModel):
    status: str | None
    scheduled_time: str | None
    amount_cents: int | None


class SettlementResponse(BaseModel):
    resolution_type: str
    refund_percent: int | None
    customer_refund_percent: int
    refund_amount_cents: int | None = None
    penalty: str | None
    computed_at: datetime
    delivery_status: str
    attempts: int
    external_reference: str | None


class DisputeDetailResponse(DisputeResponse):
    messages: list[MessageResponse] = []
    booking: BookingContext | None = None
    settlement: SettlementResponse | None = None


class AuditEntryResponse(BaseModel):
    action: str
    actor_id: uuid.UUID | None
    from_status: str | None
    to_status: str | None
    version: int
    diff: dict[str, Any]
    created_at: datetime


class WorkloadResponse(BaseModel):
    operators: dict[str, int]


# ---------- Filters ----------


def dispute_filter_params(
    status: list[DisputeStatus] | None = Query(None),
    dispute_type: list[DisputeType] | None = Query(None),
    assigned_to: uuid.UUID | None = Query(None),
    priority: int | None = Query(None, ge=1, le=5),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
) -> DisputeFilter:
    return DisputeFilter(
        status=status,
        dispute_type=dispute_type,
        assigned_to_id=assigned_to,
        priority=priority,
        from_date=from_date,
        to_date=to_date,
    )


def _scope_to_actor(dispute_filter: DisputeFilter, actor: Actor) -> DisputeFilter:
    if actor.is_operator:
        return dispute_filter
    return dispute_filter.model_copy(update={"party_id": actor.id})


# ---------- Endpoints ----------


@router.post("", response_model=DisputeResponse, status_code=201)
async def file_dispute(
    body: DisputeCreateRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await dispute_service.file_dispute(
        actor,
        db,
        booking_id=body.booking_id,
        filed_against_id=body.filed_against_id,
        dispute_type=body.dispute_type,
        priority=body.priority,
        title=body.title,
        description=body.description,
        evidence_urls=body.evidence_urls,
        filed_by_id=body.filed_by_id,
    )
    return DisputeResponse.model_validate(dispute)


@router.get("", response_model=PaginatedResponse[DisputeResponse])
async def list_disputes(
    dispute_filter: DisputeFilter = Depends(dispute_filter_params),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    query = store.list_query(_scope_to_actor(dispute_filter, actor))
    items, total = await paginate(db, query, pagination)
    return PaginatedResponse[DisputeResponse](
        items=[DisputeResponse.model_validate(d) for d in items],
        pagination=PageInfo.build(pagination, total),
    )


@router.get("/stats", response_model=DisputeStats)
async def get_stats(
    dispute_filter: DisputeFilter = Depends(dispute_filter_params),
    actor: Actor = Depends(require_role(ActorRole.OPERATOR)),
    db: AsyncSession = Depends(get_db),
):
    return await stats_aggregator.compute(db, dispute_filter)


@router.get("/workload", response_model=WorkloadResponse)
async def get_workload(
    actor: Actor = Depends(require_role(ActorRole.OPERATOR)),
    db: AsyncSession = Depends(get_db),
):
    return WorkloadResponse(operators=await assignment_service.workload(actor, db))


@router.get("/{dispute_id}", response_model=DisputeDetailResponse)
async def get_dispute(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await dispute_service.get_for_actor(dispute_id, actor, db)
    messages = await store.list_messages(db, dispute_id, include_internal=True)

    booking = await BookingClient().get_booking(dispute.booking_id)
    record = await get_instruction_for_dispute(db, dispute_id)

    response = DisputeDetailResponse.model_validate(dispute)
    response.messages = [MessageResponse.model_validate(m) for m in project_messages(messages, actor)]
    if booking:
        response.booking = BookingContext(
            status=booking.get("status"),
            scheduled_time=booking.get("scheduled_time"),
            amount_cents=booking.get("amount_cents"),
        )
    if record:
        amount = response.booking.amount_cents if response.booking else None
        response.settlement = SettlementResponse(
            resolution_type=record.resolution_type,
            refund_percent=record.refund_percent,
            customer_refund_percent=record.customer_refund_percent,
            refund_amount_cents=(
                refund_amount_cents(instruction_from_record(record), amount) if amount is not None else None
            ),
            penalty=record.penalty,
            computed_at=record.computed_at,
            delivery_status=record.delivery_status,
            attempts=record.attempts,
            external_reference=record.external_reference,
        )
    return response


@router.post("/{dispute_id}/assign", response_model=DisputeResponse)
async def assign_dispute(
    dispute_id: uuid.UUID,
    body: AssignRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await assignment_service.assign(
        dispute_id, body.operator_id, actor, db, expected_version=body.expected_version
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/review", response_model=DisputeResponse)
async def start_review(
    dispute_id: uuid.UUID,
    body: TransitionRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await dispute_service.start_review(
        dispute_id, actor, db, expected_version=body.expected_version if body else None
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse)
async def resolve_dispute(
    dispute_id: uuid.UUID,
    body: ResolveRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await dispute_service.resolve(
        dispute_id,
        actor,
        db,
        resolution=body.resolution,
        notes=body.notes,
        refund_percent=body.refund_percent,
        expected_version=body.expected_version,
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/escalate", response_model=DisputeResponse)
async def escalate_dispute(
    dispute_id: uuid.UUID,
    body: EscalateRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await dispute_service.escalate(
        dispute_id, actor, db, reason=body.reason, expected_version=body.expected_version
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/close", response_model=DisputeResponse)
async def close_dispute(
    dispute_id: uuid.UUID,
    body: TransitionRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    dispute = await dispute_service.close(
        dispute_id, actor, db, expected_version=body.expected_version if body else None
    )
    return DisputeResponse.model_validate(dispute)


@router.post("/{dispute_id}/messages", response_model=MessageResponse, status_code=201)
async def post_message(
    dispute_id: uuid.UUID,
    body: MessageCreateRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    message = await messaging_service.post_message(
        dispute_id,
        actor,
        db,
        content=body.content,
        is_internal=body.is_internal,
        attachment_urls=body.attachment_urls,
        expected_version=body.expected_version,
    )
    return MessageResponse.model_validate(message)


@router.get("/{dispute_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    dispute_id: uuid.UUID,
    include_internal: bool = Query(True),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    messages = await messaging_service.list_messages(dispute_id, actor, db, include_internal=include_internal)
    return [MessageResponse.model_validate(m) for m in messages]


@router.get("/{dispute_id}/history", response_model=list[AuditEntryResponse])
async def get_history(
    dispute_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    entries = await dispute_service.history(dispute_id, actor, db)
    return [AuditEntryResponse(**e) for e in entries]
