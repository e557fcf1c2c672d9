"""Resolution calculator and settlement-instruction outbox.

The calculator only guarantees that an instruction is internally consistent.
Money movement belongs to the escrow collaborator, which receives instructions
out-of-band and is responsible for idempotent execution.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from disputedesk.common.enums import DisputeResolution, PenaltyType, SettlementStatus
from disputedesk.common.exceptions import ExternalServiceError, NotFoundError, ValidationFailedError
from disputedesk.common.logging import get_logger
from disputedesk.core.disputes.schemas import SettlementInstruction
from disputedesk.db.models.settlement import SettlementInstructionRecord

logger = get_logger("disputes.settlement")

MIN_REFUND_PERCENT = 0
MAX_REFUND_PERCENT = 100

# Share of the escrowed amount returned to the customer, per resolution.
# PARTIAL_REFUND is absent: its share is the operator-supplied refund_percent.
CUSTOMER_REFUND_SHARE: dict[DisputeResolution, int] = {
    DisputeResolution.FULL_REFUND_CUSTOMER: 100,
    DisputeResolution.NO_REFUND: 0,
    DisputeResolution.SPLIT_FUNDS: 50,
    DisputeResolution.PROVIDER_PENALTY: 0,
    DisputeResolution.CUSTOMER_WARNING: 0,
    DisputeResolution.MUTUAL_CANCELLATION: 100,
    DisputeResolution.ESCALATED_TO_LEGAL: 0,
}

PENALTIES: dict[DisputeResolution, PenaltyType] = {
    DisputeResolution.PROVIDER_PENALTY: PenaltyType.PROVIDER_PENALTY,
    DisputeResolution.CUSTOMER_WARNING: PenaltyType.CUSTOMER_WARNING,
}


def validate_resolution(
    resolution: DisputeResolution, notes: str | None, refund_percent: int | float | None
) -> None:
    if not notes or not notes.strip():
        raise ValidationFailedError("Resolution notes are required")
    _validate_refund_percent(resolution, refund_percent)


def _validate_refund_percent(resolution: DisputeResolution, refund_percent: int | float | None) -> None:
    if resolution == DisputeResolution.PARTIAL_REFUND:
        if refund_percent is None:
            raise ValidationFailedError("refund_percent is required for a partial refund")
        if isinstance(refund_percent, bool) or not isinstance(refund_percent, int):
            raise ValidationFailedError("refund_percent must be an integer")
        if not MIN_REFUND_PERCENT <= refund_percent <= MAX_REFUND_PERCENT:
            raise ValidationFailedError(
                f"refund_percent must be between {MIN_REFUND_PERCENT} and {MAX_REFUND_PERCENT}"
            )
    elif refund_percent is not None:
        raise ValidationFailedError(
            f"refund_percent is only allowed for {DisputeResolution.PARTIAL_REFUND.value}, "
            f"not {resolution.value}"
        )


def build_settlement_instruction(
    *,
    dispute_id: uuid.UUID,
    booking_id: uuid.UUID,
    resolution: DisputeResolution,
    refund_percent: int | None,
    computed_at: datetime,
) -> SettlementInstruction:
    _validate_refund_percent(resolution, refund_percent)

    if resolution == DisputeResolution.PARTIAL_REFUND:
        customer_share = refund_percent
    else:
        customer_share = CUSTOMER_REFUND_SHARE[resolution]

    return SettlementInstruction(
        dispute_id=dispute_id,
        booking_id=booking_id,
        resolution_type=resolution,
        refund_percent=refund_percent,
        customer_refund_percent=customer_share,
        penalty=PENALTIES.get(resolution),
        computed_at=computed_at,
    )


def refund_amount_cents(instruction: SettlementInstruction, amount_cents: int) -> int:
    """Amount the customer gets back from an escrowed ``amount_cents``, rounded down."""
    return amount_cents * instruction.customer_refund_percent // 100


# ---------- Outbox ----------


async def record_instruction(
    db: AsyncSession, instruction: SettlementInstruction
) -> SettlementInstructionRecord:
    record = SettlementInstructionRecord(
        dispute_id=instruction.dispute_id,
        booking_id=instruction.booking_id,
        resolution_type=instruction.resolution_type.value,
        refund_percent=instruction.refund_percent,
        customer_refund_percent=instruction.customer_refund_percent,
        penalty=instruction.penalty.value if instruction.penalty else None,
        computed_at=instruction.computed_at,
        created_at=instruction.computed_at,
        updated_at=instruction.computed_at,
        delivery_status=SettlementStatus.PENDING.value,
        attempts=0,
    )
    db.add(record)
    await db.flush()
    return record


async def get_instruction_for_dispute(
    db: AsyncSession, dispute_id: uuid.UUID
) -> SettlementInstructionRecord | None:
    result = await db.execute(
        select(SettlementInstructionRecord).where(SettlementInstructionRecord.dispute_id == dispute_id)
    )
    return result.scalar_one_or_none()


def instruction_from_record(record: SettlementInstructionRecord) -> SettlementInstruction:
    return SettlementInstruction(
        dispute_id=record.dispute_id,
        booking_id=record.booking_id,
        resolution_type=record.resolution_type,
        refund_percent=record.refund_percent,
        customer_refund_percent=record.customer_refund_percent,
        penalty=record.penalty,
        computed_at=record.computed_at,
    )


def enqueue_delivery(record_id: uuid.UUID) -> None:
    """Hand the instruction to the delivery worker; failures leave the row PENDING."""
    try:
        from disputedesk.tasks.settlement_tasks import submit_settlement_instruction

        submit_settlement_instruction.delay(str(record_id))
    except Exception as e:
        logger.warning("Could not enqueue settlement instruction %s: %s", record_id, e)


async def deliver_instruction(
    record_id: uuid.UUID, db: AsyncSession, client=None
) -> SettlementInstructionRecord:
    """Submit one outbox row to the escrow collaborator.

    Raises ``ExternalServiceError`` on transport failure so the caller can
    retry; a downstream rejection is recorded and is not an error.
    """
    from disputedesk.integrations.escrow import EscrowClient, SettlementRejected

    result = await db.execute(
        select(SettlementInstructionRecord).where(SettlementInstructionRecord.id == record_id)
    )
    record = result.scalar_one_or_none()
    if not record:
        raise NotFoundError("Settlement instruction", str(record_id))

    if record.delivery_status != SettlementStatus.PENDING.value:
        logger.info(
            "Settlement instruction %s already %s, skipping", record_id, record.delivery_status
        )
        return record

    client = client or EscrowClient()
    record.attempts = (record.attempts or 0) + 1
    now = datetime.now(timezone.utc)

    try:
        response = await client.submit_settlement(
            instruction_from_record(record), idempotency_key=str(record.id)
        )
    except SettlementRejected as e:
        record.delivery_status = SettlementStatus.REJECTED.value
        record.last_error = str(e)
        record.updated_at = now
        await db.flush()
        logger.warning(
            "Settlement for dispute %s rejected by escrow: %s", record.dispute_id, e
        )
        return record
    except ExternalServiceError as e:
        record.last_error = e.detail
        record.updated_at = now
        await db.flush()
        raise

    record.delivery_status = SettlementStatus.SUBMITTED.value
    record.external_reference = response.get("id")
    record.submitted_at = now
    record.updated_at = now
    record.last_error = None
    await db.flush()

    logger.info(
        "Settlement for dispute %s submitted (%s, customer share %d%%)",
        record.dispute_id,
        record.resolution_type,
        record.customer_refund_percent,
    )
    return record
