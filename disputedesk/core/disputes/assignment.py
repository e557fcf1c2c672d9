"""Binding a dispute to exactly one handling operator.

Assignment goes through the same compare-and-set as every other transition:
when two operators race to claim an OPEN dispute, the first write bumps the
version and the second one fails with ``ConcurrentModificationError``.
"""

from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from disputedesk.common.enums import DisputeStatus
from disputedesk.common.exceptions import UnauthorizedError
from disputedesk.common.logging import get_logger
from disputedesk.core.disputes.schemas import Actor, AssignCommand
from disputedesk.core.disputes.service import DisputeService
from disputedesk.db.models.dispute import Dispute

logger = get_logger("disputes.assignment")

WORKLOAD_STATUSES = (DisputeStatus.ASSIGNED, DisputeStatus.UNDER_REVIEW)


class AssignmentService:
    def __init__(self, disputes: DisputeService | None = None):
        self.disputes = disputes or DisputeService()

    async def assign(
        self,
        dispute_id: uuid.UUID,
        operator_id: uuid.UUID,
        actor: Actor,
        db: AsyncSession,
        expected_version: int | None = None,
    ) -> Dispute:
        dispute = await self.disputes.execute(
            dispute_id, AssignCommand(operator_id=operator_id), actor, db, expected_version
        )
        logger.info("Dispute %s assigned to operator %s by %s", dispute_id, operator_id, actor.id)
        return dispute

    async def workload(self, actor: Actor, db: AsyncSession) -> dict[str, int]:
        """Open case count per operator (ASSIGNED or UNDER_REVIEW)."""
        if not actor.is_operator:
            raise UnauthorizedError("Only operators may view assignment workload")
        result = await db.execute(
            select(Dispute.assigned_to_id, func.count())
            .where(
                Dispute.assigned_to_id.is_not(None),
                Dispute.status.in_([s.value for s in WORKLOAD_STATUSES]),
            )
            .group_by(Dispute.assigned_to_id)
        )
        return {str(operator_id): count for operator_id, count in result.all()}
