"""Command orchestration: load → validate in the workflow engine → compare-and-set → effects."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from disputedesk.common.enums import DisputeResolution, DisputeType
from disputedesk.common.events import emit, on_commit
from disputedesk.common.exceptions import (
    ConcurrentModificationError,
    DisputeDeskException,
    UnauthorizedError,
    ValidationFailedError,
)
from disputedesk.common.logging import get_logger
from disputedesk.core.disputes import store
from disputedesk.core.disputes.schemas import (
    Actor,
    CloseCommand,
    DisputeCommand,
    DisputeSnapshot,
    EscalateCommand,
    ResolveCommand,
    StartReviewCommand,
    Transition,
)
from disputedesk.core.disputes.settlement import enqueue_delivery, record_instruction
from disputedesk.core.disputes.workflow import INITIAL_STATUS, apply_command, validate_filing
from disputedesk.db.models.dispute import Dispute

logger = get_logger("disputes.service")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_expected_version(snapshot: DisputeSnapshot, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != snapshot.version:
        raise ConcurrentModificationError(str(snapshot.id), expected_version)


class DisputeService:
    async def file_dispute(
        self,
        actor: Actor,
        db: AsyncSession,
        *,
        booking_id: uuid.UUID,
        filed_against_id: uuid.UUID,
        dispute_type: DisputeType,
        priority: int,
        title: str,
        description: str,
        evidence_urls: list[str] | None = None,
        filed_by_id: uuid.UUID | None = None,
    ) -> Dispute:
        if filed_by_id is not None and filed_by_id != actor.id and not actor.is_operator:
            raise UnauthorizedError("Only operators may file a dispute on behalf of another party")
        filer = filed_by_id or actor.id

        validate_filing(
            filed_by_id=filer,
            filed_against_id=filed_against_id,
            priority=priority,
            title=title,
            description=description,
        )

        existing = await store.find_active_for_booking(db, booking_id)
        if existing:
            raise ValidationFailedError(
                f"An active dispute ({existing.id}) already exists for booking {booking_id}"
            )

        now = utcnow()
        dispute = await store.insert_dispute(
            db,
            {
                "booking_id": booking_id,
                "filed_by_id": filer,
                "filed_against_id": filed_against_id,
                "dispute_type": dispute_type,
                "priority": priority,
                "title": title.strip(),
                "description": description.strip(),
                "evidence_urls": list(evidence_urls or []),
                "status": INITIAL_STATUS,
                "created_at": now,
                "updated_at": now,
            },
            actor_id=actor.id,
        )

        logger.info(
            "Dispute %s filed on booking %s by %s (%s, priority %d)",
            dispute.id,
            booking_id,
            filer,
            dispute_type.value,
            priority,
        )
        on_commit(
            db,
            emit,
            "dispute.filed",
            [str(filed_against_id)],
            {"dispute_id": str(dispute.id), "booking_id": str(booking_id), "type": dispute_type.value},
        )
        return dispute

    async def execute(
        self,
        dispute_id: uuid.UUID,
        command: DisputeCommand,
        actor: Actor,
        db: AsyncSession,
        expected_version: int | None = None,
    ) -> Dispute:
        """Run one lifecycle command as a single atomic store operation."""
        snapshot = await store.load_snapshot(db, dispute_id)
        check_expected_version(snapshot, expected_version)

        try:
            transition = apply_command(snapshot, command, actor, utcnow())
        except DisputeDeskException as e:
            logger.info(
                "Rejected %s on dispute %s by %s: %s",
                command.action.value,
                dispute_id,
                actor.id,
                e.detail,
            )
            raise

        dispute, settlement_id = await self._commit(transition, actor, db)
        self._queue_effects(db, transition, settlement_id)
        return dispute

    async def _commit(
        self, transition: Transition, actor: Actor, db: AsyncSession
    ) -> tuple[Dispute, uuid.UUID | None]:
        settlement_id = None
        dispute = await store.compare_and_set(
            db,
            transition.dispute_id,
            transition.expected_version,
            transition.changes,
            action=transition.action.value,
            actor_id=actor.id,
            now=transition.changes["updated_at"],
            from_status=transition.from_status.value,
        )
        if transition.settlement is not None:
            record = await record_instruction(db, transition.settlement)
            settlement_id = record.id

        logger.info(
            "Dispute %s %s -> %s by %s (version %d)",
            transition.dispute_id,
            transition.from_status.value,
            transition.to_status.value,
            actor.id,
            dispute.version,
        )
        return dispute, settlement_id

    def _queue_effects(
        self, db: AsyncSession, transition: Transition, settlement_id: uuid.UUID | None
    ) -> None:
        if settlement_id is not None:
            on_commit(db, enqueue_delivery, settlement_id)
        for event in transition.events:
            on_commit(db, emit, event.event, [str(r) for r in event.recipient_ids], event.data)

    # ---------- Convenience wrappers for the operation surface ----------

    async def start_review(
        self, dispute_id: uuid.UUID, actor: Actor, db: AsyncSession, expected_version: int | None = None
    ) -> Dispute:
        return await self.execute(dispute_id, StartReviewCommand(), actor, db, expected_version)

    async def resolve(
        self,
        dispute_id: uuid.UUID,
        actor: Actor,
        db: AsyncSession,
        *,
        resolution: DisputeResolution,
        notes: str,
        refund_percent: int | float | None = None,
        expected_version: int | None = None,
    ) -> Dispute:
        command = ResolveCommand(resolution=resolution, notes=notes or "", refund_percent=refund_percent)
        return await self.execute(dispute_id, command, actor, db, expected_version)

    async def escalate(
        self,
        dispute_id: uuid.UUID,
        actor: Actor,
        db: AsyncSession,
        *,
        reason: str,
        expected_version: int | None = None,
    ) -> Dispute:
        return await self.execute(dispute_id, EscalateCommand(reason=reason or ""), actor, db, expected_version)

    async def close(
        self, dispute_id: uuid.UUID, actor: Actor, db: AsyncSession, expected_version: int | None = None
    ) -> Dispute:
        return await self.execute(dispute_id, CloseCommand(), actor, db, expected_version)

    async def get_for_actor(self, dispute_id: uuid.UUID, actor: Actor, db: AsyncSession) -> Dispute:
        dispute = await store.get_dispute(db, dispute_id)
        if not actor.is_operator and actor.id not in (dispute.filed_by_id, dispute.filed_against_id):
            raise UnauthorizedError("You are not a party to this dispute")
        return dispute

    async def history(self, dispute_id: uuid.UUID, actor: Actor, db: AsyncSession) -> list[dict[str, Any]]:
        if not actor.is_operator:
            raise UnauthorizedError("Only operators may view dispute history")
        await store.get_dispute(db, dispute_id)
        entries = await store.list_audit_entries(db, dispute_id)
        return [
            {
                "action": e.action,
                "actor_id": e.actor_id,
                "from_status": e.from_status,
                "to_status": e.to_status,
                "version": e.version,
                "diff": e.diff or {},
                "created_at": e.created_at,
            }
            for e in entries
        ]
