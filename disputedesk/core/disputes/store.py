"""Persistence primitives for disputes and their message threads.

Every mutation of a stored dispute is a compare-and-set on its ``version``:
the UPDATE only matches when the version observed at load time is still the
current one, so concurrent operator sessions never overwrite each other.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from disputedesk.common.enums import ACTIVE_DISPUTE_STATUSES
from disputedesk.common.exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    StoreUnavailableError,
    ValidationFailedError,
)
from disputedesk.common.logging import get_logger
from disputedesk.core.disputes.schemas import DisputeFilter, DisputeSnapshot
from disputedesk.db.models.audit import AuditLog
from disputedesk.db.models.dispute import Dispute, DisputeMessage

logger = get_logger("disputes.store")


@asynccontextmanager
async def _guard(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except (OperationalError, PoolTimeoutError, TimeoutError) as e:
        logger.error("Store %s failed: %s", operation, e)
        raise StoreUnavailableError(f"Dispute store unavailable during {operation}") from e


def _column_values(changes: dict[str, Any]) -> dict[str, Any]:
    return {k: v.value if isinstance(v, enum.Enum) else v for k, v in changes.items()}


def _json_safe(changes: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in changes.items():
        if isinstance(value, enum.Enum):
            value = value.value
        elif isinstance(value, uuid.UUID):
            value = str(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        out[key] = value
    return out


# ---------- Reads ----------


async def get_dispute(db: AsyncSession, dispute_id: uuid.UUID) -> Dispute:
    """Load the current row, bypassing any stale copy held by the session."""
    async with _guard("read"):
        result = await db.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .execution_options(populate_existing=True)
        )
        dispute = result.scalar_one_or_none()
    if not dispute:
        raise NotFoundError("Dispute", str(dispute_id))
    return dispute


async def load_snapshot(db: AsyncSession, dispute_id: uuid.UUID) -> DisputeSnapshot:
    return DisputeSnapshot.model_validate(await get_dispute(db, dispute_id))


async def find_active_for_booking(db: AsyncSession, booking_id: uuid.UUID) -> Dispute | None:
    async with _guard("read"):
        result = await db.execute(
            select(Dispute).where(
                Dispute.booking_id == booking_id,
                Dispute.status.in_([s.value for s in ACTIVE_DISPUTE_STATUSES]),
            )
        )
        return result.scalars().first()


def apply_filter(query: Select, dispute_filter: DisputeFilter | None) -> Select:
    if dispute_filter is None:
        return query
    f = dispute_filter
    if f.status:
        query = query.where(Dispute.status.in_([s.value for s in f.status]))
    if f.dispute_type:
        query = query.where(Dispute.dispute_type.in_([t.value for t in f.dispute_type]))
    if f.assigned_to_id:
        query = query.where(Dispute.assigned_to_id == f.assigned_to_id)
    if f.priority:
        query = query.where(Dispute.priority == f.priority)
    if f.from_date:
        query = query.where(Dispute.created_at >= f.from_date)
    if f.to_date:
        query = query.where(Dispute.created_at <= f.to_date)
    if f.party_id:
        query = query.where(
            (Dispute.filed_by_id == f.party_id) | (Dispute.filed_against_id == f.party_id)
        )
    return query


def list_query(dispute_filter: DisputeFilter | None = None) -> Select:
    query = select(Dispute)
    query = apply_filter(query, dispute_filter)
    return query.order_by(Dispute.priority.desc(), Dispute.created_at.desc(), Dispute.id)


async def list_messages(
    db: AsyncSession, dispute_id: uuid.UUID, include_internal: bool
) -> list[DisputeMessage]:
    query = select(DisputeMessage).where(DisputeMessage.dispute_id == dispute_id)
    if not include_internal:
        query = query.where(DisputeMessage.is_internal.is_(False))
    async with _guard("read"):
        result = await db.execute(query.order_by(DisputeMessage.position))
        return list(result.scalars().all())


async def list_audit_entries(db: AsyncSession, dispute_id: uuid.UUID) -> list[AuditLog]:
    async with _guard("read"):
        result = await db.execute(
            select(AuditLog)
            .where(AuditLog.entity_type == "dispute", AuditLog.entity_id == dispute_id)
            .order_by(AuditLog.version, AuditLog.created_at)
        )
        return list(result.scalars().all())


# ---------- Writes ----------


async def insert_dispute(db: AsyncSession, values: dict[str, Any], actor_id: uuid.UUID) -> Dispute:
    dispute = Dispute(**_column_values(values), version=1)
    try:
        async with _guard("insert"):
            db.add(dispute)
            await db.flush()
    except IntegrityError as e:
        # Partial unique index on booking_id over active statuses
        raise ValidationFailedError(
            f"An active dispute already exists for booking {values['booking_id']}"
        ) from e
    async with _guard("insert"):
        db.add(
            AuditLog(
                entity_type="dispute",
                entity_id=dispute.id,
                action="file",
                actor_id=actor_id,
                from_status=None,
                to_status=dispute.status,
                version=1,
                diff=_json_safe(values),
                created_at=values["created_at"],
            )
        )
        await db.flush()
    return dispute


async def compare_and_set(
    db: AsyncSession,
    dispute_id: uuid.UUID,
    expected_version: int,
    changes: dict[str, Any],
    *,
    action: str,
    actor_id: uuid.UUID | None,
    now: datetime,
    from_status: str | None = None,
    audit_diff: dict[str, Any] | None = None,
) -> Dispute:
    """Apply ``changes`` iff the stored version still equals ``expected_version``.

    The audit entry is written in the same transaction. Raises
    ``ConcurrentModificationError`` when another writer got there first.
    """
    values = _column_values(changes)
    new_version = expected_version + 1
    if "updated_at" not in values:
        # Keep updated_at for state mutations only.
        values["updated_at"] = Dispute.updated_at

    stmt = (
        update(Dispute)
        .where(Dispute.id == dispute_id, Dispute.version == expected_version)
        .values(**values, version=new_version)
        .execution_options(synchronize_session=False)
    )
    async with _guard("write"):
        result = await db.execute(stmt)

    if result.rowcount != 1:
        async with _guard("read"):
            exists = await db.scalar(select(Dispute.id).where(Dispute.id == dispute_id))
        if exists is None:
            raise NotFoundError("Dispute", str(dispute_id))
        logger.info(
            "Version conflict on dispute %s (expected %d, action %s)",
            dispute_id,
            expected_version,
            action,
        )
        raise ConcurrentModificationError(str(dispute_id), expected_version)

    dispute = await get_dispute(db, dispute_id)
    async with _guard("write"):
        db.add(
            AuditLog(
                entity_type="dispute",
                entity_id=dispute_id,
                action=action,
                actor_id=actor_id,
                from_status=from_status,
                to_status=dispute.status,
                version=new_version,
                diff=_json_safe(audit_diff if audit_diff is not None else changes),
                created_at=now,
            )
        )
        await db.flush()
    return dispute


async def append_message(
    db: AsyncSession,
    dispute_id: uuid.UUID,
    expected_version: int,
    values: dict[str, Any],
) -> DisputeMessage:
    """Append a message, serialized against transitions by the parent's version."""
    async with _guard("read"):
        count = await db.scalar(
            select(func.count()).select_from(DisputeMessage).where(DisputeMessage.dispute_id == dispute_id)
        )
    position = (count or 0) + 1

    await compare_and_set(
        db,
        dispute_id,
        expected_version,
        {},
        action="post_message",
        actor_id=values["author_id"],
        now=values["created_at"],
        audit_diff={"position": position, "is_internal": values["is_internal"]},
    )

    message = DisputeMessage(dispute_id=dispute_id, position=position, **values)
    try:
        async with _guard("insert"):
            db.add(message)
            await db.flush()
    except IntegrityError as e:
        raise ConcurrentModificationError(str(dispute_id), expected_version) from e
    return message
