"""Aggregate dispute figures for the operator dashboard."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from disputedesk.common.enums import DisputeStatus
from disputedesk.common.logging import get_logger
from disputedesk.core.disputes.schemas import DisputeFilter, DisputeStats
from disputedesk.core.disputes.store import _guard, apply_filter
from disputedesk.db.models.dispute import Dispute

logger = get_logger("disputes.stats")


def _ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class StatsAggregator:
    async def compute(self, db: AsyncSession, dispute_filter: DisputeFilter | None = None) -> DisputeStats:
        async with _guard("stats"):
            by_status = await self._count_by(db, Dispute.status, dispute_filter)
            by_type = await self._count_by(db, Dispute.dispute_type, dispute_filter)

            resolution_q = apply_filter(
                select(Dispute.resolution, func.count()).where(Dispute.resolution.is_not(None)),
                dispute_filter,
            ).group_by(Dispute.resolution)
            resolutions = {key: count for key, count in (await db.execute(resolution_q)).all()}

            timing_q = apply_filter(
                select(Dispute.created_at, Dispute.resolved_at).where(Dispute.resolved_at.is_not(None)),
                dispute_filter,
            )
            timings = (await db.execute(timing_q)).all()

        status_counts = {s.value: 0 for s in DisputeStatus}
        status_counts.update(by_status)
        total = sum(status_counts.values())

        avg_hours = 0.0
        if timings:
            seconds = sum(
                (_ensure_utc(resolved) - _ensure_utc(created)).total_seconds() for created, resolved in timings
            )
            avg_hours = round(seconds / len(timings) / 3600, 1)

        logger.debug("Computed stats over %d disputes", total)
        return DisputeStats(
            total=total,
            by_status=status_counts,
            by_type=by_type,
            resolutions_by_type=resolutions,
            avg_resolution_time_hours=avg_hours,
        )

    async def _count_by(self, db: AsyncSession, column, dispute_filter: DisputeFilter | None) -> dict[str, int]:
        query = apply_filter(select(column, func.count()), dispute_filter).group_by(column)
        return {key: count for key, count in (await db.execute(query)).all()}
