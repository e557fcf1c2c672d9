import uuid
from datetime import timedelta

import pytest
from sqlalchemy import update

from disputedesk.common.enums import DisputeResolution, DisputeStatus, DisputeType
from disputedesk.core.disputes.assignment import AssignmentService
from disputedesk.core.disputes.schemas import DisputeFilter
from disputedesk.core.disputes.service import DisputeService
from disputedesk.core.disputes.stats import StatsAggregator
from disputedesk.db.models.dispute import Dispute


async def _file(db, customer, provider, dispute_type=DisputeType.NO_SHOW, priority=3):
    return await DisputeService().file_dispute(
        customer,
        db,
        booking_id=uuid.uuid4(),
        filed_against_id=provider.id,
        dispute_type=dispute_type,
        priority=priority,
        title="Issue",
        description="Something went wrong",
    )


async def _resolve(db, dispute, operator, resolution, hours):
    await AssignmentService().assign(dispute.id, operator.id, operator, db)
    resolved = await DisputeService().resolve(
        dispute.id, operator, db, resolution=resolution, notes="settled"
    )
    # Pin the resolution time relative to filing
    await db.execute(
        update(Dispute)
        .where(Dispute.id == dispute.id)
        .values(resolved_at=dispute.created_at + timedelta(hours=hours))
    )
    return resolved


@pytest.mark.asyncio
async def test_empty_stats(db_session):
    stats = await StatsAggregator().compute(db_session)
    assert stats.total == 0
    assert stats.by_status == {s.value: 0 for s in DisputeStatus}
    assert stats.by_type == {}
    assert stats.resolutions_by_type == {}
    assert stats.avg_resolution_time_hours == 0.0


@pytest.mark.asyncio
async def test_stats_totals_and_average(db_session, customer, provider, operator):
    a = await _file(db_session, customer, provider)
    b = await _file(db_session, customer, provider, dispute_type=DisputeType.POOR_QUALITY)
    await _file(db_session, customer, provider, dispute_type=DisputeType.POOR_QUALITY, priority=5)

    await _resolve(db_session, a, operator, DisputeResolution.FULL_REFUND_CUSTOMER, hours=10)
    await _resolve(db_session, b, operator, DisputeResolution.SPLIT_FUNDS, hours=5)

    stats = await StatsAggregator().compute(db_session)
    assert stats.total == 3
    assert sum(stats.by_status.values()) == stats.total
    assert stats.by_status["RESOLVED"] == 2
    assert stats.by_status["OPEN"] == 1
    assert stats.by_type == {"NO_SHOW": 1, "POOR_QUALITY": 2}
    assert stats.resolutions_by_type == {"FULL_REFUND_CUSTOMER": 1, "SPLIT_FUNDS": 1}
    assert stats.avg_resolution_time_hours == 7.5

    filtered = await StatsAggregator().compute(
        db_session, DisputeFilter(dispute_type=[DisputeType.POOR_QUALITY])
    )
    assert filtered.total == 2
    assert sum(filtered.by_status.values()) == filtered.total
    assert filtered.avg_resolution_time_hours == 5.0

    open_only = await StatsAggregator().compute(db_session, DisputeFilter(status=[DisputeStatus.OPEN]))
    assert open_only.total == 1
    assert open_only.avg_resolution_time_hours == 0.0


@pytest.mark.asyncio
async def test_stats_endpoint_operator_only(client, operator_headers, customer_headers, dispute_payload):
    await client.post("/api/v1/disputes", headers=customer_headers, json=dispute_payload())

    resp = await client.get("/api/v1/disputes/stats", headers=operator_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["by_status"]["OPEN"] == 1
    assert sum(body["by_status"].values()) == body["total"]

    resp = await client.get("/api/v1/disputes/stats", headers=customer_headers)
    assert resp.status_code == 403
