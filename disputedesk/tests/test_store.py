import asyncio
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from disputedesk.common.enums import ActorRole, DisputeStatus, DisputeType
from disputedesk.common.exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    StoreUnavailableError,
    ValidationFailedError,
)
from disputedesk.core.disputes import store
from disputedesk.core.disputes.assignment import AssignmentService
from disputedesk.core.disputes.schemas import Actor, AssignCommand, DisputeFilter
from disputedesk.core.disputes.service import DisputeService
from disputedesk.core.disputes.workflow import apply_command
from disputedesk.db.models.dispute import Dispute


async def _file(service, db, customer, provider, **overrides):
    values = {
        "booking_id": uuid.uuid4(),
        "filed_against_id": provider.id,
        "dispute_type": DisputeType.LATE_ARRIVAL,
        "priority": 2,
        "title": "Late",
        "description": "Arrived 90 minutes late",
    }
    values.update(overrides)
    return await service.file_dispute(customer, db, **values)


@pytest.mark.asyncio
async def test_file_creates_open_dispute_with_audit(db_session, customer, provider, mock_celery_tasks):
    dispute = await _file(DisputeService(), db_session, customer, provider)
    mock_celery_tasks.notification.assert_not_called()
    await db_session.commit()

    assert dispute.status == DisputeStatus.OPEN.value
    assert dispute.version == 1
    assert dispute.filed_by_id == customer.id
    assert dispute.created_at == dispute.updated_at

    [entry] = await store.list_audit_entries(db_session, dispute.id)
    assert entry.action == "file"
    assert entry.to_status == "OPEN"

    mock_celery_tasks.notification.assert_called_once()
    event, recipients, _ = mock_celery_tasks.notification.call_args.args
    assert event == "dispute.filed"
    assert recipients == [str(provider.id)]


@pytest.mark.asyncio
async def test_one_active_dispute_per_booking(db_session, customer, provider):
    service = DisputeService()
    booking_id = uuid.uuid4()
    await _file(service, db_session, customer, provider, booking_id=booking_id)

    with pytest.raises(ValidationFailedError):
        await _file(service, db_session, customer, provider, booking_id=booking_id)


@pytest.mark.asyncio
async def test_booking_index_rejects_second_active_dispute(db_session, customer, provider):
    now = datetime.now(timezone.utc)
    booking_id = uuid.uuid4()

    def values(status):
        return {
            "booking_id": booking_id,
            "filed_by_id": customer.id,
            "filed_against_id": provider.id,
            "dispute_type": DisputeType.LATE_ARRIVAL,
            "priority": 2,
            "title": "Late",
            "description": "Arrived 90 minutes late",
            "status": status,
            "created_at": now,
            "updated_at": now,
        }

    # Closed disputes do not hold the booking
    await store.insert_dispute(db_session, values(DisputeStatus.CLOSED), actor_id=customer.id)
    await store.insert_dispute(db_session, values(DisputeStatus.OPEN), actor_id=customer.id)

    with pytest.raises(ValidationFailedError):
        await store.insert_dispute(db_session, values(DisputeStatus.ESCALATED), actor_id=customer.id)


@pytest.mark.asyncio
async def test_concurrent_filings_on_one_booking(session_factory, db_session, customer, provider):
    booking_id = uuid.uuid4()

    async def file_and_commit():
        async with session_factory() as session:
            dispute = await _file(DisputeService(), session, customer, provider, booking_id=booking_id)
            await session.commit()
            return dispute.id

    results = await asyncio.gather(file_and_commit(), file_and_commit(), return_exceptions=True)

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], ValidationFailedError)

    count = await db_session.scalar(
        select(func.count()).select_from(Dispute).where(Dispute.booking_id == booking_id)
    )
    assert count == 1


@pytest.mark.asyncio
async def test_rolled_back_filing_sends_no_notification(db_session, customer, provider, mock_celery_tasks):
    await _file(DisputeService(), db_session, customer, provider)
    await db_session.rollback()
    mock_celery_tasks.notification.assert_not_called()

    # A later commit on the same session must not replay discarded effects
    await db_session.commit()
    mock_celery_tasks.notification.assert_not_called()


@pytest.mark.asyncio
async def test_compare_and_set_rejects_stale_version(db_session, open_dispute, operator):
    now = datetime.now(timezone.utc)
    await store.compare_and_set(
        db_session,
        open_dispute.id,
        1,
        {"assigned_to_id": operator.id, "status": DisputeStatus.ASSIGNED, "updated_at": now},
        action="assign",
        actor_id=operator.id,
        now=now,
    )

    with pytest.raises(ConcurrentModificationError) as exc:
        await store.compare_and_set(
            db_session, open_dispute.id, 1, {"priority": 5}, action="edit", actor_id=operator.id, now=now
        )
    assert exc.value.retryable
    assert exc.value.status_code == 409

    dispute = await store.get_dispute(db_session, open_dispute.id)
    assert dispute.version == 2
    assert dispute.priority == 3


@pytest.mark.asyncio
async def test_compare_and_set_unknown_dispute(db_session, operator):
    with pytest.raises(NotFoundError):
        await store.compare_and_set(
            db_session,
            uuid.uuid4(),
            1,
            {},
            action="assign",
            actor_id=operator.id,
            now=datetime.now(timezone.utc),
        )


@pytest.mark.asyncio
async def test_concurrent_assignment_one_winner(session_factory, customer, provider):
    op_a = Actor(id=uuid.uuid4(), role=ActorRole.OPERATOR)
    op_b = Actor(id=uuid.uuid4(), role=ActorRole.OPERATOR)

    async with session_factory() as db:
        dispute = await _file(DisputeService(), db, customer, provider)
        await db.commit()

    async with session_factory() as session_a, session_factory() as session_b:
        # Both sessions observe version 1 before either writes
        snapshot_b = await store.load_snapshot(session_b, dispute.id)

        won = await AssignmentService().assign(dispute.id, op_a.id, op_a, session_a)
        await session_a.commit()
        assert won.status == DisputeStatus.ASSIGNED.value
        assert won.assigned_to_id == op_a.id

        transition = apply_command(
            snapshot_b, AssignCommand(operator_id=op_b.id), op_b, datetime.now(timezone.utc)
        )
        with pytest.raises(ConcurrentModificationError):
            await store.compare_and_set(
                session_b,
                transition.dispute_id,
                transition.expected_version,
                transition.changes,
                action=transition.action.value,
                actor_id=op_b.id,
                now=transition.changes["updated_at"],
            )
        await session_b.rollback()

    async with session_factory() as db:
        stored = await store.get_dispute(db, dispute.id)
        assert stored.assigned_to_id == op_a.id
        assert stored.version == 2


@pytest.mark.asyncio
async def test_stale_expected_version_rejected_before_validation(db_session, open_dispute, operator):
    assignments = AssignmentService()
    await assignments.assign(open_dispute.id, operator.id, operator, db_session, expected_version=1)

    with pytest.raises(ConcurrentModificationError):
        # Would otherwise be an InvalidTransition (already ASSIGNED)
        await assignments.assign(open_dispute.id, operator.id, operator, db_session, expected_version=1)


@pytest.mark.asyncio
async def test_message_append_bumps_version_not_updated_at(db_session, open_dispute, customer):
    before = await store.get_dispute(db_session, open_dispute.id)
    updated_at = before.updated_at

    message = await store.append_message(
        db_session,
        open_dispute.id,
        1,
        {
            "author_id": customer.id,
            "content": "Any update?",
            "is_internal": False,
            "attachment_urls": [],
            "created_at": datetime.now(timezone.utc),
        },
    )
    assert message.position == 1

    after = await store.get_dispute(db_session, open_dispute.id)
    assert after.version == 2
    assert after.updated_at == updated_at

    entries = await store.list_audit_entries(db_session, open_dispute.id)
    assert [e.action for e in entries] == ["file", "post_message"]
    assert entries[-1].diff == {"position": 1, "is_internal": False}


@pytest.mark.asyncio
async def test_list_query_orders_by_priority_then_newest(db_session, customer, provider):
    service = DisputeService()
    low = await _file(service, db_session, customer, provider, priority=1)
    high_old = await _file(service, db_session, customer, provider, priority=5)
    high_new = await _file(service, db_session, customer, provider, priority=5)

    result = await db_session.execute(store.list_query(DisputeFilter(party_id=customer.id)))
    ids = [d.id for d in result.scalars().all()]
    assert ids == [high_new.id, high_old.id, low.id]

    result = await db_session.execute(store.list_query(DisputeFilter(priority=1)))
    assert [d.id for d in result.scalars().all()] == [low.id]


@pytest.mark.asyncio
async def test_guard_maps_operational_errors():
    with pytest.raises(StoreUnavailableError) as exc:
        async with store._guard("read"):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
    assert exc.value.status_code == 503
    assert exc.value.retryable
