import uuid

import pytest

from disputedesk.common.enums import ActorRole
from disputedesk.common.exceptions import (
    InvalidTransitionError,
    UnauthorizedError,
    ValidationFailedError,
)
from disputedesk.core.disputes.messaging import MessagingService
from disputedesk.core.disputes.schemas import Actor

BASE = "/api/v1/disputes"


@pytest.mark.asyncio
async def test_party_thread_hides_internal_messages(db_session, open_dispute, operator, customer, provider):
    messaging = MessagingService()
    await messaging.post_message(open_dispute.id, customer, db_session, content="Nobody showed up")
    await messaging.post_message(
        open_dispute.id, operator, db_session, content="Provider has 3 prior no-shows", is_internal=True
    )
    await messaging.post_message(open_dispute.id, provider, db_session, content="I was stuck in traffic")

    for party in (customer, provider):
        thread = await messaging.list_messages(open_dispute.id, party, db_session)
        assert [m.content for m in thread] == ["Nobody showed up", "I was stuck in traffic"]
        assert not any(m.is_internal for m in thread)

        # include_internal is ignored for parties
        thread = await messaging.list_messages(open_dispute.id, party, db_session, include_internal=True)
        assert len(thread) == 2

    thread = await messaging.list_messages(open_dispute.id, operator, db_session)
    assert [m.position for m in thread] == [1, 2, 3]
    assert thread[1].is_internal

    thread = await messaging.list_messages(open_dispute.id, operator, db_session, include_internal=False)
    assert len(thread) == 2


@pytest.mark.asyncio
async def test_party_cannot_post_internal(db_session, open_dispute, customer):
    with pytest.raises(UnauthorizedError):
        await MessagingService().post_message(
            open_dispute.id, customer, db_session, content="psst", is_internal=True
        )


@pytest.mark.asyncio
async def test_stranger_cannot_post_or_read(db_session, open_dispute):
    stranger = Actor(id=uuid.uuid4(), role=ActorRole.PROVIDER)
    messaging = MessagingService()
    with pytest.raises(UnauthorizedError):
        await messaging.post_message(open_dispute.id, stranger, db_session, content="hello")
    with pytest.raises(UnauthorizedError):
        await messaging.list_messages(open_dispute.id, stranger, db_session)


@pytest.mark.asyncio
async def test_empty_message_rejected(db_session, open_dispute, customer):
    with pytest.raises(ValidationFailedError):
        await MessagingService().post_message(open_dispute.id, customer, db_session, content="   ")


@pytest.mark.asyncio
async def test_external_message_notifies_other_parties(
    db_session, open_dispute, customer, provider, operator, mock_celery_tasks
):
    messaging = MessagingService()
    mock_celery_tasks.notification.reset_mock()

    await messaging.post_message(open_dispute.id, customer, db_session, content="Any news?")
    mock_celery_tasks.notification.assert_not_called()
    await db_session.commit()

    event, recipients, data = mock_celery_tasks.notification.call_args.args
    assert event == "dispute.message_posted"
    assert recipients == [str(provider.id)]
    assert data["dispute_id"] == str(open_dispute.id)

    mock_celery_tasks.notification.reset_mock()
    await messaging.post_message(open_dispute.id, operator, db_session, content="note", is_internal=True)
    await db_session.commit()
    mock_celery_tasks.notification.assert_not_called()


@pytest.mark.asyncio
async def test_closed_thread_rejects_messages(
    client, operator, operator_headers, customer_headers, dispute_payload
):
    dispute = (await client.post(BASE, headers=customer_headers, json=dispute_payload())).json()
    dispute_id = dispute["id"]
    await client.post(f"{BASE}/{dispute_id}/assign", headers=operator_headers, json={"operator_id": str(operator.id)})
    await client.post(
        f"{BASE}/{dispute_id}/resolve",
        headers=operator_headers,
        json={"resolution": "MUTUAL_CANCELLATION", "notes": "both agreed to cancel"},
    )
    await client.post(f"{BASE}/{dispute_id}/close", headers=operator_headers)

    resp = await client.post(f"{BASE}/{dispute_id}/messages", headers=customer_headers, json={"content": "wait"})
    assert resp.status_code == 409
    assert resp.headers["X-Error-Code"] == "INVALID_TRANSITION"

    # Missing content still reports the closed thread first
    resp = await client.post(f"{BASE}/{dispute_id}/messages", headers=customer_headers, json={})
    assert resp.status_code == 409
    assert resp.headers["X-Error-Code"] == "INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_message_api(client, operator_headers, customer_headers, dispute_payload):
    dispute = (await client.post(BASE, headers=customer_headers, json=dispute_payload())).json()
    dispute_id = dispute["id"]

    resp = await client.post(
        f"{BASE}/{dispute_id}/messages",
        headers=customer_headers,
        json={"content": "Photos attached", "attachment_urls": ["https://files.example.com/door.jpg"]},
    )
    assert resp.status_code == 201
    assert resp.json()["position"] == 1
    assert resp.json()["attachment_urls"] == ["https://files.example.com/door.jpg"]

    resp = await client.post(
        f"{BASE}/{dispute_id}/messages",
        headers=operator_headers,
        json={"content": "Check provider history", "is_internal": True, "expected_version": 2},
    )
    assert resp.status_code == 201

    resp = await client.post(
        f"{BASE}/{dispute_id}/messages",
        headers=customer_headers,
        json={"content": "Hello?", "is_internal": True},
    )
    assert resp.status_code == 403

    party_view = (await client.get(f"{BASE}/{dispute_id}/messages", headers=customer_headers)).json()
    assert [m["content"] for m in party_view] == ["Photos attached"]

    operator_view = (await client.get(f"{BASE}/{dispute_id}/messages", headers=operator_headers)).json()
    assert [m["position"] for m in operator_view] == [1, 2]

    detail = (await client.get(f"{BASE}/{dispute_id}", headers=customer_headers)).json()
    assert [m["content"] for m in detail["messages"]] == ["Photos attached"]
    assert detail["version"] == 3

    resp = await client.get(f"{BASE}/{dispute_id}/messages", headers=operator_headers, params={"include_internal": False})
    assert len(resp.json()) == 1


@pytest.mark.asyncio
async def test_closed_check_precedes_authorization(db_session, open_dispute):
    from disputedesk.common.enums import DisputeStatus
    from disputedesk.core.disputes import store
    from disputedesk.core.disputes.service import utcnow

    now = utcnow()
    await store.compare_and_set(
        db_session,
        open_dispute.id,
        1,
        {"status": DisputeStatus.CLOSED, "closed_at": now, "updated_at": now},
        action="close",
        actor_id=None,
        now=now,
    )
    stranger = Actor(id=uuid.uuid4(), role=ActorRole.CUSTOMER)
    with pytest.raises(InvalidTransitionError):
        await MessagingService().post_message(open_dispute.id, stranger, db_session, content="hi")
