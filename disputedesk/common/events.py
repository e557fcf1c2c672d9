"""Fire-and-forget dispatch of dispute events to the notification collaborator.

Side effects of a store write (notifications, settlement delivery) are queued
on the session with :func:`on_commit` and only dispatched once that session's
transaction commits. A rollback discards them.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from disputedesk.common.logging import get_logger

logger = get_logger("events")

PENDING_EFFECTS_KEY = "pending_effects"


def on_commit(db: AsyncSession, callback: Callable[..., None], *args: Any) -> None:
    """Run ``callback(*args)`` after ``db`` commits; drop it if ``db`` rolls back."""
    db.sync_session.info.setdefault(PENDING_EFFECTS_KEY, []).append((callback, args))


@event.listens_for(Session, "after_commit")
def _dispatch_pending_effects(session: Session) -> None:
    for callback, args in session.info.pop(PENDING_EFFECTS_KEY, []):
        callback(*args)


@event.listens_for(Session, "after_rollback")
def _discard_pending_effects(session: Session) -> None:
    dropped = session.info.pop(PENDING_EFFECTS_KEY, [])
    if dropped:
        logger.debug("Discarded %d pending effect(s) on rollback", len(dropped))


def emit(event_name: str, recipient_ids: list[str], data: dict[str, Any]) -> None:
    """Queue a notification for delivery.

    Never raises: a dispatcher outage must not block or roll back the dispute
    transition that produced the event.
    """
    if not recipient_ids:
        return
    try:
        from disputedesk.tasks.notification_tasks import dispatch_dispute_event

        dispatch_dispute_event.delay(event_name, recipient_ids, data)
    except Exception as e:
        logger.warning("Event emit failed (non-critical): %s %s", event_name, e)
