"""Append-only dispute threads.

Internal messages are stored alongside external ones; hiding them from the
filing parties is a projection applied when the thread is read.
"""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from disputedesk.common.enums import DisputeAction
from disputedesk.common.events import emit, on_commit
from disputedesk.common.exceptions import (
    InvalidTransitionError,
    UnauthorizedError,
    ValidationFailedError,
)
from disputedesk.common.logging import get_logger
from disputedesk.core.disputes import store
from disputedesk.core.disputes.schemas import Actor, DisputeSnapshot
from disputedesk.core.disputes.service import check_expected_version, utcnow
from disputedesk.core.disputes.workflow import TERMINAL_STATUS
from disputedesk.db.models.dispute import DisputeMessage

logger = get_logger("disputes.messaging")


def can_view_internal(actor: Actor) -> bool:
    return actor.is_operator


def project_messages(messages: list[DisputeMessage], actor: Actor, include_internal: bool = True) -> list[DisputeMessage]:
    """Filter a thread down to what ``actor`` may see."""
    show_internal = include_internal and can_view_internal(actor)
    return [m for m in messages if show_internal or not m.is_internal]


class MessagingService:
    async def post_message(
        self,
        dispute_id: uuid.UUID,
        actor: Actor,
        db: AsyncSession,
        *,
        content: str,
        is_internal: bool = False,
        attachment_urls: list[str] | None = None,
        expected_version: int | None = None,
    ) -> DisputeMessage:
        snapshot = await store.load_snapshot(db, dispute_id)
        check_expected_version(snapshot, expected_version)

        if snapshot.status == TERMINAL_STATUS:
            raise InvalidTransitionError(
                snapshot.status.value, DisputeAction.POST_MESSAGE.value, "the thread is closed"
            )
        self._authorize(snapshot, actor, is_internal)
        if not content or not content.strip():
            raise ValidationFailedError("Message content is required")

        message = await store.append_message(
            db,
            dispute_id,
            snapshot.version,
            {
                "author_id": actor.id,
                "content": content.strip(),
                "is_internal": is_internal,
                "attachment_urls": list(attachment_urls or []),
                "created_at": utcnow(),
            },
        )
        logger.info(
            "Message #%d posted on dispute %s by %s (internal=%s)",
            message.position,
            dispute_id,
            actor.id,
            is_internal,
        )

        if not is_internal:
            recipients = {snapshot.filed_by_id, snapshot.filed_against_id}
            if snapshot.assigned_to_id:
                recipients.add(snapshot.assigned_to_id)
            recipients.discard(actor.id)
            on_commit(
                db,
                emit,
                "dispute.message_posted",
                sorted(str(r) for r in recipients),
                {"dispute_id": str(dispute_id), "message_id": str(message.id)},
            )
        return message

    async def list_messages(
        self,
        dispute_id: uuid.UUID,
        actor: Actor,
        db: AsyncSession,
        include_internal: bool = True,
    ) -> list[DisputeMessage]:
        snapshot = await store.load_snapshot(db, dispute_id)
        if not actor.is_operator and not snapshot.is_party(actor.id):
            raise UnauthorizedError("You are not a party to this dispute")
        messages = await store.list_messages(
            db, dispute_id, include_internal=include_internal and can_view_internal(actor)
        )
        return project_messages(messages, actor, include_internal)

    def _authorize(self, snapshot: DisputeSnapshot, actor: Actor, is_internal: bool) -> None:
        if actor.is_operator:
            return
        if not snapshot.is_party(actor.id):
            raise UnauthorizedError("You are not a party to this dispute")
        if is_internal:
            raise UnauthorizedError("Only operators may post internal messages")
