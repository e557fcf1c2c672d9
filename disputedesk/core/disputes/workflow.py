"""Dispute lifecycle state machine.

OPEN → ASSIGNED → UNDER_REVIEW → RESOLVED → CLOSED, with ASSIGNED/UNDER_REVIEW
→ ESCALATED → ASSIGNED for re-triage. Everything here is pure: the engine takes
a snapshot plus a command and returns a ``Transition`` for the store to commit.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from disputedesk.common.enums import DisputeAction, DisputeStatus
from disputedesk.common.exceptions import (
    InvalidTransitionError,
    UnauthorizedError,
    ValidationFailedError,
)
from disputedesk.core.disputes.schemas import (
    Actor,
    AssignCommand,
    CloseCommand,
    DisputeCommand,
    DisputeEvent,
    DisputeSnapshot,
    EscalateCommand,
    ResolveCommand,
    StartReviewCommand,
    Transition,
)
from disputedesk.core.disputes.settlement import build_settlement_instruction, validate_resolution

TRANSITIONS: dict[tuple[DisputeStatus, DisputeAction], DisputeStatus] = {
    (DisputeStatus.OPEN, DisputeAction.ASSIGN): DisputeStatus.ASSIGNED,
    (DisputeStatus.ESCALATED, DisputeAction.ASSIGN): DisputeStatus.ASSIGNED,
    (DisputeStatus.ASSIGNED, DisputeAction.START_REVIEW): DisputeStatus.UNDER_REVIEW,
    (DisputeStatus.ASSIGNED, DisputeAction.RESOLVE): DisputeStatus.RESOLVED,
    (DisputeStatus.UNDER_REVIEW, DisputeAction.RESOLVE): DisputeStatus.RESOLVED,
    (DisputeStatus.ASSIGNED, DisputeAction.ESCALATE): DisputeStatus.ESCALATED,
    (DisputeStatus.UNDER_REVIEW, DisputeAction.ESCALATE): DisputeStatus.ESCALATED,
    (DisputeStatus.RESOLVED, DisputeAction.CLOSE): DisputeStatus.CLOSED,
}

INITIAL_STATUS = DisputeStatus.OPEN
TERMINAL_STATUS = DisputeStatus.CLOSED

MIN_PRIORITY = 1
MAX_PRIORITY = 5


def next_status(current: DisputeStatus, action: DisputeAction) -> DisputeStatus:
    target = TRANSITIONS.get((current, action))
    if target is None:
        allowed = allowed_actions(current)
        hint = f"allowed: {', '.join(a.value for a in allowed)}" if allowed else "no further actions"
        raise InvalidTransitionError(current.value, action.value, hint)
    return target


def allowed_actions(current: DisputeStatus) -> list[DisputeAction]:
    return [action for (status, action) in TRANSITIONS if status == current]


def validate_filing(
    *,
    filed_by_id: uuid.UUID,
    filed_against_id: uuid.UUID,
    priority: int,
    title: str,
    description: str,
) -> None:
    if filed_by_id == filed_against_id:
        raise ValidationFailedError("A dispute cannot be filed against the filing party")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise ValidationFailedError(
            f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}"
        )
    if not title or not title.strip():
        raise ValidationFailedError("title is required")
    if not description or not description.strip():
        raise ValidationFailedError("description is required")


def apply_command(
    dispute: DisputeSnapshot,
    command: DisputeCommand,
    actor: Actor,
    now: datetime,
) -> Transition:
    """Validate ``command`` against ``dispute`` and compute the resulting transition.

    Guards run in a fixed order: state legality, then caller authorization, then
    field validation. A command from an illegal state therefore always fails
    with ``InvalidTransitionError`` whatever its payload.
    """
    target = next_status(dispute.status, command.action)

    if not actor.is_operator:
        raise UnauthorizedError(f"Only operators may {command.action.value} disputes")

    handler = _HANDLERS[command.action]
    changes = handler(dispute, command, actor, now)
    changes["status"] = target
    changes["updated_at"] = now

    settlement = None
    if isinstance(command, ResolveCommand):
        settlement = build_settlement_instruction(
            dispute_id=dispute.id,
            booking_id=dispute.booking_id,
            resolution=command.resolution,
            refund_percent=command.refund_percent,
            computed_at=now,
        )

    return Transition(
        dispute_id=dispute.id,
        action=command.action,
        from_status=dispute.status,
        to_status=target,
        expected_version=dispute.version,
        changes=changes,
        settlement=settlement,
        events=[_transition_event(dispute, command.action, target, actor, changes)],
    )


# ---------- Per-command handlers ----------


def _assign(dispute: DisputeSnapshot, command: AssignCommand, actor: Actor, now: datetime) -> dict[str, Any]:
    if dispute.status == DisputeStatus.OPEN and dispute.assigned_to_id is not None:
        raise InvalidTransitionError(
            dispute.status.value, command.action.value, "dispute already has an assignee"
        )
    if dispute.is_party(command.operator_id):
        raise ValidationFailedError("A party to the dispute cannot be assigned to handle it")

    changes: dict[str, Any] = {"assigned_to_id": command.operator_id}
    if dispute.assigned_to_id is None:
        changes["assigned_at"] = now
    return changes


def _start_review(
    dispute: DisputeSnapshot, command: StartReviewCommand, actor: Actor, now: datetime
) -> dict[str, Any]:
    if dispute.assigned_to_id != actor.id:
        raise UnauthorizedError("Only the assigned operator can start the review")
    return {}


def _resolve(dispute: DisputeSnapshot, command: ResolveCommand, actor: Actor, now: datetime) -> dict[str, Any]:
    validate_resolution(command.resolution, command.notes, command.refund_percent)
    return {
        "resolution": command.resolution,
        "resolution_notes": command.notes.strip(),
        "refund_percent": command.refund_percent,
        "resolved_by_id": actor.id,
        "resolved_at": now,
    }


def _escalate(dispute: DisputeSnapshot, command: EscalateCommand, actor: Actor, now: datetime) -> dict[str, Any]:
    if not command.reason or not command.reason.strip():
        raise ValidationFailedError("An escalation reason is required")
    return {
        "escalation_reason": command.reason.strip(),
        "escalated_by_id": actor.id,
        "escalated_at": now,
    }


def _close(dispute: DisputeSnapshot, command: CloseCommand, actor: Actor, now: datetime) -> dict[str, Any]:
    return {"closed_at": now}


_HANDLERS: dict[DisputeAction, Callable[..., dict[str, Any]]] = {
    DisputeAction.ASSIGN: _assign,
    DisputeAction.START_REVIEW: _start_review,
    DisputeAction.RESOLVE: _resolve,
    DisputeAction.ESCALATE: _escalate,
    DisputeAction.CLOSE: _close,
}


def _transition_event(
    dispute: DisputeSnapshot,
    action: DisputeAction,
    target: DisputeStatus,
    actor: Actor,
    changes: dict[str, Any],
) -> DisputeEvent:
    recipients = [dispute.filed_by_id, dispute.filed_against_id]
    assignee = changes.get("assigned_to_id") or dispute.assigned_to_id
    if assignee and assignee != actor.id:
        recipients.append(assignee)

    data: dict[str, Any] = {
        "dispute_id": str(dispute.id),
        "booking_id": str(dispute.booking_id),
        "from": dispute.status.value,
        "to": target.value,
        "by": str(actor.id),
    }
    if action == DisputeAction.RESOLVE:
        data["resolution"] = changes["resolution"].value

    return DisputeEvent(
        event=f"dispute.{target.value.lower()}",
        recipient_ids=recipients,
        data=data,
    )
