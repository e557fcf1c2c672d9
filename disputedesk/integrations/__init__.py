"""Collaborator clients.

All clients implement ``BaseIntegration`` and fall back to local mocks when
their configured key starts with ``mock_``.
"""

from disputedesk.integrations.base import BaseIntegration
from disputedesk.integrations.bookings import BookingClient
from disputedesk.integrations.escrow import EscrowClient, SettlementRejected
from disputedesk.integrations.notifier import NotifierClient

__all__ = [
    "BaseIntegration",
    "BookingClient",
    "EscrowClient",
    "NotifierClient",
    "SettlementRejected",
]
