"""Booking lookup collaborator client (read-only, context display only)."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from disputedesk.config import settings
from disputedesk.integrations.base import BaseIntegration


class BookingClient(BaseIntegration):
    """Booking lookup with real HTTP API and mock fallback."""

    def __init__(self) -> None:
        super().__init__("bookings", settings.BOOKINGS_API_URL, settings.BOOKINGS_API_KEY)

    async def get_booking(self, booking_id: uuid.UUID) -> dict[str, Any] | None:
        """Return booking context, or ``None`` when it cannot be fetched.

        Never raises: the dispute view must render without it.
        """
        if not self.is_mock:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(
                        f"{self.base_url}/bookings/{booking_id}", headers=self._headers()
                    )
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
                data = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                self.logger.warning("Booking lookup failed for %s: %s", booking_id, e)
                return None
            return {
                "id": str(booking_id),
                "status": data.get("status"),
                "scheduled_time": data.get("scheduled_time") or data.get("scheduledStartTime"),
                "amount_cents": data.get("amount_cents") or data.get("quoteAmountCents"),
            }

        # Deterministic mock derived from the id so repeated reads agree.
        seed = booking_id.int
        scheduled = datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(hours=seed % 8760)
        return {
            "id": str(booking_id),
            "status": "DISPUTED",
            "scheduled_time": scheduled.isoformat(),
            "amount_cents": 2500 + (seed % 40) * 500,
        }
