"""Notification dispatcher client (push/email delivery lives behind it)."""

from __future__ import annotations

import uuid
from typing import Any

import httpx

from disputedesk.common.exceptions import ExternalServiceError
from disputedesk.config import settings
from disputedesk.integrations.base import BaseIntegration


class NotifierClient(BaseIntegration):
    def __init__(self) -> None:
        super().__init__("notifier", settings.NOTIFIER_API_URL, settings.NOTIFIER_API_KEY)

    async def send(self, event: str, recipient_ids: list[str], data: dict[str, Any]) -> dict[str, Any]:
        if not self.is_mock:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(
                        f"{self.base_url}/events",
                        headers=self._headers(),
                        json={"event": event, "recipients": recipient_ids, "data": data},
                    )
                    resp.raise_for_status()
                    return resp.json()
            except httpx.HTTPError as e:
                raise ExternalServiceError("notifier", str(e)) from e

        notification_id = f"ntf_{uuid.uuid4().hex[:16]}"
        self.logger.info("Mock notification %s | %s -> %d recipients", notification_id, event, len(recipient_ids))
        return {"id": notification_id, "status": "queued"}
