"""Payment / escrow collaborator client.

Posts settlement instructions to the escrow service, which owns idempotent
execution of refunds and penalties. Uses a local mock when the configured key
starts with ``mock_``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from disputedesk.common.exceptions import ExternalServiceError
from disputedesk.config import settings
from disputedesk.core.disputes.schemas import SettlementInstruction
from disputedesk.integrations.base import BaseIntegration


class SettlementRejected(Exception):
    """The escrow service understood the instruction and refused it."""


class EscrowClient(BaseIntegration):
    """Settlement sink with real HTTP API and mock fallback."""

    def __init__(self) -> None:
        super().__init__("escrow", settings.ESCROW_API_URL, settings.ESCROW_API_KEY, timeout=30)

    async def submit_settlement(
        self, instruction: SettlementInstruction, idempotency_key: str
    ) -> dict[str, Any]:
        payload = instruction.model_dump(mode="json")

        if not self.is_mock:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(
                        f"{self.base_url}/settlements",
                        headers=self._headers({"Idempotency-Key": idempotency_key}),
                        json=payload,
                    )
            except httpx.HTTPError as e:
                raise ExternalServiceError("escrow", str(e)) from e

            if resp.status_code in (400, 409, 422):
                raise SettlementRejected(resp.text or f"HTTP {resp.status_code}")
            if resp.status_code >= 300:
                raise ExternalServiceError("escrow", f"HTTP {resp.status_code}")

            data = resp.json()
            self.logger.info(
                "Submitted settlement %s for dispute %s", data.get("id"), instruction.dispute_id
            )
            return data

        settlement_id = f"stl_{uuid.uuid4().hex[:20]}"
        self.logger.info(
            "Mock settlement %s | dispute=%s | %s | customer share %d%%",
            settlement_id,
            instruction.dispute_id,
            instruction.resolution_type.value,
            instruction.customer_refund_percent,
        )
        return {
            "id": settlement_id,
            "status": "accepted",
            "idempotency_key": idempotency_key,
            "received_at": datetime.now(timezone.utc).isoformat(),
        }
