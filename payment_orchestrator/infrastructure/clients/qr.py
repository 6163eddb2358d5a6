"""QR code service client"""

from typing import Any, Dict

import httpx

from payment_orchestrator.config import settings
from payment_orchestrator.domain.exceptions import NotFoundError
from payment_orchestrator.infrastructure.clients.base import CollaboratorClient


class QRClient(CollaboratorClient):
    name = "qr"

    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(base_url or settings.qr_api_base, timeout, transport)

    async def get_code(self, qr_code_id: str) -> Dict[str, Any]:
        """
        Fetch a redeemable QR code: owner (merchant_id or customer_id) and optional fixed amount.

        Raises:
            NotFoundError: Unknown (404) or expired (410) code
            CollaboratorUnavailableError: On timeout, 5xx or network failure
        """
        response = await self._request("GET", f"/qr-codes/{qr_code_id}")
        if response.status_code in (404, 410):
            raise NotFoundError("QR code not found or expired")
        response.raise_for_status()
        return response.json()

    async def mark_used(self, qr_code_id: str, payment_id: str) -> None:
        """Mark a QR code as redeemed by a payment"""
        await self._post(f"/qr-codes/{qr_code_id}/use", {"payment_id": payment_id})
