"""Identity directory client for sender and recipient lookups"""

from typing import Any, Dict

import httpx

from payment_orchestrator.config import settings
from payment_orchestrator.domain.exceptions import NotFoundError
from payment_orchestrator.infrastructure.clients.base import CollaboratorClient


class IdentityClient(CollaboratorClient):
    """Client for the customer and merchant directories"""

    name = "identity"

    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(base_url or settings.identity_api_base, timeout, transport)

    async def get_customer(self, customer_id: str) -> Dict[str, Any]:
        """
        Fetch a customer record.

        Raises:
            NotFoundError: Unknown customer
            CollaboratorUnavailableError: On timeout, 5xx or network failure
        """
        return await self._get_entity(f"/customers/{customer_id}", f"Customer {customer_id} not found")

    async def get_merchant(self, merchant_id: str) -> Dict[str, Any]:
        return await self._get_entity(f"/merchants/{merchant_id}", f"Merchant {merchant_id} not found")

    async def _get_entity(self, path: str, missing_message: str) -> Dict[str, Any]:
        response = await self._request("GET", path)
        if response.status_code == 404:
            raise NotFoundError(missing_message)
        response.raise_for_status()
        return response.json()
