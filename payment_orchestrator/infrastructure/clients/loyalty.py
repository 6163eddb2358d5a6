"""Loyalty ledger client for point redemption and accrual"""

from decimal import Decimal

import httpx

from payment_orchestrator.config import settings
from payment_orchestrator.infrastructure.clients.base import CollaboratorClient


class LoyaltyClient(CollaboratorClient):
    name = "loyalty"

    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(base_url or settings.loyalty_api_base, timeout, transport)

    async def redeem(self, customer_id: str, points: int) -> Decimal:
        """Redeem points and return the discount they buy"""
        response = await self._post("/loyalty/redeem", {"customer_id": customer_id, "points": points})
        return Decimal(str(response.json()["discount_amount"]))

    async def accrue(self, customer_id: str, payment_id: str, amount: str, method: str) -> None:
        await self._post(
            "/loyalty/accrue",
            {"customer_id": customer_id, "payment_id": payment_id, "amount": amount, "method": method},
        )
