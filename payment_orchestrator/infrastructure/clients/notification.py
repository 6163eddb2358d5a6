"""Notification service client"""

from typing import Optional

import httpx

from payment_orchestrator.config import settings
from payment_orchestrator.infrastructure.clients.base import CollaboratorClient


class NotificationClient(CollaboratorClient):
    name = "notification"

    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(base_url or settings.notification_api_base, timeout, transport)

    async def send(
        self,
        payment_id: str,
        customer_id: str,
        event_type: str,
        amount: str,
        currency: str,
        reason: Optional[str] = None,
    ) -> None:
        await self._post(
            "/notifications",
            {
                "payment_id": payment_id,
                "customer_id": customer_id,
                "event_type": event_type,
                "amount": amount,
                "currency": currency,
                "reason": reason,
            },
        )
