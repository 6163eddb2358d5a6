"""Transaction ledger client"""

import httpx

from payment_orchestrator.config import settings
from payment_orchestrator.infrastructure.clients.base import CollaboratorClient


class LedgerClient(CollaboratorClient):
    """Records settled payments in the transaction ledger"""

    name = "ledger"

    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(base_url or settings.ledger_api_base, timeout, transport)

    async def record(
        self,
        payment_id: str,
        transaction_id: str,
        sender_id: str,
        recipient_id: str,
        amount: str,
        currency: str,
    ) -> None:
        await self._post(
            "/ledger/entries",
            {
                "payment_id": payment_id,
                "transaction_id": transaction_id,
                "sender_id": sender_id,
                "recipient_id": recipient_id,
                "amount": amount,
                "currency": currency,
            },
            headers={"Idempotency-Key": f"ledger-{payment_id}"},
        )
