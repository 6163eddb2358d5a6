"""Settlement (bank) API client"""

from decimal import Decimal

import httpx

from payment_orchestrator.config import settings
from payment_orchestrator.domain.exceptions import CollaboratorUnavailableError, InsufficientFundsError
from payment_orchestrator.domain.models import SettlementResult
from payment_orchestrator.infrastructure.clients.base import CollaboratorClient
from payment_orchestrator.infrastructure.observability.metrics import settlement_latency_histogram


class SettlementClient(CollaboratorClient):
    """Client for the external settlement system"""

    name = "settlement"

    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(
            base_url or settings.settlement_api_base,
            timeout or settings.settlement_timeout_seconds,
            transport,
        )

    async def process(self, payment_id: str, amount: Decimal, currency: str, correlation_id: str) -> SettlementResult:
        """
        Move funds for a payment.

        The correlation ID travels as the Idempotency-Key header, so repeating
        a call for the same payment attempt never settles twice.

        Raises:
            InsufficientFundsError: Settlement answered 402
            CollaboratorUnavailableError: On timeout, 5xx, network failure or an unreadable body
        """
        with settlement_latency_histogram.time():
            response = await self._request(
                "POST",
                "/settlements",
                json={"payment_id": payment_id, "amount": str(amount), "currency": currency},
                headers={"Idempotency-Key": correlation_id},
            )

        if response.status_code == 402:
            raise InsufficientFundsError(_error_text(response) or "Insufficient funds")

        try:
            data = response.json()
        except ValueError as e:
            raise CollaboratorUnavailableError(self.name, "Invalid settlement response") from e

        if response.is_error:
            return SettlementResult(
                success=False,
                error=data.get("error") or f"Settlement rejected: {response.status_code}",
            )

        return SettlementResult(
            success=bool(data.get("success")),
            transaction_id=data.get("transaction_id"),
            error=data.get("error"),
        )


def _error_text(response: httpx.Response) -> str | None:
    """The JSON ``error`` field, or None when the body is not a JSON object"""
    try:
        data = response.json()
    except ValueError:
        return None
    return data.get("error") if isinstance(data, dict) else None
