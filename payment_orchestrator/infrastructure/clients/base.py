"""Shared httpx plumbing for collaborator adapters"""

from typing import Any

import httpx

from payment_orchestrator.config import settings
from payment_orchestrator.domain.exceptions import CollaboratorUnavailableError
from payment_orchestrator.infrastructure.observability.metrics import collaborator_failures_counter


class CollaboratorClient:
    """
    Base for the external collaborator adapters.

    Each call opens its own AsyncClient with the adapter's timeout. Timeouts,
    network errors and 5xx responses become CollaboratorUnavailableError;
    every other response is handed back for the adapter to interpret.
    """

    name = "collaborator"

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.request(method, f"{self.base_url}{path}", **kwargs)
            except httpx.TimeoutException as e:
                collaborator_failures_counter.labels(collaborator=self.name).inc()
                raise CollaboratorUnavailableError(self.name, f"{self.name} timeout after {self.timeout}s") from e
            except httpx.RequestError as e:
                collaborator_failures_counter.labels(collaborator=self.name).inc()
                raise CollaboratorUnavailableError(self.name, f"{self.name} unreachable: {e}") from e

        if response.status_code >= 500:
            collaborator_failures_counter.labels(collaborator=self.name).inc()
            raise CollaboratorUnavailableError(self.name, f"{self.name} error: {response.status_code}")
        return response

    async def _post(self, path: str, payload: dict, **kwargs: Any) -> httpx.Response:
        """POST for fire-and-forget calls; any non-2xx response raises"""
        response = await self._request("POST", path, json=payload, **kwargs)
        response.raise_for_status()
        return response
