"""
n8n Webhook Client

Posts campaign payloads to an n8n workflow webhook. The response body is
kept as JSON when n8n returns JSON and as an empty dict otherwise, so the
campaign row always stores something inspectable.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class WebhookDeliveryError(Exception):
    """Raised when the webhook could not be reached at all."""
    pass


@dataclass
class WebhookResult:
    """What n8n answered."""
    status_code: int
    ok: bool
    body: Dict[str, Any] = field(default_factory=dict)


class WebhookClient:
    """
    Async client for outbound n8n webhooks.

    Usage:
        async with WebhookClient(timeout=30) as webhooks:
            result = await webhooks.fire(url, payload)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "WebhookClient":
        return cls(timeout=float(settings.WEBHOOK_TIMEOUT), **kwargs)

    async def fire(self, url: str, payload: Dict[str, Any]) -> WebhookResult:
        """
        POST the payload to the webhook URL.

        Raises:
            WebhookDeliveryError: Connection failure or timeout. A non-2xx
                answer is not an exception; it is reported via result.ok.
        """
        logger.info(f"Firing webhook {url}")

        try:
            response = await self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery to {url} failed: {e}")
            raise WebhookDeliveryError(str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if not response.is_success:
            logger.warning(f"Webhook {url} answered HTTP {response.status_code}")

        return WebhookResult(
            status_code=response.status_code,
            ok=response.is_success,
            body=body,
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
