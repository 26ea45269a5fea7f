"""Client for the email relay endpoint (POST {email, subject, message, imageData?})."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import httpx

from app.errors import RelayError

logger = logging.getLogger(__name__)

RELAY_TIMEOUT_S = 30.0


@dataclass(frozen=True)
class EmailNotification:
    email: str
    subject: str
    message: str
    image_data: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "email": self.email,
            "subject": self.subject,
            "message": self.message,
        }
        if self.image_data:
            payload["imageData"] = self.image_data
        return payload


class EmailRelayClient:
    """Posts notifications to the relay. Raises RelayError on any failure."""

    def __init__(
        self,
        endpoint: str,
        base_url: str = "",
        mock: bool = False,
        timeout_s: float = RELAY_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = endpoint if endpoint.startswith(("http://", "https://")) else urljoin(base_url, endpoint)
        self.mock = mock
        self.timeout_s = timeout_s
        self._transport = transport

    async def send(self, notification: EmailNotification) -> dict[str, Any]:
        if self.mock:
            logger.info(
                "MOCK EMAIL to=%s subject=%r image=%s message=%r",
                notification.email,
                notification.subject,
                bool(notification.image_data),
                notification.message,
            )
            return {"message": "mock", "recipient": notification.email}

        logger.info("Sending email via %s to %s", self.url, notification.email)
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout_s) as client:
                response = await client.post(self.url, json=notification.to_payload())
        except httpx.HTTPError as e:
            raise RelayError(f"Failed to reach email relay: {e}", detail=repr(e)) from e

        if not response.is_success:
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text[:500]
            raise RelayError(
                f"Failed to send email: {response.status_code} {response.reason_phrase}",
                detail=str(body),
            )

        result = response.json()
        logger.info("Email sent: %s", result)
        return result
