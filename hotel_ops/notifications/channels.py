"""HTTP senders for the WhatsApp Business and transactional email providers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import ProviderNotConfiguredError, ProviderRejectedError

logger = logging.getLogger(__name__)


def _response_detail(response: httpx.Response) -> str:
    text = response.text or ""
    return text[:300]


@dataclass(slots=True)
class WhatsAppSender:
    """Send plain text messages through the WhatsApp Cloud API."""

    client: httpx.AsyncClient
    token: str | None
    api_base: str = "https://graph.facebook.com/v20.0"

    @property
    def configured(self) -> bool:
        return bool(self.token)

    async def send_text(self, phone_number_id: str, to: str, body: str) -> None:
        if not self.token:
            raise ProviderNotConfiguredError("WHATSAPP_TOKEN not set")

        url = f"{self.api_base.rstrip('/')}/{phone_number_id}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "text": {"body": body},
        }
        try:
            response = await self.client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        except httpx.HTTPError as exc:
            raise ProviderRejectedError(f"WhatsApp API request failed: {exc}") from exc

        if not response.is_success:
            raise ProviderRejectedError(
                f"WhatsApp API Error: {response.status_code} {_response_detail(response)}",
                status_code=response.status_code,
            )
        logger.debug("WhatsApp message accepted for %s", to)


@dataclass(slots=True)
class EmailSender:
    """Send HTML email through the Resend HTTP API."""

    client: httpx.AsyncClient
    api_key: str | None
    api_base: str = "https://api.resend.com"

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, *, sender: str, to: str, subject: str, html: str) -> str | None:
        """Send one message and return the provider's message id."""

        if not self.api_key:
            raise ProviderNotConfiguredError("RESEND_API_KEY not set")

        try:
            response = await self.client.post(
                f"{self.api_base.rstrip('/')}/emails",
                json={"from": sender, "to": [to], "subject": subject, "html": html},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as exc:
            raise ProviderRejectedError(f"Email API request failed: {exc}") from exc

        try:
            data: Any = response.json()
        except ValueError:
            data = None

        error = data.get("error") if isinstance(data, dict) else None
        if not response.is_success or error:
            message = error.get("message") if isinstance(error, dict) else error
            raise ProviderRejectedError(
                f"Email API Error: {response.status_code} {message or _response_detail(response)}",
                status_code=response.status_code,
            )
        return data.get("id") if isinstance(data, dict) else None
