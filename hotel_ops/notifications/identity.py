from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from .errors import MagicLinkError, ProviderNotConfiguredError


@dataclass(slots=True)
class MagicLinkIssuer:
    """Obtain one-time sign-in links from the identity provider's admin API."""

    client: httpx.AsyncClient
    base_url: str | None
    service_key: str | None

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.service_key)

    async def generate(self, email: str, *, redirect_to: str | None = None) -> str:
        if not self.base_url or not self.service_key:
            raise ProviderNotConfiguredError("Identity provider not configured")

        body: dict[str, Any] = {"type": "magiclink", "email": email}
        if redirect_to:
            body["redirect_to"] = redirect_to
        try:
            response = await self.client.post(
                f"{self.base_url.rstrip('/')}/auth/v1/admin/generate_link",
                json=body,
                headers={
                    "apikey": self.service_key,
                    "Authorization": f"Bearer {self.service_key}",
                },
            )
        except httpx.HTTPError as exc:
            raise MagicLinkError(f"Magic link request failed: {exc}") from exc

        if not response.is_success:
            raise MagicLinkError(f"Magic link generation failed: {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise MagicLinkError("Magic link response was not JSON") from exc

        link = None
        if isinstance(data, dict):
            properties = data.get("properties")
            if isinstance(properties, dict):
                link = properties.get("action_link")
            link = link or data.get("action_link")
        if not link:
            raise MagicLinkError("Magic link response missing action_link")
        return str(link)
