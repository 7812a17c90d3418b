import json
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

import httpx

from .utils import iter_sse_events

TICKET_CHANGED_EVENT = "ticket_changed"


class APIError(RuntimeError):
    """Error raised for failed calls against the hotel operations API."""

    def __init__(self, message: str, *, status_code: int | None = None, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    def __str__(self) -> str:
        prefix = f"[{self.status_code}] " if self.status_code is not None else ""
        return f"{prefix}{super().__str__()}"


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or "Unknown server error"

    if isinstance(data, Mapping):
        detail = data.get("detail")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list) and detail and isinstance(detail[0], Mapping) and "msg" in detail[0]:
            return str(detail[0]["msg"])
    return "The request could not be completed"


@dataclass(slots=True)
class HotelOpsAPIClient:
    """Small synchronous client used by the staff and guest console."""

    base_url: str
    token: str | None = None
    timeout: float = 10.0
    http: httpx.Client | None = None

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = self._build_url(path)
        headers: dict[str, str] = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        headers.update(kwargs.pop("headers", {}))

        try:
            if self.http is not None:
                response = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
            else:
                response = httpx.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except httpx.HTTPError as exc:
            raise APIError(f"API request failed: {exc}") from exc

        if response.status_code >= 400:
            message = _extract_error_message(response)
            raise APIError(message, status_code=response.status_code, response=response)

        if response.status_code == 204 or not response.content:
            return None

        content_type = response.headers.get("Content-Type", "")
        if "application/json" in content_type:
            return response.json()
        return response.text

    def _build_url(self, path: str) -> str:
        normalized = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url.rstrip('/')}{normalized}"

    # Health and identity
    def ping(self) -> Mapping[str, Any]:
        return self._request("GET", "/ping")

    def whoami(self) -> Mapping[str, Any]:
        return self._request("GET", "/ping/whoami")

    # Tickets
    def list_tickets(self, *, status: str | None = None, open_only: bool = False) -> list[dict[str, Any]]:
        params: dict[str, Any] = {}
        if status:
            params["status"] = status
        if open_only:
            params["open"] = "true"
        data = self._request("GET", "/tickets", params=params)
        return list(data or [])

    def create_ticket(
        self,
        *,
        service_key: str,
        room: str | None = None,
        booking_code: str | None = None,
        sla_minutes: int | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"service_key": service_key, "room": room, "booking_code": booking_code}
        if sla_minutes is not None:
            payload["sla_minutes"] = sla_minutes
        return self._request("POST", "/tickets", json=payload)

    def get_ticket(self, ticket_id: str) -> dict[str, Any]:
        return self._request("GET", f"/tickets/{ticket_id}")

    def apply_action(
        self,
        ticket_id: str,
        action: str,
        *,
        expected_status: str | None = None,
        note: str | None = None,
    ) -> dict[str, Any]:
        payload = {"expected_status": expected_status, "note": note}
        return self._request("POST", f"/tickets/{ticket_id}/actions/{action}", json=payload)

    def get_events(self, ticket_id: str) -> list[dict[str, Any]]:
        data = self._request("GET", f"/tickets/{ticket_id}/events")
        return list(data or [])

    def iter_changes(
        self,
        *,
        max_events: int | None = None,
        idle_timeout: float | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Yield ticket change events from the server-sent change stream.

        Iteration ends after ``max_events`` changes or once the stream has been
        quiet for ``idle_timeout`` seconds; keep-alive frames count as traffic.
        """

        headers = {"Accept": "text/event-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        timeout = httpx.Timeout(self.timeout, read=idle_timeout)
        open_stream = self.http.stream if self.http is not None else httpx.stream
        received = 0
        try:
            with open_stream("GET", self._build_url("/tickets/stream"), headers=headers, timeout=timeout) as response:
                if response.status_code >= 400:
                    response.read()
                    raise APIError(
                        _extract_error_message(response), status_code=response.status_code, response=response
                    )
                for event, data in iter_sse_events(response.iter_lines()):
                    if event != TICKET_CHANGED_EVENT:
                        continue
                    yield json.loads(data)
                    received += 1
                    if max_events is not None and received >= max_events:
                        return
        except httpx.ReadTimeout:
            return
        except httpx.HTTPError as exc:
            raise APIError(f"Change stream failed: {exc}") from exc

    # Notifications
    def dispatch_notifications(self, *, batch_size: int | None = None) -> dict[str, Any]:
        params = {"batch_size": batch_size} if batch_size else None
        return self._request("POST", "/notifications/dispatch", params=params)

    def enqueue_notification(
        self,
        *,
        booking_id: str,
        channel: str,
        template_code: str,
        payload: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        body = {
            "booking_id": booking_id,
            "channel": channel,
            "template_code": template_code,
            "payload": dict(payload or {}),
        }
        return self._request("POST", "/notifications", json=body)
