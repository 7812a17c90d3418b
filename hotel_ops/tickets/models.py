from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from .state import TicketAction, TicketStatus


@dataclass(slots=True)
class ServiceTicket:
    """A guest service request tracked through the staff lifecycle."""

    id: UUID
    service_key: str
    room: str | None
    booking_code: str | None
    status: TicketStatus
    sla_minutes: int
    sla_deadline: datetime
    created_at: datetime
    updated_at: datetime
    created_by: str
    updated_by: str
    accepted_at: datetime | None = None
    started_at: datetime | None = None
    done_at: datetime | None = None
    cancelled_at: datetime | None = None


@dataclass(slots=True)
class TicketEvent:
    """History entry recording a creation or transition of a ticket."""

    id: UUID
    ticket_id: UUID
    action: str
    from_status: TicketStatus | None
    to_status: TicketStatus
    actor: str
    note: str
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TicketCreation:
    """Outcome of a guest request: the ticket and whether it was an existing duplicate."""

    ticket: ServiceTicket
    deduped: bool = False


@dataclass(slots=True, frozen=True)
class TicketChange:
    """Change notification emitted whenever a ticket row is written."""

    ticket_id: str
    status: str | None
    operation: str

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "TicketChange":
        return cls(
            ticket_id=str(data.get("id", "")),
            status=None if data.get("status") is None else str(data["status"]),
            operation=str(data.get("op", "UPDATE")),
        )

    def as_dict(self) -> dict[str, Any]:
        return {"id": self.ticket_id, "status": self.status, "op": self.operation}


__all__ = [
    "ServiceTicket",
    "TicketAction",
    "TicketChange",
    "TicketCreation",
    "TicketEvent",
    "TicketStatus",
]
