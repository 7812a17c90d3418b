"""Service-request (ticket) lifecycle: states, persistence, SLA and change feed."""

from .events import TICKET_CHANGE_CHANNEL, TicketChangeFeed
from .models import ServiceTicket, TicketChange, TicketCreation, TicketEvent
from .service import (
    InvalidTicketTransitionError,
    TicketConflictError,
    TicketNotFoundError,
    TicketService,
    TicketServiceError,
)
from .sla import SlaOutcome, SlaSnapshot, sla_snapshot
from .state import (
    TicketAction,
    TicketStateMachine,
    TicketStatus,
    UnknownTicketStatusError,
    normalize_status,
)

__all__ = [
    "TICKET_CHANGE_CHANNEL",
    "InvalidTicketTransitionError",
    "ServiceTicket",
    "SlaOutcome",
    "SlaSnapshot",
    "TicketAction",
    "TicketChange",
    "TicketChangeFeed",
    "TicketConflictError",
    "TicketCreation",
    "TicketEvent",
    "TicketNotFoundError",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "UnknownTicketStatusError",
    "normalize_status",
    "sla_snapshot",
]
