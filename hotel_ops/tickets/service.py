from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import UUID, uuid4

from opentelemetry import trace

from hotel_ops.core.logging import log_context

from .models import ServiceTicket, TicketCreation, TicketEvent
from .repository import TicketRepository
from .sla import sla_deadline
from .state import TicketAction, TicketStateMachine, TicketStatus, normalize_status

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""


class InvalidTicketTransitionError(TicketServiceError):
    """Raised when an action is not legal from the ticket's current state."""


class TicketConflictError(TicketServiceError):
    """Raised when the ticket changed underneath the caller."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


@dataclass(slots=True)
class TicketService:
    """High level orchestration for the service-request lifecycle."""

    repository: TicketRepository
    default_sla_minutes: int = 30
    dedupe_window: timedelta = timedelta(minutes=5)
    clock: Callable[[], datetime] = field(default=_utcnow)

    async def create_ticket(
        self,
        *,
        service_key: str,
        room: str | None,
        booking_code: str | None,
        actor: str,
        sla_minutes: int | None = None,
    ) -> TicketCreation:
        service_key = service_key.strip()
        if not service_key:
            raise ValueError("service_key must not be blank")
        room = _clean(room)
        booking_code = _clean(booking_code)
        now = self.clock()
        duplicate = await self.repository.find_requested_duplicate(
            service_key=service_key,
            room=room,
            booking_code=booking_code,
            since=now - self.dedupe_window,
        )
        if duplicate is not None:
            logger.info("Request for %s in room %s deduplicated to %s", service_key, room, duplicate.id)
            return TicketCreation(ticket=duplicate, deduped=True)

        minutes = sla_minutes if sla_minutes is not None else self.default_sla_minutes
        ticket = await self.repository.create_ticket(
            ticket_id=uuid4(),
            service_key=service_key,
            room=room,
            booking_code=booking_code,
            status=TicketStateMachine.initial_state(),
            sla_minutes=minutes,
            sla_deadline=sla_deadline(now, minutes),
            created_at=now,
            actor=actor,
        )
        return TicketCreation(ticket=ticket)

    async def get_ticket(self, ticket_id: UUID) -> ServiceTicket:
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        open_only: bool = False,
        limit: int = 100,
    ) -> list[ServiceTicket]:
        if status is not None:
            statuses: list[TicketStatus] | None = [status]
        elif open_only:
            statuses = [item for item in TicketStatus if not item.is_terminal]
        else:
            statuses = None
        return await self.repository.list_tickets(statuses=statuses, limit=limit)

    async def apply_action(
        self,
        ticket_id: UUID,
        action: TicketAction,
        *,
        actor: str,
        expected_status: TicketStatus | None = None,
        note: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> ServiceTicket:
        with log_context(ticket=ticket_id, action=action.value), tracer.start_as_current_span("tickets.apply_action") as span:
            span.set_attribute("ticket.id", str(ticket_id))
            span.set_attribute("ticket.action", action.value)

            ticket = await self.get_ticket(ticket_id)
            if expected_status is not None and ticket.status != expected_status:
                raise TicketConflictError(
                    f"Ticket {ticket_id} is {ticket.status.value}, expected {expected_status.value}"
                )
            if not TicketStateMachine.can_apply(ticket.status, action):
                raise InvalidTicketTransitionError(
                    f"Cannot {action.value} ticket in state {ticket.status.value}"
                )

            target = TicketStateMachine.target_of(action)
            updated = await self.repository.apply_transition(
                ticket_id=ticket_id,
                from_status=ticket.status,
                to_status=target,
                action=action.value,
                actor=actor,
                at=self.clock(),
                note=note or f"{ticket.status.value} -> {target.value}",
                metadata=metadata,
            )
            if updated is None:
                raise TicketConflictError(f"Ticket {ticket_id} was modified concurrently")

        logger.info("Ticket %s moved %s -> %s by %s", ticket_id, ticket.status.value, target.value, actor)
        return updated

    async def change_status(
        self,
        ticket_id: UUID,
        raw_status: object,
        *,
        actor: str,
        note: str = "",
    ) -> ServiceTicket:
        """Apply a legacy status patch by resolving it to the single matching action."""

        target = normalize_status(raw_status)
        ticket = await self.get_ticket(ticket_id)
        action = TicketStateMachine.action_for_transition(ticket.status, target)
        if action is None:
            raise InvalidTicketTransitionError(
                f"Cannot move ticket from {ticket.status.value} to {target.value}"
            )
        return await self.apply_action(
            ticket_id,
            action,
            actor=actor,
            expected_status=ticket.status,
            note=note,
        )

    async def get_events(self, ticket_id: UUID) -> list[TicketEvent]:
        return await self.repository.get_events(ticket_id)
