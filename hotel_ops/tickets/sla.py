"""SLA countdown and completion judgment for service tickets.

All functions take ``now`` explicitly so the same instant always renders the
same value; callers refresh by calling again with a later clock reading.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from .models import ServiceTicket
from .state import TicketStatus


class SlaOutcome(str, Enum):
    WITHIN = "within"
    BREACHED = "breached"


@dataclass(slots=True, frozen=True)
class SlaSnapshot:
    """What a staff board or guest tracker shows for a ticket's SLA."""

    sla_minutes: int
    deadline: datetime
    remaining_seconds: int | None
    remaining_text: str | None
    overdue: bool
    outcome: SlaOutcome | None = None
    minutes_to_close: int | None = None


def sla_deadline(created_at: datetime, sla_minutes: int) -> datetime:
    return created_at + timedelta(minutes=sla_minutes)


def remaining(deadline: datetime, now: datetime) -> timedelta:
    """Time left until ``deadline``, never negative."""

    return max(timedelta(0), deadline - now)


def format_remaining(delta: timedelta) -> str:
    total = int(delta.total_seconds())
    minutes, seconds = divmod(total, 60)
    return f"{minutes}:{seconds:02d}"


def minutes_between(start: datetime, end: datetime) -> int:
    return round((end - start).total_seconds() / 60)


def judge_completion(ticket: ServiceTicket) -> SlaOutcome:
    if ticket.done_at is None:
        raise ValueError(f"Ticket {ticket.id} has not been completed")
    return SlaOutcome.WITHIN if ticket.done_at <= ticket.sla_deadline else SlaOutcome.BREACHED


def sla_snapshot(ticket: ServiceTicket, now: datetime | None = None) -> SlaSnapshot:
    now = now or datetime.now(timezone.utc)
    if ticket.status == TicketStatus.DONE and ticket.done_at is not None:
        outcome = judge_completion(ticket)
        return SlaSnapshot(
            sla_minutes=ticket.sla_minutes,
            deadline=ticket.sla_deadline,
            remaining_seconds=None,
            remaining_text=None,
            overdue=outcome == SlaOutcome.BREACHED,
            outcome=outcome,
            minutes_to_close=minutes_between(ticket.created_at, ticket.done_at),
        )
    if ticket.status == TicketStatus.CANCELLED:
        return SlaSnapshot(
            sla_minutes=ticket.sla_minutes,
            deadline=ticket.sla_deadline,
            remaining_seconds=None,
            remaining_text=None,
            overdue=False,
        )

    left = remaining(ticket.sla_deadline, now)
    return SlaSnapshot(
        sla_minutes=ticket.sla_minutes,
        deadline=ticket.sla_deadline,
        remaining_seconds=int(left.total_seconds()),
        remaining_text=format_remaining(left),
        overdue=now > ticket.sla_deadline,
    )
