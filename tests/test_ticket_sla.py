from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from hotel_ops.tickets.models import ServiceTicket
from hotel_ops.tickets.sla import (
    SlaOutcome,
    format_remaining,
    judge_completion,
    remaining,
    sla_deadline,
    sla_snapshot,
)
from hotel_ops.tickets.state import TicketStatus

CREATED = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


def _ticket(status: TicketStatus = TicketStatus.REQUESTED, **overrides) -> ServiceTicket:
    data = dict(
        id=uuid4(),
        service_key="towels",
        room="204",
        booking_code="BK1",
        status=status,
        sla_minutes=30,
        sla_deadline=sla_deadline(CREATED, 30),
        created_at=CREATED,
        updated_at=CREATED,
        created_by="guest",
        updated_by="guest",
    )
    data.update(overrides)
    return ServiceTicket(**data)


def test_deadline_adds_sla_minutes():
    assert sla_deadline(CREATED, 45) == CREATED + timedelta(minutes=45)


def test_remaining_never_negative():
    deadline = CREATED + timedelta(minutes=5)
    assert remaining(deadline, CREATED) == timedelta(minutes=5)
    assert remaining(deadline, deadline + timedelta(minutes=3)) == timedelta(0)


def test_format_remaining_uses_minutes_and_padded_seconds():
    assert format_remaining(timedelta(minutes=4, seconds=7)) == "4:07"
    assert format_remaining(timedelta(0)) == "0:00"
    assert format_remaining(timedelta(minutes=75)) == "75:00"


def test_countdown_is_stable_for_same_instant_and_decreases_over_time():
    ticket = _ticket()
    now = CREATED + timedelta(minutes=10)
    first = sla_snapshot(ticket, now)
    again = sla_snapshot(ticket, now)
    later = sla_snapshot(ticket, now + timedelta(seconds=1))

    assert first == again
    assert first.remaining_text == "20:00"
    assert later.remaining_seconds == first.remaining_seconds - 1


def test_open_ticket_past_deadline_is_overdue_with_zero_remaining():
    snapshot = sla_snapshot(_ticket(TicketStatus.IN_PROGRESS), CREATED + timedelta(minutes=31))
    assert snapshot.overdue is True
    assert snapshot.remaining_seconds == 0
    assert snapshot.outcome is None


def test_done_ticket_gets_static_judgment():
    on_time = _ticket(TicketStatus.DONE, done_at=CREATED + timedelta(minutes=29))
    late = _ticket(TicketStatus.DONE, done_at=CREATED + timedelta(minutes=42))

    on_time_snapshot = sla_snapshot(on_time, CREATED + timedelta(hours=5))
    late_snapshot = sla_snapshot(late, CREATED + timedelta(hours=5))

    assert on_time_snapshot.outcome == SlaOutcome.WITHIN
    assert on_time_snapshot.remaining_text is None
    assert on_time_snapshot.minutes_to_close == 29
    assert late_snapshot.outcome == SlaOutcome.BREACHED
    assert late_snapshot.overdue is True


def test_cancelled_ticket_has_no_countdown():
    snapshot = sla_snapshot(_ticket(TicketStatus.CANCELLED, cancelled_at=CREATED), CREATED)
    assert snapshot.remaining_seconds is None
    assert snapshot.outcome is None
    assert snapshot.overdue is False


def test_judge_completion_requires_done_at():
    with pytest.raises(ValueError):
        judge_completion(_ticket(TicketStatus.IN_PROGRESS))
