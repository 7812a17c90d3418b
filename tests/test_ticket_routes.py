from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from fastapi.testclient import TestClient
from unittest.mock import AsyncMock
import pytest

from hotel_ops.api.routes import tickets as ticket_routes
from hotel_ops.main import create_app
from hotel_ops.tickets.models import ServiceTicket, TicketCreation, TicketEvent
from hotel_ops.tickets.service import InvalidTicketTransitionError, TicketConflictError, TicketNotFoundError
from hotel_ops.tickets.state import TicketAction, TicketStatus, UnknownTicketStatusError

STAFF = {"Authorization": "Bearer staff-token"}


def _make_ticket(*, status: TicketStatus = TicketStatus.REQUESTED) -> ServiceTicket:
    now = datetime.now(timezone.utc)
    return ServiceTicket(
        id=uuid4(),
        service_key="towels",
        room="204",
        booking_code="BK1",
        status=status,
        sla_minutes=30,
        sla_deadline=now + timedelta(minutes=30),
        created_at=now,
        updated_at=now,
        created_by="guest",
        updated_by="guest",
    )


@pytest.fixture
def ticket_client(settings):
    app = create_app()
    app.state.settings = settings
    service = AsyncMock()

    async def override_service():
        return service

    app.dependency_overrides[ticket_routes.get_ticket_service] = override_service

    client = TestClient(app)
    try:
        yield client, service
    finally:
        app.dependency_overrides.clear()


def test_guest_can_create_ticket(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket()
    service.create_ticket = AsyncMock(return_value=TicketCreation(ticket=ticket))

    response = client.post("/tickets", json={"service_key": "towels", "room": "204", "booking_code": "BK1"})

    assert response.status_code == 201
    body = response.json()
    assert body["id"] == str(ticket.id)
    assert body["status"] == "Requested"
    assert body["deduped"] is False
    assert body["next_action"] == "accept"
    assert body["sla"]["remaining_text"] is not None
    assert service.create_ticket.await_args.kwargs["actor"] == "guest"


def test_duplicate_request_returns_existing_ticket(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket()
    service.create_ticket = AsyncMock(return_value=TicketCreation(ticket=ticket, deduped=True))

    response = client.post("/tickets", json={"service_key": "towels", "room": "204"})

    assert response.status_code == 200
    assert response.json()["deduped"] is True


def test_create_ticket_validates_sla_minutes(ticket_client):
    client, _ = ticket_client

    response = client.post("/tickets", json={"service_key": "towels", "sla_minutes": 0})

    assert response.status_code == 422


def test_create_ticket_strips_whitespace_before_service_call(ticket_client):
    client, service = ticket_client
    service.create_ticket = AsyncMock(return_value=TicketCreation(ticket=_make_ticket()))

    blank = client.post("/tickets", json={"service_key": "   "})
    response = client.post("/tickets", json={"service_key": " towels ", "room": " 204 ", "booking_code": "BK1 "})

    assert blank.status_code == 422
    assert response.status_code == 201
    kwargs = service.create_ticket.await_args.kwargs
    assert (kwargs["service_key"], kwargs["room"], kwargs["booking_code"]) == ("towels", "204", "BK1")


def test_listing_requires_staff(ticket_client):
    client, _ = ticket_client

    response = client.get("/tickets")

    assert response.status_code == 403


def test_list_tickets_normalizes_status_filter(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket(status=TicketStatus.IN_PROGRESS)
    service.list_tickets = AsyncMock(return_value=[ticket])

    response = client.get("/tickets", params={"status": "in progress"}, headers=STAFF)

    assert response.status_code == 200
    assert response.json()[0]["status"] == "InProgress"
    service.list_tickets.assert_awaited_with(status=TicketStatus.IN_PROGRESS, open_only=False, limit=100)


def test_list_tickets_rejects_unknown_status(ticket_client):
    client, _ = ticket_client

    response = client.get("/tickets", params={"status": "escalated"}, headers=STAFF)

    assert response.status_code == 400


def test_get_ticket_includes_sla_for_guest_tracker(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket(status=TicketStatus.ACCEPTED)
    service.get_ticket = AsyncMock(return_value=ticket)

    response = client.get(f"/tickets/{ticket.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["sla"]["sla_minutes"] == 30
    assert body["sla"]["overdue"] is False
    assert body["allowed_actions"] == ["start"]


def test_get_ticket_returns_404_when_missing(ticket_client):
    client, service = ticket_client
    service.get_ticket = AsyncMock(side_effect=TicketNotFoundError("missing"))

    response = client.get(f"/tickets/{uuid4()}")

    assert response.status_code == 404


def test_apply_action_returns_updated_ticket(ticket_client):
    client, service = ticket_client
    ticket = replace(_make_ticket(status=TicketStatus.ACCEPTED), accepted_at=datetime.now(timezone.utc))
    service.apply_action = AsyncMock(return_value=ticket)

    response = client.post(
        f"/tickets/{ticket.id}/actions/accept",
        json={"expected_status": "new"},
        headers=STAFF,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "Accepted"
    assert response.json()["next_action"] == "start"
    args = service.apply_action.await_args
    assert args.args == (ticket.id, TicketAction.ACCEPT)
    assert args.kwargs["actor"] == "maria"
    assert args.kwargs["expected_status"] == TicketStatus.REQUESTED


def test_apply_action_without_body(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket(status=TicketStatus.IN_PROGRESS)
    service.apply_action = AsyncMock(return_value=ticket)

    response = client.post(f"/tickets/{ticket.id}/actions/start", headers=STAFF)

    assert response.status_code == 200
    assert service.apply_action.await_args.kwargs["expected_status"] is None


@pytest.mark.parametrize("error", [InvalidTicketTransitionError("nope"), TicketConflictError("raced")])
def test_apply_action_conflicts_map_to_409(ticket_client, error):
    client, service = ticket_client
    service.apply_action = AsyncMock(side_effect=error)

    response = client.post(f"/tickets/{uuid4()}/actions/resolve", headers=STAFF)

    assert response.status_code == 409


def test_unknown_action_is_rejected(ticket_client):
    client, _ = ticket_client

    response = client.post(f"/tickets/{uuid4()}/actions/reopen", headers=STAFF)

    assert response.status_code == 422


def test_guest_cannot_apply_actions(ticket_client):
    client, service = ticket_client
    service.apply_action = AsyncMock()

    response = client.post(f"/tickets/{uuid4()}/actions/accept")

    assert response.status_code == 403
    service.apply_action.assert_not_awaited()


def test_legacy_patch_unknown_status_is_400(ticket_client):
    client, service = ticket_client
    service.change_status = AsyncMock(side_effect=UnknownTicketStatusError("Unknown ticket status: 'x'"))

    response = client.patch(f"/tickets/{uuid4()}", json={"status": "x"}, headers=STAFF)

    assert response.status_code == 400


def test_legacy_patch_applies_status(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket(status=TicketStatus.DONE)
    ticket = replace(ticket, done_at=ticket.created_at + timedelta(minutes=12))
    service.change_status = AsyncMock(return_value=ticket)

    response = client.patch(f"/tickets/{ticket.id}", json={"status": "resolved"}, headers=STAFF)

    assert response.status_code == 200
    body = response.json()
    assert body["sla"]["outcome"] == "within"
    assert body["sla"]["minutes_to_close"] == 12
    assert body["next_action"] is None


def test_events_endpoint_returns_history(ticket_client):
    client, service = ticket_client
    ticket = _make_ticket()
    event = TicketEvent(
        id=uuid4(),
        ticket_id=ticket.id,
        action="create",
        from_status=None,
        to_status=TicketStatus.REQUESTED,
        actor="guest",
        note="Request created",
        created_at=ticket.created_at,
    )
    service.get_ticket = AsyncMock(return_value=ticket)
    service.get_events = AsyncMock(return_value=[event])

    response = client.get(f"/tickets/{ticket.id}/events", headers=STAFF)

    assert response.status_code == 200
    assert response.json()[0]["action"] == "create"
    assert response.json()[0]["from_status"] is None


def test_missing_service_returns_503(settings):
    app = create_app()
    app.state.settings = settings
    client = TestClient(app)

    response = client.get("/tickets", headers=STAFF)

    assert response.status_code == 503
