from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from hotel_ops.dependencies.auth import CurrentUser
from hotel_ops.dependencies.services import StaffUser, get_change_feed, get_ticket_service
from hotel_ops.tickets.events import TicketChangeFeed
from hotel_ops.tickets.models import ServiceTicket, TicketEvent
from hotel_ops.tickets.service import (
    InvalidTicketTransitionError,
    TicketConflictError,
    TicketNotFoundError,
    TicketService,
)
from hotel_ops.tickets.sla import SlaOutcome, sla_snapshot
from hotel_ops.tickets.state import (
    TicketAction,
    TicketStateMachine,
    TicketStatus,
    UnknownTicketStatusError,
    normalize_status,
)

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    service_key: str = Field(..., min_length=1, max_length=100)
    room: str | None = Field(default=None, max_length=20)
    booking_code: str | None = Field(default=None, max_length=64)
    sla_minutes: int | None = Field(default=None, ge=1, le=24 * 60)


class TicketActionRequest(BaseModel):
    expected_status: str | None = Field(default=None)
    note: str | None = Field(default=None, max_length=500)
    metadata: dict[str, Any] | None = Field(default=None)


class TicketStatusPatchRequest(BaseModel):
    status: str = Field(..., min_length=1)
    note: str | None = Field(default=None, max_length=500)


class SlaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sla_minutes: int
    deadline: datetime
    remaining_seconds: int | None
    remaining_text: str | None
    overdue: bool
    outcome: SlaOutcome | None
    minutes_to_close: int | None


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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
    accepted_at: datetime | None
    started_at: datetime | None
    done_at: datetime | None
    cancelled_at: datetime | None
    next_action: TicketAction | None
    allowed_actions: list[TicketAction]
    sla: SlaResponse
    deduped: bool = False


class TicketEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_id: UUID
    action: str
    from_status: TicketStatus | None
    to_status: TicketStatus
    actor: str
    note: str
    metadata: dict[str, Any]
    created_at: datetime


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
ChangeFeedDep = Annotated[TicketChangeFeed, Depends(get_change_feed)]


def _to_response(ticket: ServiceTicket, *, deduped: bool = False, now: datetime | None = None) -> TicketResponse:
    snapshot = sla_snapshot(ticket, now or datetime.now(timezone.utc))
    return TicketResponse(
        id=ticket.id,
        service_key=ticket.service_key,
        room=ticket.room,
        booking_code=ticket.booking_code,
        status=ticket.status,
        sla_minutes=ticket.sla_minutes,
        sla_deadline=ticket.sla_deadline,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        created_by=ticket.created_by,
        updated_by=ticket.updated_by,
        accepted_at=ticket.accepted_at,
        started_at=ticket.started_at,
        done_at=ticket.done_at,
        cancelled_at=ticket.cancelled_at,
        next_action=TicketStateMachine.next_action(ticket.status),
        allowed_actions=TicketStateMachine.allowed_actions(ticket.status),
        sla=SlaResponse.model_validate(snapshot),
        deduped=deduped,
    )


def _to_event_response(event: TicketEvent) -> TicketEventResponse:
    return TicketEventResponse.model_validate(event)


def _parse_status(raw: str | None) -> TicketStatus | None:
    if raw is None:
        return None
    try:
        return normalize_status(raw)
    except UnknownTicketStatusError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    response: Response,
    service: TicketServiceDep,
    user: CurrentUser,
) -> TicketResponse:
    creation = await service.create_ticket(
        service_key=payload.service_key,
        room=payload.room,
        booking_code=payload.booking_code,
        actor=user.username,
        sla_minutes=payload.sla_minutes,
    )
    if creation.deduped:
        response.status_code = status.HTTP_200_OK
    return _to_response(creation.ticket, deduped=creation.deduped)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    _: StaffUser,
    status_filter: str | None = Query(default=None, alias="status"),
    open_only: bool = Query(default=False, alias="open"),
    limit: int = Query(default=100, ge=1, le=500),
) -> list[TicketResponse]:
    tickets = await service.list_tickets(status=_parse_status(status_filter), open_only=open_only, limit=limit)
    now = datetime.now(timezone.utc)
    return [_to_response(ticket, now=now) for ticket in tickets]


@router.get("/stream", summary="Server-Sent Events stream of ticket changes")
async def stream_ticket_changes(feed: ChangeFeedDep, _: CurrentUser) -> StreamingResponse:
    return StreamingResponse(
        feed.iter_sse(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: UUID, service: TicketServiceDep, _: CurrentUser) -> TicketResponse:
    try:
        ticket = await service.get_ticket(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _to_response(ticket)


@router.post("/{ticket_id}/actions/{action}", response_model=TicketResponse)
async def apply_ticket_action(
    ticket_id: UUID,
    action: TicketAction,
    service: TicketServiceDep,
    user: StaffUser,
    payload: TicketActionRequest | None = None,
) -> TicketResponse:
    payload = payload or TicketActionRequest()
    try:
        ticket = await service.apply_action(
            ticket_id,
            action,
            actor=user.username,
            expected_status=_parse_status(payload.expected_status),
            note=payload.note or "",
            metadata=payload.metadata,
        )
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InvalidTicketTransitionError, TicketConflictError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _to_response(ticket)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def patch_ticket_status(
    ticket_id: UUID,
    payload: TicketStatusPatchRequest,
    service: TicketServiceDep,
    user: StaffUser,
) -> TicketResponse:
    try:
        ticket = await service.change_status(ticket_id, payload.status, actor=user.username, note=payload.note or "")
    except UnknownTicketStatusError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InvalidTicketTransitionError, TicketConflictError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _to_response(ticket)


@router.get("/{ticket_id}/events", response_model=list[TicketEventResponse])
async def get_ticket_events(ticket_id: UUID, service: TicketServiceDep, _: StaffUser) -> list[TicketEventResponse]:
    try:
        await service.get_ticket(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    events = await service.get_events(ticket_id)
    return [_to_event_response(event) for event in events]
