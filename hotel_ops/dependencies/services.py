from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from hotel_ops.dependencies.auth import Role, User, role_required
from hotel_ops.notifications.repository import NotificationRepository
from hotel_ops.notifications.worker import DispatchWorker
from hotel_ops.tickets.events import TicketChangeFeed
from hotel_ops.tickets.service import TicketService

require_staff = role_required(Role.STAFF)
require_dispatcher = role_required(Role.SERVICE, Role.OWNER)

StaffUser = Annotated[User, Depends(require_staff)]
DispatcherUser = Annotated[User, Depends(require_dispatcher)]


def _from_state(request: Request, name: str, label: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{label} is not configured")
    return value


async def get_ticket_service(request: Request) -> TicketService:
    return _from_state(request, "ticket_service", "Ticket service")


async def get_change_feed(request: Request) -> TicketChangeFeed:
    return _from_state(request, "ticket_feed", "Ticket change feed")


async def get_dispatch_worker(request: Request) -> DispatchWorker:
    return _from_state(request, "dispatch_worker", "Dispatch worker")


async def get_notification_repository(request: Request) -> NotificationRepository:
    return _from_state(request, "notification_repository", "Notification store")
