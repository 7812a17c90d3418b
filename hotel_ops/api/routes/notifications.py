from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from hotel_ops.dependencies.auth import settings_for
from hotel_ops.dependencies.services import (
    DispatcherUser,
    StaffUser,
    get_dispatch_worker,
    get_notification_repository,
)
from hotel_ops.notifications.models import Channel, JobStatus
from hotel_ops.notifications.repository import NotificationRepository
from hotel_ops.notifications.worker import DispatchWorker

router = APIRouter(prefix="/notifications", tags=["notifications"])

# Every method except OPTIONS runs a cycle.
_TRIGGER_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"]


class NotificationEnqueueRequest(BaseModel):
    booking_id: UUID
    channel: Channel
    template_code: str = Field(..., min_length=1, max_length=100)
    payload: dict[str, Any] = Field(default_factory=dict)
    not_before: datetime | None = Field(default=None)


class NotificationJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID | None
    channel: str
    template_code: str
    payload: dict[str, Any]
    status: JobStatus
    retry_count: int
    next_attempt_at: datetime | None
    created_at: datetime | None


DispatchWorkerDep = Annotated[DispatchWorker, Depends(get_dispatch_worker)]
NotificationRepositoryDep = Annotated[NotificationRepository, Depends(get_notification_repository)]


@router.options("/dispatch", include_in_schema=False)
async def dispatch_preflight() -> PlainTextResponse:
    return PlainTextResponse("ok")


@router.api_route("/dispatch", methods=_TRIGGER_METHODS, summary="Run one notification dispatch cycle")
async def dispatch_notifications(
    request: Request,
    worker: DispatchWorkerDep,
    _: DispatcherUser,
    batch_size: int | None = Query(default=None, ge=1, le=500),
    max_runtime_ms: int | None = Query(default=None, ge=0),
) -> JSONResponse:
    settings = settings_for(request)
    summary = await worker.run_cycle(
        max_runtime_ms=settings.dispatch_max_runtime_ms if max_runtime_ms is None else max_runtime_ms,
        batch_size=batch_size or settings.dispatch_batch_size,
        inter_batch_delay_ms=settings.dispatch_inter_batch_delay_ms,
    )
    # Failures are reported in the body; the status stays 200.
    return JSONResponse(status_code=200, content=summary.as_dict())


@router.post("", response_model=NotificationJobResponse, status_code=status.HTTP_201_CREATED)
async def enqueue_notification(
    payload: NotificationEnqueueRequest,
    repository: NotificationRepositoryDep,
    _: StaffUser,
) -> NotificationJobResponse:
    job = await repository.enqueue(
        booking_id=payload.booking_id,
        channel=payload.channel.value,
        template_code=payload.template_code,
        payload=payload.payload,
        not_before=payload.not_before,
    )
    return NotificationJobResponse.model_validate(job)
