from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class Channel(str, Enum):
    """Delivery media supported by the dispatch worker."""

    WHATSAPP = "whatsapp"
    EMAIL = "email"


class JobStatus(str, Enum):
    """States of a ``notification_queue`` row."""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


@dataclass(slots=True)
class NotificationJob:
    """A queued message for one guest on one channel."""

    id: UUID
    booking_id: UUID | None
    channel: str
    template_code: str
    payload: dict[str, Any]
    status: JobStatus
    retry_count: int
    next_attempt_at: datetime | None
    error_message: str | None = None
    created_at: datetime | None = None
    sent_at: datetime | None = None


@dataclass(slots=True)
class BookingContact:
    """Guest and hotel contact details resolved for a job's booking."""

    booking_id: UUID
    guest_name: str | None
    phone: str | None
    email: str | None
    hotel_name: str | None
    hotel_email: str | None
    wa_phone_number_id: str | None


@dataclass(slots=True, frozen=True)
class EmailContent:
    subject: str
    html: str


@dataclass(slots=True, frozen=True)
class FailureOutcome:
    """Bookkeeping written back by the store after a failed attempt."""

    status: JobStatus
    retry_count: int
    next_attempt_at: datetime | None


@dataclass(slots=True)
class JobResult:
    """Outcome of a single job within a dispatch cycle."""

    id: UUID
    status: str
    error: str | None = None
    retry_count: int | None = None
    next_attempt_at: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": str(self.id), "status": self.status}
        if self.error is not None:
            data["error"] = self.error
        if self.retry_count is not None:
            data["retry_count"] = self.retry_count
        if self.next_attempt_at is not None:
            data["next_attempt_at"] = self.next_attempt_at.isoformat()
        return data


@dataclass(slots=True)
class DispatchSummary:
    """Result of one dispatch cycle, reported with HTTP 200 even on failures."""

    processed: int = 0
    results: list[JobResult] = field(default_factory=list)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def claimed(self) -> int:
        return len(self.results)

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "processed": self.processed,
            "results": [result.as_dict() for result in self.results],
        }
        if self.error is not None:
            data["error"] = self.error
        return data
