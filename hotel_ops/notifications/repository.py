from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import asyncpg

from .models import BookingContact, FailureOutcome, JobStatus, NotificationJob


class NotificationRepository:
    """Claim/commit access to ``notification_queue`` through the store's SQL functions.

    Exclusive ownership of claimed rows is guaranteed by
    ``claim_pending_notifications`` (row locks with SKIP LOCKED), never by
    this process.
    """

    _CLAIM_SQL = """
    SELECT id, booking_id, channel, template_code, payload, status, retry_count,
           next_attempt_at, error_message, created_at, sent_at
    FROM claim_pending_notifications($1, $2, $3)
    """

    _MARK_SENT_SQL = "SELECT mark_notification_sent($1)"

    _MARK_FAILED_SQL = """
    SELECT status, retry_count, next_attempt_at
    FROM mark_notification_failed($1, $2, $3, $4)
    """

    _SELECT_CONTACT_SQL = """
    SELECT b.id AS booking_id,
           b.guest_name,
           b.phone,
           b.email,
           h.name AS hotel_name,
           h.email AS hotel_email,
           h.wa_phone_number_id
    FROM bookings b
    LEFT JOIN hotels h ON h.id = b.hotel_id
    WHERE b.id = $1
    """

    _INSERT_JOB_SQL = """
    INSERT INTO notification_queue (id, booking_id, channel, template_code, payload, status, next_attempt_at)
    VALUES ($1, $2, $3, $4, $5::jsonb, 'pending', COALESCE($6, now()))
    RETURNING id, booking_id, channel, template_code, payload, status, retry_count,
              next_attempt_at, error_message, created_at, sent_at
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def claim_pending(
        self,
        limit: int,
        *,
        lease_seconds: int = 300,
        max_retries: int | None = 10,
    ) -> list[NotificationJob]:
        """Claim up to ``limit`` due jobs; expired leases are reclaimed only below ``max_retries``."""

        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._CLAIM_SQL, limit, lease_seconds, max_retries)
        return [self._row_to_job(row) for row in rows]

    async def fetch_contact(self, booking_id: UUID) -> BookingContact | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_CONTACT_SQL, booking_id)
        if row is None:
            return None
        return BookingContact(
            booking_id=_to_uuid(row["booking_id"]),
            guest_name=row["guest_name"],
            phone=row["phone"],
            email=row["email"],
            hotel_name=row["hotel_name"],
            hotel_email=row["hotel_email"],
            wa_phone_number_id=row["wa_phone_number_id"],
        )

    async def mark_sent(self, job_id: UUID) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._MARK_SENT_SQL, job_id)

    async def mark_failed(
        self,
        job_id: UUID,
        error: str,
        *,
        next_attempt_at: datetime,
        max_retries: int | None = None,
    ) -> FailureOutcome:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._MARK_FAILED_SQL, job_id, error, next_attempt_at, max_retries)
        if row is None:
            raise LookupError(f"Notification {job_id} not found")
        return FailureOutcome(
            status=JobStatus(str(row["status"])),
            retry_count=int(row["retry_count"]),
            next_attempt_at=row["next_attempt_at"],
        )

    async def enqueue(
        self,
        *,
        booking_id: UUID,
        channel: str,
        template_code: str,
        payload: dict[str, Any] | None = None,
        not_before: datetime | None = None,
    ) -> NotificationJob:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(
                self._INSERT_JOB_SQL,
                uuid4(),
                booking_id,
                channel,
                template_code,
                json.dumps(payload or {}),
                not_before,
            )
        if row is None:
            raise RuntimeError("Failed to enqueue notification")
        return self._row_to_job(row)

    @staticmethod
    def _row_to_job(row: Any) -> NotificationJob:
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        booking_id = row["booking_id"]
        return NotificationJob(
            id=_to_uuid(row["id"]),
            booking_id=None if booking_id is None else _to_uuid(booking_id),
            channel=str(row["channel"]),
            template_code=str(row["template_code"]),
            payload=dict(payload or {}),
            status=JobStatus(str(row["status"])),
            retry_count=int(row["retry_count"] or 0),
            next_attempt_at=row["next_attempt_at"],
            error_message=row["error_message"],
            created_at=row["created_at"],
            sent_at=row["sent_at"],
        )


def _to_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))
