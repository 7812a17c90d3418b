from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from hotel_ops.notifications.models import JobStatus
from hotel_ops.notifications.repository import NotificationRepository

NOW = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


class DummyAcquire:
    def __init__(self, connection):
        self._connection = connection

    async def __aenter__(self):
        return self._connection

    async def __aexit__(self, exc_type, exc, tb):
        return False


class DummyPool:
    def __init__(self, connection):
        self._connection = connection

    def acquire(self):
        return DummyAcquire(self._connection)


def _job_row(**overrides):
    row = {
        "id": uuid4(),
        "booking_id": uuid4(),
        "channel": "email",
        "template_code": "precheckin_link",
        "payload": json.dumps({"token": "abc"}),
        "status": "processing",
        "retry_count": 2,
        "next_attempt_at": NOW + timedelta(minutes=5),
        "error_message": None,
        "created_at": NOW,
        "sent_at": None,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_claim_pending_calls_store_function_with_lease():
    connection = AsyncMock()
    connection.fetch = AsyncMock(return_value=[_job_row(), _job_row(channel="whatsapp", payload={"link": "L"})])
    repository = NotificationRepository(DummyPool(connection))

    jobs = await repository.claim_pending(20, lease_seconds=120)

    sql, limit, lease, max_retries = connection.fetch.await_args.args
    assert "claim_pending_notifications($1, $2, $3)" in sql
    assert (limit, lease, max_retries) == (20, 120, 10)
    assert [job.channel for job in jobs] == ["email", "whatsapp"]
    assert jobs[0].payload == {"token": "abc"}
    assert jobs[1].payload == {"link": "L"}
    assert jobs[0].status == JobStatus.PROCESSING


@pytest.mark.asyncio
async def test_mark_sent_calls_store_function():
    connection = AsyncMock()
    repository = NotificationRepository(DummyPool(connection))
    job_id = uuid4()

    await repository.mark_sent(job_id)

    connection.execute.assert_awaited_once_with("SELECT mark_notification_sent($1)", job_id)


@pytest.mark.asyncio
async def test_mark_failed_returns_store_bookkeeping():
    next_attempt = NOW + timedelta(minutes=5)
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(
        return_value={"status": "pending", "retry_count": 3, "next_attempt_at": next_attempt}
    )
    repository = NotificationRepository(DummyPool(connection))
    job_id = uuid4()

    outcome = await repository.mark_failed(job_id, "Guest email missing", next_attempt_at=next_attempt)

    assert outcome.status == JobStatus.PENDING
    assert outcome.retry_count == 3
    assert outcome.next_attempt_at == next_attempt
    assert connection.fetchrow.await_args.args[1:] == (job_id, "Guest email missing", next_attempt, None)


@pytest.mark.asyncio
async def test_mark_failed_for_unknown_job_raises():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=None)
    repository = NotificationRepository(DummyPool(connection))

    with pytest.raises(LookupError):
        await repository.mark_failed(uuid4(), "boom", next_attempt_at=NOW, max_retries=5)


@pytest.mark.asyncio
async def test_fetch_contact_joins_hotel():
    booking_id = uuid4()
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(
        return_value={
            "booking_id": booking_id,
            "guest_name": "Ana",
            "phone": "+351900000000",
            "email": None,
            "hotel_name": "Casa Mar",
            "hotel_email": "desk@casamar.test",
            "wa_phone_number_id": "PNID",
        }
    )
    repository = NotificationRepository(DummyPool(connection))

    contact = await repository.fetch_contact(booking_id)

    assert contact is not None
    assert contact.email is None
    assert contact.wa_phone_number_id == "PNID"
    assert "LEFT JOIN hotels" in connection.fetchrow.await_args.args[0]


@pytest.mark.asyncio
async def test_fetch_contact_missing_booking():
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=None)
    repository = NotificationRepository(DummyPool(connection))

    assert await repository.fetch_contact(uuid4()) is None


@pytest.mark.asyncio
async def test_enqueue_serializes_payload():
    booking_id = uuid4()
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=_job_row(booking_id=booking_id, status="pending", retry_count=0))
    repository = NotificationRepository(DummyPool(connection))

    job = await repository.enqueue(
        booking_id=booking_id,
        channel="email",
        template_code="precheckin_link",
        payload={"token": "abc"},
    )

    args = connection.fetchrow.await_args.args
    assert args[2:] == (booking_id, "email", "precheckin_link", json.dumps({"token": "abc"}), None)
    assert job.status == JobStatus.PENDING
    assert job.retry_count == 0


@pytest.mark.asyncio
async def test_claim_pending_forwards_retry_cap():
    connection = AsyncMock()
    connection.fetch = AsyncMock(return_value=[])
    repository = NotificationRepository(DummyPool(connection))

    assert await repository.claim_pending(5, lease_seconds=300, max_retries=None) == []
    assert connection.fetch.await_args.args[1:] == (5, 300, None)
