from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from hotel_ops.api.routes import notifications as notification_routes
from hotel_ops.main import create_app
from hotel_ops.notifications.models import DispatchSummary, JobResult, JobStatus, NotificationJob

SERVICE = {"Authorization": "Bearer service-token"}
OWNER = {"Authorization": "Bearer owner-token"}
STAFF = {"Authorization": "Bearer staff-token"}


@pytest.fixture
def dispatch_client(settings):
    app = create_app()
    app.state.settings = settings
    worker = AsyncMock()
    repository = AsyncMock()

    async def override_worker():
        return worker

    async def override_repository():
        return repository

    app.dependency_overrides[notification_routes.get_dispatch_worker] = override_worker
    app.dependency_overrides[notification_routes.get_notification_repository] = override_repository

    client = TestClient(app)
    try:
        yield client, worker, repository, settings
    finally:
        app.dependency_overrides.clear()


def test_preflight_answers_ok_without_credentials(dispatch_client):
    client, worker, _, _ = dispatch_client

    response = client.options("/notifications/dispatch")

    assert response.status_code == 200
    assert response.text == "ok"
    worker.run_cycle.assert_not_awaited()


def test_post_runs_cycle_with_configured_defaults(dispatch_client):
    client, worker, _, settings = dispatch_client
    job_id = uuid4()
    worker.run_cycle = AsyncMock(
        return_value=DispatchSummary(processed=1, results=[JobResult(id=job_id, status="sent")])
    )

    response = client.post("/notifications/dispatch", headers=SERVICE)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "processed": 1,
        "results": [{"id": str(job_id), "status": "sent"}],
    }
    worker.run_cycle.assert_awaited_once_with(
        max_runtime_ms=settings.dispatch_max_runtime_ms,
        batch_size=settings.dispatch_batch_size,
        inter_batch_delay_ms=settings.dispatch_inter_batch_delay_ms,
    )


@pytest.mark.parametrize("method", ["GET", "HEAD", "PUT", "PATCH", "DELETE"])
def test_any_method_triggers_a_cycle(dispatch_client, method):
    client, worker, _, _ = dispatch_client
    worker.run_cycle = AsyncMock(return_value=DispatchSummary())

    response = client.request(method, "/notifications/dispatch", headers=OWNER)

    assert response.status_code == 200
    worker.run_cycle.assert_awaited_once()


def test_failures_are_reported_with_status_200(dispatch_client):
    client, worker, _, _ = dispatch_client
    worker.run_cycle = AsyncMock(return_value=DispatchSummary(error="Claim failed: store unreachable"))

    response = client.post("/notifications/dispatch", headers=SERVICE)

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["error"] == "Claim failed: store unreachable"


def test_query_parameters_override_batch_and_budget(dispatch_client):
    client, worker, _, _ = dispatch_client
    worker.run_cycle = AsyncMock(return_value=DispatchSummary())

    response = client.post(
        "/notifications/dispatch",
        params={"batch_size": 5, "max_runtime_ms": 0},
        headers=SERVICE,
    )

    assert response.status_code == 200
    kwargs = worker.run_cycle.await_args.kwargs
    assert kwargs["batch_size"] == 5
    assert kwargs["max_runtime_ms"] == 0


@pytest.mark.parametrize("headers", [{}, STAFF])
def test_guests_and_staff_cannot_trigger_dispatch(dispatch_client, headers):
    client, worker, _, _ = dispatch_client

    response = client.post("/notifications/dispatch", headers=headers)

    assert response.status_code == 403
    worker.run_cycle.assert_not_awaited()


def test_staff_can_enqueue_notification(dispatch_client):
    client, _, repository, _ = dispatch_client
    booking_id = uuid4()
    job = NotificationJob(
        id=uuid4(),
        booking_id=booking_id,
        channel="whatsapp",
        template_code="precheckin_link",
        payload={"token": "abc"},
        status=JobStatus.PENDING,
        retry_count=0,
        next_attempt_at=datetime.now(timezone.utc),
        created_at=datetime.now(timezone.utc),
    )
    repository.enqueue = AsyncMock(return_value=job)

    response = client.post(
        "/notifications",
        json={
            "booking_id": str(booking_id),
            "channel": "whatsapp",
            "template_code": "precheckin_link",
            "payload": {"token": "abc"},
        },
        headers=STAFF,
    )

    assert response.status_code == 201
    assert response.json()["status"] == "pending"
    repository.enqueue.assert_awaited_once_with(
        booking_id=booking_id,
        channel="whatsapp",
        template_code="precheckin_link",
        payload={"token": "abc"},
        not_before=None,
    )


def test_enqueue_rejects_unknown_channel(dispatch_client):
    client, _, _, _ = dispatch_client

    response = client.post(
        "/notifications",
        json={"booking_id": str(uuid4()), "channel": "sms", "template_code": "precheckin_link"},
        headers=STAFF,
    )

    assert response.status_code == 422


def test_head_with_service_token_triggers_a_cycle(dispatch_client):
    client, worker, _, _ = dispatch_client
    worker.run_cycle = AsyncMock(return_value=DispatchSummary())

    response = client.head("/notifications/dispatch", headers=SERVICE)

    assert response.status_code == 200
    worker.run_cycle.assert_awaited_once()
