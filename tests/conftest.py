from __future__ import annotations

import pytest

from hotel_ops.core.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(
        owner_tokens={"owner-token": "olivia"},
        staff_tokens={"staff-token": "maria"},
        service_tokens={"service-token": "dispatcher"},
        otel_enabled=False,
    )
