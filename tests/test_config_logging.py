import logging

from hotel_ops.core.config import Settings
from hotel_ops.core.logging import (
    LogContextFilter,
    configure_logging,
    current_log_context,
    init_tracer,
    log_context,
    parse_headers,
)


def test_parse_headers_skips_malformed_items():
    assert parse_headers("a=1, b = two ,broken,=x") == {"a": "1", "b": "two"}
    assert parse_headers(None) == {}


def test_configure_logging_sets_level_and_quiets_httpx():
    logger = configure_logging(Settings(log_level="debug"))

    assert logger.name == "hotel_ops"
    assert logger.level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING


def test_tracer_disabled_by_default():
    assert init_tracer(Settings(otel_enabled=False)) is None


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("DISPATCH_BATCH_SIZE", "5")
    monkeypatch.setenv("NOTIFICATION_MAX_RETRIES", "4")
    monkeypatch.setenv("STAFF_TOKENS", '{"tok": "maria"}')

    settings = Settings()

    assert settings.dispatch_batch_size == 5
    assert settings.notification_max_retries == 4
    assert settings.staff_tokens == {"tok": "maria"}


def test_settings_defaults():
    settings = Settings()

    assert settings.dispatch_max_runtime_ms == 50_000
    assert settings.dispatch_batch_size == 20
    assert settings.dispatch_inter_batch_delay_ms == 200
    assert settings.notification_retry_backoff_seconds == 300
    assert settings.notification_max_retries == 10
    assert settings.email_from == "onboarding@resend.dev"


def _record() -> logging.LogRecord:
    return logging.LogRecord("hotel_ops.notifications.worker", logging.INFO, __file__, 1, "sent", None, None)


def test_log_context_nests_and_resets():
    with log_context(cycle="c1"):
        with log_context(job="j1", channel=None):
            assert current_log_context() == {"cycle": "c1", "job": "j1"}
        assert current_log_context() == {"cycle": "c1"}
    assert current_log_context() == {}


def test_context_filter_renders_bound_values():
    record = _record()
    with log_context(cycle="c1", job="j1"):
        assert LogContextFilter().filter(record) is True
    assert record.context == "cycle=c1 job=j1"

    bare = _record()
    LogContextFilter().filter(bare)
    assert bare.context == "-"


def test_configured_handler_formats_context():
    configure_logging(Settings(log_format="[%(context)s] %(message)s"))
    handler = next(
        item for item in logging.getLogger().handlers if any(isinstance(f, LogContextFilter) for f in item.filters)
    )
    record = _record()

    with log_context(job="j1"):
        for item in handler.filters:
            item.filter(record)
    assert handler.format(record) == "[job=j1] sent"
    assert logging.getLogger("hotel_ops.notifications").level == logging.INFO
