"""Configuration and logging shared by the API, worker and console."""

from .config import Settings, get_settings
from .logging import configure_logging, init_tracer, log_context, shutdown_tracer

__all__ = ["Settings", "configure_logging", "get_settings", "init_tracer", "log_context", "shutdown_tracer"]
