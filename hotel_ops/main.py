from contextlib import asynccontextmanager
from datetime import timedelta

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hotel_ops.api.routes import notifications, ping, tickets
from hotel_ops.core.config import get_settings
from hotel_ops.core.logging import configure_logging, init_tracer, shutdown_tracer
from hotel_ops.middleware import RBACMiddleware
from hotel_ops.notifications.repository import NotificationRepository
from hotel_ops.notifications.worker import DispatchWorker
from hotel_ops.services.postgres import create_pool
from hotel_ops.tickets.events import TicketChangeFeed
from hotel_ops.tickets.repository import TicketRepository
from hotel_ops.tickets.service import TicketService


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.settings = settings
    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.db_pool = None
    app.state.ticket_service = None
    app.state.ticket_feed = None
    app.state.notification_repository = None
    app.state.dispatch_worker = None

    http_client = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    pool = None
    feed = None
    try:
        pool = await create_pool(settings)
        app.state.db_pool = pool
        app.state.ticket_service = TicketService(
            TicketRepository(pool),
            default_sla_minutes=settings.default_sla_minutes,
            dedupe_window=timedelta(seconds=settings.ticket_dedupe_window_seconds),
        )
        notification_repository = NotificationRepository(pool)
        app.state.notification_repository = notification_repository
        app.state.dispatch_worker = DispatchWorker.from_settings(notification_repository, http_client, settings)

        feed = TicketChangeFeed(pool, queue_size=settings.ticket_feed_queue_size)
        await feed.start()
        app.state.ticket_feed = feed
    except Exception:  # pragma: no cover - service initialisation best effort
        logger.exception("Database-backed services unavailable; starting in degraded mode")
    try:
        yield
    finally:
        if feed is not None:
            await feed.stop()
        if pool is not None:
            await pool.close()
        await http_client.aclose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(RBACMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allowed_origins),
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(notifications.router)
    return app


app = create_app()
