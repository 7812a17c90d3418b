"""Process-wide fan-out of ticket change notifications.

One LISTEN connection per process receives ``pg_notify`` payloads written by
the ticket table trigger and hands each change to every subscriber queue, so
boards and trackers share a single subscription instead of polling.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from .models import TicketChange

logger = logging.getLogger(__name__)

# Written by the notify_ticket_change trigger in the initial schema migration.
TICKET_CHANGE_CHANNEL = "ticket_changes"


class TicketChangeFeed:
    def __init__(
        self,
        pool: asyncpg.Pool | None = None,
        *,
        channel: str = TICKET_CHANGE_CHANNEL,
        queue_size: int = 100,
    ) -> None:
        if queue_size <= 0:
            raise ValueError("queue_size must be greater than zero")
        self._pool = pool
        self.channel = channel
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[TicketChange]] = set()
        self._connection: Any = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def start(self) -> None:
        if self._pool is None or self._connection is not None:
            return
        connection = await self._pool.acquire()
        try:
            await connection.add_listener(self.channel, self._on_notification)
        except Exception:
            await self._pool.release(connection)
            raise
        self._connection = connection
        logger.info("Listening for ticket changes on %s", self.channel)

    async def stop(self) -> None:
        if self._connection is None or self._pool is None:
            return
        connection, self._connection = self._connection, None
        try:
            await connection.remove_listener(self.channel, self._on_notification)
        finally:
            await self._pool.release(connection)

    def _on_notification(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed ticket change payload on %s: %r", channel, payload)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object ticket change payload on %s", channel)
            return
        self.publish(TicketChange.from_mapping(data))

    def publish(self, change: TicketChange) -> None:
        """Deliver ``change`` to every subscriber, dropping its oldest event when full."""

        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(change)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[TicketChange]]:
        queue: asyncio.Queue[TicketChange] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)

    async def iter_sse(self, *, heartbeat_seconds: float = 15.0) -> AsyncIterator[str]:
        """Yield Server-Sent Event frames for each change, with periodic keep-alives."""

        async with self.subscribe() as queue:
            while True:
                try:
                    change = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"event: ticket_changed\ndata: {json.dumps(change.as_dict())}\n\n"
