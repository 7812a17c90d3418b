from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID, uuid4

import asyncpg

from .models import ServiceTicket, TicketEvent
from .state import TicketStateMachine, TicketStatus, normalize_status

_TICKET_COLUMNS = """
    id, service_key, room, booking_code, status, sla_minutes, sla_deadline,
    created_at, updated_at, created_by, updated_by,
    accepted_at, started_at, done_at, cancelled_at
"""

_TRANSITION_SQL_TEMPLATE = """
    UPDATE tickets
    SET status = $3,
        {field} = COALESCE({field}, $4),
        updated_at = $4,
        updated_by = $5
    WHERE id = $1 AND status = $2
    RETURNING {columns}
"""


class TicketRepository:
    """Data access layer for ``tickets`` and their ``ticket_events`` history."""

    _INSERT_TICKET_SQL = f"""
    INSERT INTO tickets (
        id, service_key, room, booking_code, status, sla_minutes, sla_deadline,
        created_at, updated_at, created_by, updated_by
    )
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8, $9, $9)
    RETURNING {_TICKET_COLUMNS}
    """

    _SELECT_TICKET_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE id = $1
    """

    _LIST_TICKETS_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE ($1::text[] IS NULL OR status = ANY($1::text[]))
    ORDER BY created_at DESC
    LIMIT $2
    """

    _FIND_DUPLICATE_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets
    WHERE service_key = $1
      AND room IS NOT DISTINCT FROM $2
      AND booking_code IS NOT DISTINCT FROM $3
      AND status = $4
      AND created_at >= $5
    ORDER BY created_at DESC
    LIMIT 1
    """

    _TRANSITION_SQL: dict[str, str] = {
        field: _TRANSITION_SQL_TEMPLATE.format(field=field, columns=_TICKET_COLUMNS)
        for field in ("accepted_at", "started_at", "done_at", "cancelled_at")
    }

    _INSERT_EVENT_SQL = """
    INSERT INTO ticket_events (id, ticket_id, action, from_status, to_status, actor, note, metadata, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9)
    """

    _SELECT_EVENTS_SQL = """
    SELECT id, ticket_id, action, from_status, to_status, actor, note, metadata, created_at
    FROM ticket_events
    WHERE ticket_id = $1
    ORDER BY created_at ASC
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def create_ticket(
        self,
        *,
        ticket_id: UUID,
        service_key: str,
        room: str | None,
        booking_code: str | None,
        status: TicketStatus,
        sla_minutes: int,
        sla_deadline: datetime,
        created_at: datetime,
        actor: str,
        note: str = "Request created",
    ) -> ServiceTicket:
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(
                    self._INSERT_TICKET_SQL,
                    ticket_id,
                    service_key,
                    room,
                    booking_code,
                    status.value,
                    sla_minutes,
                    sla_deadline,
                    created_at,
                    actor,
                )
                if row is None:
                    raise RuntimeError("Failed to insert ticket")
                await self._insert_event(
                    connection,
                    ticket_id=ticket_id,
                    action="create",
                    from_status=None,
                    to_status=status,
                    actor=actor,
                    note=note,
                    metadata={},
                    created_at=created_at,
                )
        return self._row_to_ticket(row)

    async def find_requested_duplicate(
        self,
        *,
        service_key: str,
        room: str | None,
        booking_code: str | None,
        since: datetime,
    ) -> ServiceTicket | None:
        """Latest matching ticket created since ``since`` that staff have not picked up yet."""

        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(
                self._FIND_DUPLICATE_SQL,
                service_key,
                room,
                booking_code,
                TicketStatus.REQUESTED.value,
                since,
            )
        return None if row is None else self._row_to_ticket(row)

    async def get_ticket(self, ticket_id: UUID) -> ServiceTicket | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        return None if row is None else self._row_to_ticket(row)

    async def list_tickets(
        self,
        *,
        statuses: Sequence[TicketStatus] | None = None,
        limit: int = 100,
    ) -> list[ServiceTicket]:
        status_values = None if statuses is None else [status.value for status in statuses]
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._LIST_TICKETS_SQL, status_values, limit)
        return [self._row_to_ticket(row) for row in rows]

    async def apply_transition(
        self,
        *,
        ticket_id: UUID,
        from_status: TicketStatus,
        to_status: TicketStatus,
        action: str,
        actor: str,
        at: datetime,
        note: str,
        metadata: dict[str, Any] | None = None,
    ) -> ServiceTicket | None:
        """Move a ticket from ``from_status`` to ``to_status``.

        The update only matches while the row still holds ``from_status``, so a
        concurrent writer makes this return ``None`` instead of overwriting.
        """

        field = TicketStateMachine.timestamp_field(to_status)
        if field is None:
            raise ValueError(f"No timestamp column for status {to_status.value}")
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(
                    self._TRANSITION_SQL[field],
                    ticket_id,
                    from_status.value,
                    to_status.value,
                    at,
                    actor,
                )
                if row is None:
                    return None
                await self._insert_event(
                    connection,
                    ticket_id=ticket_id,
                    action=action,
                    from_status=from_status,
                    to_status=to_status,
                    actor=actor,
                    note=note,
                    metadata=metadata or {},
                    created_at=at,
                )
        return self._row_to_ticket(row)

    async def get_events(self, ticket_id: UUID) -> list[TicketEvent]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._SELECT_EVENTS_SQL, ticket_id)
        return [self._row_to_event(row) for row in rows]

    async def _insert_event(
        self,
        connection: Any,
        *,
        ticket_id: UUID,
        action: str,
        from_status: TicketStatus | None,
        to_status: TicketStatus,
        actor: str,
        note: str,
        metadata: dict[str, Any],
        created_at: datetime,
    ) -> None:
        await connection.execute(
            self._INSERT_EVENT_SQL,
            uuid4(),
            ticket_id,
            action,
            None if from_status is None else from_status.value,
            to_status.value,
            actor,
            note,
            json.dumps(metadata),
            created_at,
        )

    @staticmethod
    def _row_to_ticket(row: Any) -> ServiceTicket:
        return ServiceTicket(
            id=_to_uuid(row["id"]),
            service_key=str(row["service_key"]),
            room=row["room"],
            booking_code=row["booking_code"],
            status=normalize_status(row["status"]),
            sla_minutes=int(row["sla_minutes"]),
            sla_deadline=row["sla_deadline"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            created_by=str(row["created_by"]),
            updated_by=str(row["updated_by"]),
            accepted_at=row["accepted_at"],
            started_at=row["started_at"],
            done_at=row["done_at"],
            cancelled_at=row["cancelled_at"],
        )

    @staticmethod
    def _row_to_event(row: Any) -> TicketEvent:
        from_status = row["from_status"]
        metadata = row["metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return TicketEvent(
            id=_to_uuid(row["id"]),
            ticket_id=_to_uuid(row["ticket_id"]),
            action=str(row["action"]),
            from_status=normalize_status(from_status) if from_status else None,
            to_status=normalize_status(row["to_status"]),
            actor=str(row["actor"]),
            note=str(row["note"]),
            metadata=dict(metadata or {}),
            created_at=row["created_at"],
        )


def _to_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))
