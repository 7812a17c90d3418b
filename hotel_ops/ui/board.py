"""Client-side view state for the staff ticket board.

Each staff click becomes a :class:`TransitionCommand`. The row is updated
optimistically while the command is pending, replaced by the server's row on
confirmation, and the whole board is refetched when the server rejects it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable

from hotel_ops.tickets.sla import format_remaining, remaining
from hotel_ops.tickets.state import TicketAction, TicketStateMachine, TicketStatus, normalize_status

from .api import APIError, HotelOpsAPIClient


class CommandState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass(slots=True)
class TransitionCommand:
    ticket_id: str
    action: TicketAction
    from_status: TicketStatus
    to_status: TicketStatus
    state: CommandState = CommandState.PENDING
    error: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def countdown_text(row: dict[str, Any], now: datetime) -> str | None:
    """Remaining SLA time as ``m:ss`` for an open ticket row; ``None`` once it is terminal."""

    if normalize_status(row["status"]).is_terminal:
        return None
    deadline = _parse_timestamp(row.get("sla_deadline"))
    if deadline is None:
        return None
    return format_remaining(remaining(deadline, now))


@dataclass(slots=True)
class TicketBoard:
    client: HotelOpsAPIClient
    open_only: bool = True
    clock: Callable[[], datetime] = field(default=_utcnow)
    rows: dict[str, dict[str, Any]] = field(default_factory=dict)
    commands: dict[str, TransitionCommand] = field(default_factory=dict)

    def refresh(self) -> list[dict[str, Any]]:
        """Replace local rows with the server's current view."""

        tickets = self.client.list_tickets(open_only=self.open_only)
        self.rows = {str(ticket["id"]): ticket for ticket in tickets}
        return self.tickets()

    def tickets(self) -> list[dict[str, Any]]:
        return sorted(self.rows.values(), key=lambda row: str(row.get("created_at", "")))

    def status_of(self, ticket_id: str) -> TicketStatus:
        return normalize_status(self.rows[ticket_id]["status"])

    def offered_actions(self, ticket_id: str) -> list[TicketAction]:
        """The next forward step plus cancel where legal; nothing while a command is in flight."""

        command = self.commands.get(ticket_id)
        if command is not None and command.state == CommandState.PENDING:
            return []
        current = self.status_of(ticket_id)
        actions: list[TicketAction] = []
        forward = TicketStateMachine.next_action(current)
        if forward is not None:
            actions.append(forward)
        if TicketStateMachine.can_apply(current, TicketAction.CANCEL):
            actions.append(TicketAction.CANCEL)
        return actions

    def submit(self, ticket_id: str, action: TicketAction, *, note: str | None = None) -> TransitionCommand:
        if action not in self.offered_actions(ticket_id):
            raise ValueError(f"Action {action.value!r} is not offered for ticket {ticket_id}")

        current = self.status_of(ticket_id)
        command = TransitionCommand(
            ticket_id=ticket_id,
            action=action,
            from_status=current,
            to_status=TicketStateMachine.apply(current, action),
        )
        self.commands[ticket_id] = command
        previous_row = self.rows[ticket_id]
        self.rows[ticket_id] = {**previous_row, "status": command.to_status.value}

        try:
            confirmed = self.client.apply_action(
                ticket_id,
                action.value,
                expected_status=current.value,
                note=note,
            )
        except APIError as exc:
            command.state = CommandState.REJECTED
            command.error = str(exc)
            self._resync(ticket_id, previous_row)
            return command

        command.state = CommandState.CONFIRMED
        self._store(confirmed)
        return command

    def apply_change(self, change: dict[str, Any]) -> None:
        """Fold one change-feed event into the board by refetching that ticket."""

        ticket_id = str(change.get("id", ""))
        if not ticket_id:
            return
        command = self.commands.get(ticket_id)
        if command is not None and command.state == CommandState.PENDING:
            return
        if change.get("op") == "DELETE":
            self.rows.pop(ticket_id, None)
            return
        try:
            ticket = self.client.get_ticket(ticket_id)
        except APIError as exc:
            if exc.status_code == 404:
                self.rows.pop(ticket_id, None)
                return
            raise
        self._store(ticket)

    def follow(self, changes: Iterable[dict[str, Any]]) -> int:
        """Apply change-feed events in arrival order and return how many were seen."""

        seen = 0
        for change in changes:
            self.apply_change(change)
            seen += 1
        return seen

    def countdown(self, ticket_id: str, now: datetime | None = None) -> str | None:
        return countdown_text(self.rows[ticket_id], now or self.clock())

    def _store(self, ticket: dict[str, Any]) -> None:
        ticket_id = str(ticket["id"])
        if self.open_only and normalize_status(ticket["status"]).is_terminal:
            self.rows.pop(ticket_id, None)
        else:
            self.rows[ticket_id] = ticket

    def _resync(self, ticket_id: str, previous_row: dict[str, Any]) -> None:
        try:
            self.refresh()
        except APIError:
            # Server unreachable: fall back to the last confirmed row.
            self.rows[ticket_id] = previous_row
