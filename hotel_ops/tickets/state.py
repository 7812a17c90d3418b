from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Canonical states of a guest service request."""

    REQUESTED = "Requested"
    ACCEPTED = "Accepted"
    IN_PROGRESS = "InProgress"
    DONE = "Done"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TicketStatus.DONE, TicketStatus.CANCELLED)


class TicketAction(str, Enum):
    """Named staff actions, one per legal edge of the lifecycle."""

    ACCEPT = "accept"
    START = "start"
    RESOLVE = "resolve"
    CANCEL = "cancel"


class UnknownTicketStatusError(ValueError):
    """Raised when a raw status value has no canonical counterpart."""


# Single mapping for every status vocabulary in use (display names, raw
# database values, legacy API values). Keys are lowercased.
_RAW_STATUS_MAP: dict[str, TicketStatus] = {
    "new": TicketStatus.REQUESTED,
    "open": TicketStatus.REQUESTED,
    "requested": TicketStatus.REQUESTED,
    "accepted": TicketStatus.ACCEPTED,
    "inprogress": TicketStatus.IN_PROGRESS,
    "in_progress": TicketStatus.IN_PROGRESS,
    "in progress": TicketStatus.IN_PROGRESS,
    "paused": TicketStatus.IN_PROGRESS,
    "blocked": TicketStatus.IN_PROGRESS,
    "resolved": TicketStatus.DONE,
    "closed": TicketStatus.DONE,
    "done": TicketStatus.DONE,
    "completed": TicketStatus.DONE,
    "cancelled": TicketStatus.CANCELLED,
    "canceled": TicketStatus.CANCELLED,
}


def normalize_status(raw: object) -> TicketStatus:
    """Map any known status spelling onto :class:`TicketStatus`."""

    if isinstance(raw, TicketStatus):
        return raw
    key = str(raw if raw is not None else "").strip().lower()
    try:
        return _RAW_STATUS_MAP[key]
    except KeyError:
        raise UnknownTicketStatusError(f"Unknown ticket status: {raw!r}") from None


class TicketStateMachine:
    """Validate ticket lifecycle transitions."""

    _EDGES: dict[TicketAction, tuple[tuple[TicketStatus, ...], TicketStatus]] = {
        TicketAction.ACCEPT: ((TicketStatus.REQUESTED,), TicketStatus.ACCEPTED),
        TicketAction.START: ((TicketStatus.ACCEPTED,), TicketStatus.IN_PROGRESS),
        TicketAction.RESOLVE: ((TicketStatus.IN_PROGRESS,), TicketStatus.DONE),
        TicketAction.CANCEL: ((TicketStatus.REQUESTED, TicketStatus.IN_PROGRESS), TicketStatus.CANCELLED),
    }

    # Timestamp column stamped when a ticket enters each state.
    _TIMESTAMP_FIELDS: dict[TicketStatus, str] = {
        TicketStatus.ACCEPTED: "accepted_at",
        TicketStatus.IN_PROGRESS: "started_at",
        TicketStatus.DONE: "done_at",
        TicketStatus.CANCELLED: "cancelled_at",
    }

    _FORWARD: dict[TicketStatus, TicketAction] = {
        TicketStatus.REQUESTED: TicketAction.ACCEPT,
        TicketStatus.ACCEPTED: TicketAction.START,
        TicketStatus.IN_PROGRESS: TicketAction.RESOLVE,
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.REQUESTED

    @classmethod
    def target_of(cls, action: TicketAction) -> TicketStatus:
        return cls._EDGES[action][1]

    @classmethod
    def can_apply(cls, current: TicketStatus, action: TicketAction) -> bool:
        sources, _ = cls._EDGES[action]
        return current in sources

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return cls.action_for_transition(current, new) is not None

    @classmethod
    def apply(cls, current: TicketStatus, action: TicketAction) -> TicketStatus:
        """Return the state reached by ``action`` or raise ``ValueError``."""

        if not cls.can_apply(current, action):
            raise ValueError(f"Invalid ticket action {action.value!r} from {current.value}")
        return cls.target_of(action)

    @classmethod
    def action_for_transition(cls, current: TicketStatus, new: TicketStatus) -> TicketAction | None:
        for action, (sources, target) in cls._EDGES.items():
            if target == new and current in sources:
                return action
        return None

    @classmethod
    def next_action(cls, current: TicketStatus) -> TicketAction | None:
        """The single forward action offered to staff for ``current``."""

        return cls._FORWARD.get(current)

    @classmethod
    def allowed_actions(cls, current: TicketStatus) -> list[TicketAction]:
        return [action for action in TicketAction if cls.can_apply(current, action)]

    @classmethod
    def timestamp_field(cls, status: TicketStatus) -> str | None:
        return cls._TIMESTAMP_FIELDS.get(status)
