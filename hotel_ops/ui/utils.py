from __future__ import annotations

import json
from typing import Any, Iterable, Iterator


def parse_payload(text: str) -> dict[str, Any]:
    """Return the JSON object typed into a payload field."""

    stripped = text.strip()
    if not stripped:
        return {}
    try:
        value = json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON: {exc.msg}") from exc
    if not isinstance(value, dict):
        raise ValueError("Payload JSON must be an object")
    return value


def iter_sse_events(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    """Group Server-Sent Event lines into ``(event, data)`` pairs.

    Comment lines (keep-alives) are skipped and an event left unterminated
    when the stream closes is dropped.
    """

    event = "message"
    data: list[str] = []
    for line in lines:
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
