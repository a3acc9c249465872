"""Append-only event log stored in the state document."""

from __future__ import annotations

import random
import string
import time
from datetime import datetime
from typing import Any

from .models import StateEvent
from .utils import now_iso, parse_iso, utcnow

EVENT_TYPES = (
    "pr_tracked",
    "pr_merged",
    "pr_closed",
    "pr_dormant",
    "daily_check",
    "comment_posted",
)

_ID_CHARS = string.ascii_lowercase + string.digits


def _event_id() -> str:
    suffix = "".join(random.choices(_ID_CHARS, k=6))
    return f"evt_{int(time.time() * 1000)}_{suffix}"


class EventLog:
    """View over ``StateDocument.events``; events are never mutated or removed."""

    def __init__(self, events: list[StateEvent]):
        self._events = events

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))

    def append(self, type: str, data: dict[str, Any] | None = None) -> StateEvent:
        if type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {type}")
        event = StateEvent(id=_event_id(), type=type, at=now_iso(), data=dict(data or {}))
        self._events.append(event)
        return event

    def by_type(self, type: str) -> list[StateEvent]:
        return [e for e in self._events if e.type == type]

    def in_range(self, since: datetime, until: datetime | None = None) -> list[StateEvent]:
        until = until or utcnow()
        out = []
        for e in self._events:
            at = parse_iso(e.at)
            if at is not None and since <= at <= until:
                out.append(e)
        return out
