"""
Progress events emitted by the batch orchestrator.

The orchestrator never depends on who listens: it calls an optional sink
with each BatchEvent. A sink that raises is logged and ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class BatchEventType(str, Enum):
    START = "start"
    DATABASE_START = "database:start"
    DATABASE_CACHE_HIT = "database:cache_hit"
    DATABASE_RETRY = "database:retry"
    DATABASE_FAILED = "database:failed"
    DATABASE_COMPLETE = "database:complete"
    COMPLETE = "complete"
    CACHE_CLEARED = "cache:cleared"


@dataclass(frozen=True)
class BatchEvent:
    """
    One progress event.

    Attributes:
        type: What happened
        target_id: The target concerned, None for batch-level events
        data: Event-specific payload (attempt, error, result, total ...)
    """

    type: BatchEventType
    target_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


EventSink = Callable[[BatchEvent], None]


class LoggingEventSink:
    """Writes events to the standard logger."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def __call__(self, event: BatchEvent) -> None:
        if event.type in (BatchEventType.DATABASE_RETRY, BatchEventType.DATABASE_FAILED):
            self._log.warning("%s %s %s", event.type.value, event.target_id, event.data)
        else:
            self._log.info("%s %s", event.type.value, event.target_id or "")


class InMemoryEventSink:
    """Collects events in a list. Useful for tests and progress displays."""

    def __init__(self) -> None:
        self.events: list[BatchEvent] = []

    def __call__(self, event: BatchEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: BatchEventType) -> list[BatchEvent]:
        return [e for e in self.events if e.type == event_type]

    def clear(self) -> None:
        self.events.clear()
