"""Event channel for queue notifications.

Why This Package Exists
-----------------------
A queue reports progress through events instead of return values: task
started, task completed, task failed, queue completed.  Loggers, progress
bars and further orchestration subscribe to those events without the
queue knowing about them.

Every :class:`~buildy.orchestration.queue.Queue` owns one channel (by
composition) and exposes ``subscribe``/``unsubscribe`` on top of it.

Usage::

    from buildy.core.events import TASK_FAILED, Event
    from buildy.core.events.memory import InMemoryEventChannel

    channel = InMemoryEventChannel()

    async def on_failure(event: Event):
        print(f"{event.source} failed: {event.payload['error']}")

    sub_id = channel.subscribe(TASK_FAILED, on_failure)
    await channel.publish(Event(event_type=TASK_FAILED, source="build"))

Modules
-------
memory      InMemoryEventChannel -- in-process delivery, one per queue
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

__all__ = [
    "Event",
    "EventChannel",
    "EventHandler",
    "TASK_STARTED",
    "TASK_COMPLETE",
    "TASK_FAILED",
    "QUEUE_COMPLETE",
    "QUEUE_EVENTS",
]


# ── Event Types ──────────────────────────────────────────────────────────

TASK_STARTED = "taskStarted"
TASK_COMPLETE = "taskComplete"
TASK_FAILED = "taskFailed"
QUEUE_COMPLETE = "queueComplete"

QUEUE_EVENTS = (TASK_STARTED, TASK_COMPLETE, TASK_FAILED, QUEUE_COMPLETE)


# ── Event Model ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Event:
    """Immutable notification published by a queue.

    Attributes:
        event_type: One of :data:`QUEUE_EVENTS` (or a caller-defined type)
        source: Name of the queue that published the event
        payload: Event-specific data
        timestamp: When the event occurred (UTC)
        correlation_id: Lineage path of the publishing queue (``root/child``)
        event_id: Unique event identifier
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    correlation_id: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def matches(self, pattern: str) -> bool:
        """Check if the event type matches a subscription pattern.

        ``*`` matches everything, anything else must match exactly.
        """
        return pattern == "*" or self.event_type == pattern


# ── Type Aliases ─────────────────────────────────────────────────────────

EventHandler = Callable[[Event], Awaitable[None] | None]


# ── EventChannel Protocol ────────────────────────────────────────────────


@runtime_checkable
class EventChannel(Protocol):
    """Protocol for event channel implementations.

    Subscription management is synchronous so observers can be attached
    before a queue runs; publishing is awaited by the queue.
    """

    def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """Subscribe to events matching a pattern.

        Args:
            event_type: Exact event type or ``*``
            handler: Sync or async callback for matching events

        Returns:
            Subscription ID for later unsubscription
        """
        ...

    def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        ...

    async def publish(self, event: Event) -> None:
        """Deliver an event to all matching subscribers."""
        ...

    async def close(self) -> None:
        """Drop all subscriptions and ignore further publishes."""
        ...
