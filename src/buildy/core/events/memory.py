"""
In-memory event channel implementation.

Manifesto:
    Each queue needs its own notification surface that delivers events
    immediately, in publish order, without external infrastructure.

Handlers are called one after another in subscription order so observers
see a queue's events in the order the queue produced them. Exceptions in
handlers are logged and never reach the publishing queue.

Tags:
    buildy, events, in-memory, asyncio

Doc-Types:
    api-reference
"""

from __future__ import annotations

import inspect
import uuid
from dataclasses import dataclass

from buildy.core.events import Event, EventHandler
from buildy.core.logging import get_logger

__all__ = ["InMemoryEventChannel"]

logger = get_logger(__name__)


@dataclass
class Subscription:
    """Internal subscription record."""

    id: str
    pattern: str
    handler: EventHandler


class InMemoryEventChannel:
    """In-process event channel owned by a single queue.

    Example::

        channel = InMemoryEventChannel()

        def log_event(event: Event):
            print(f"Event: {event.event_type}")

        channel.subscribe("*", log_event)
        await channel.publish(Event(event_type="taskStarted", source="build"))
        # Output: Event: taskStarted
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._closed = False

    async def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers, in subscription order."""
        if self._closed:
            return

        matching = [
            sub for sub in list(self._subscriptions.values())
            if event.matches(sub.pattern)
        ]

        for sub in matching:
            try:
                outcome = sub.handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(
                    "event_handler_error",
                    subscription_id=sub.id,
                    event_type=event.event_type,
                    source=event.source,
                    error=str(e),
                )

    def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """Subscribe to events matching a pattern.

        Args:
            event_type: Exact event type or ``*``
            handler: Sync or async callback for matching events

        Returns:
            Subscription ID
        """
        sub_id = f"sub_{uuid.uuid4().hex[:12]}"
        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            pattern=event_type,
            handler=handler,
        )
        return sub_id

    def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        self._subscriptions.pop(subscription_id, None)

    async def close(self) -> None:
        """Mark channel as closed and clear subscriptions."""
        self._closed = True
        self._subscriptions.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscription_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)
