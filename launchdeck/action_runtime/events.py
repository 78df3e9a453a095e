"""In-process publish/subscribe for action events.

The emitter holds no event history.  A subscriber only sees events
published after it attached; to learn the state of runs started earlier,
query the run tracker instead.

Delivery is best-effort: each subscriber owns a bounded queue, and an event
that does not fit is dropped for that subscriber (with a warning) rather
than slowing down the launch that produced it.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Self

from loguru import logger

if TYPE_CHECKING:
    from types import TracebackType

    from launchdeck.action_runtime.models.events import ActionCompletedEvent, ActionLogEvent, ActionStartedEvent

    AnyActionEvent = ActionStartedEvent | ActionLogEvent | ActionCompletedEvent


class Subscription:
    """A single subscriber's view of the event stream.

    Use as an async context manager and iterate::

        async with emitter.subscribe() as events:
            async for event in events:
                ...
    """

    def __init__(self, emitter: EventEmitter, max_queue: int) -> None:
        self._emitter = emitter
        self._queue: asyncio.Queue[AnyActionEvent | None] = asyncio.Queue(maxsize=max_queue)
        self.dropped = 0
        self._closed = False

    def _offer(self, event: AnyActionEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Event subscriber queue full, dropped {} for run {}", event.event_type, event.run_id)

    async def get(self, timeout: float | None = None) -> AnyActionEvent | None:
        """Return the next event, or ``None`` once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._emitter.unsubscribe(self)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> AsyncIterator[AnyActionEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[AnyActionEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class EventEmitter:
    """Stateless fan-out of action events to the current subscribers."""

    def __init__(self, default_queue_size: int = 1000) -> None:
        self._subscribers: list[Subscription] = []
        self._default_queue_size = default_queue_size

    def subscribe(self, max_queue: int | None = None) -> Subscription:
        subscription = Subscription(self, max_queue or self._default_queue_size)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: AnyActionEvent) -> None:
        """Deliver *event* to every current subscriber, in call order."""
        for subscription in list(self._subscribers):
            subscription._offer(event)
