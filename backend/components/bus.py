"""
Topic bus.

Rules:
- Explicit topic -> handlers table, filled at composition time.
- publish() awaits handlers one by one, in subscription order.
- Handler errors propagate to the publisher; the bus never swallows.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable

from observability.logger import ComponentLogger, default_logger


Handler = Callable[[Any], Awaitable[None]]


class TopicBus:
    def __init__(self, log: ComponentLogger | None = None) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._log = log or default_logger("bus")

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register handler; returns a callable that removes it."""
        self._handlers[topic].append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(topic)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    async def publish(self, topic: str, payload: Any = None) -> None:
        # Snapshot: handlers may (un)subscribe while we deliver
        handlers = list(self._handlers.get(topic, ()))
        self._log.debug("publish", topic=topic, handlers=len(handlers))
        for handler in handlers:
            await handler(payload)

    def topics(self) -> list[str]:
        return [topic for topic, handlers in self._handlers.items() if handlers]
