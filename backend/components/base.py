"""
Component capability interface.

A component:
- is built with an injected bus and logger
- declares its topic -> handler table in __init__ (via sub())
- becomes live in on_connect(), when the table is registered
- talks to others only through pub()
"""

from __future__ import annotations

from typing import Any, Callable

from components.bus import Handler, TopicBus
from observability.logger import ComponentLogger, default_logger


class Component:
    name: str = "component"

    def __init__(
        self,
        bus: TopicBus,
        *,
        name: str | None = None,
        log: ComponentLogger | None = None,
    ) -> None:
        if name is not None:
            self.name = name
        self.bus = bus
        self.log = log or default_logger(self.name)
        self.connected = False
        self._subscriptions: dict[str, Handler] = {}
        self._unsubscribers: list[Callable[[], None]] = []

    def sub(self, topic: str, handler: Handler) -> None:
        """Declare a subscription; registered on connect."""
        self._subscriptions[topic] = handler

    async def pub(self, topic: str, payload: Any = None) -> None:
        await self.bus.publish(topic, payload)

    async def connect(self) -> None:
        if self.connected:
            return
        for topic, handler in self._subscriptions.items():
            self._unsubscribers.append(self.bus.subscribe(topic, handler))
        self.connected = True
        self.log.debug("component_connected", topics=sorted(self._subscriptions))
        await self.on_connect()

    async def disconnect(self) -> None:
        if not self.connected:
            return
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.connected = False
        await self.on_disconnect()
        self.log.debug("component_disconnected")

    async def on_connect(self) -> None:
        """Hook: subscriptions are live when this runs."""

    async def on_disconnect(self) -> None:
        """Hook: release timers, tasks and streams."""
