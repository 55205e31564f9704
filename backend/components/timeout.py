from __future__ import annotations

import asyncio
import random

from components.base import Component
from components.bus import TopicBus
from config import format_time
from constants import FULL_STATE_INTERVAL_DEFAULT, TIMEOUT_DEFAULT_S, TOPIC_INTERRUPT_REQUEST
from interrupts.record import InterruptContext, create_time_interrupt
from observability.logger import ComponentLogger
from state_store.store import CheckpointPolicy, StateStore


class TimeoutComponent(Component):
    """
    One-shot timer that raises a Time-Based interrupt request.

    The delay is timeout_ms plus Gaussian jitter with sigma_ms standard
    deviation, floored at zero.

    Publishes: interrupt-request
    """

    name = "timeout"

    def __init__(
        self,
        bus: TopicBus,
        *,
        prompt: str = "",
        timeout_ms: float = TIMEOUT_DEFAULT_S * 1_000,
        sigma_ms: float = 0.0,
        store: StateStore | None = None,
        full_state_interval: int = FULL_STATE_INTERVAL_DEFAULT,
        rng: random.Random | None = None,
        log: ComponentLogger | None = None,
    ) -> None:
        super().__init__(bus, log=log)
        self.prompt = prompt
        self.timeout_ms = timeout_ms
        self.sigma_ms = sigma_ms
        self.fired = False
        self._store = store
        self._policy = CheckpointPolicy(full_state_interval)
        self._rng = rng or random.Random()
        self._timer: asyncio.Task[None] | None = None

    def next_delay_ms(self) -> float:
        jitter = self._rng.gauss(0.0, self.sigma_ms) if self.sigma_ms > 0 else 0.0
        return max(0.0, self.timeout_ms + jitter)

    async def on_connect(self) -> None:
        delay_ms = self.next_delay_ms()
        self.log.debug("timeout_scheduled", delay=format_time(delay_ms))

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(delay_ms / 1000.0)
                await self._fire(delay_ms)
            except asyncio.CancelledError:
                # Timer was cancelled - this is normal
                return

        self._timer = asyncio.get_running_loop().create_task(_timer_task())

    async def on_disconnect(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()

    async def _fire(self, delay_ms: float) -> None:
        self.fired = True
        reason = self.prompt or f"Timeout reached after {format_time(delay_ms)}"
        self.log.info("timeout_reached", delay=format_time(delay_ms))

        interrupt = create_time_interrupt(
            reason,
            context=InterruptContext(stream_state="timeout"),
            additional_data={"delayMs": int(delay_ms), "generator": self.name},
        )

        if self._store is not None:
            is_full = self._policy.next_is_full()
            section = "\n".join([
                f"## Timeout {interrupt.date_time}",
                f"- Delay: {format_time(delay_ms)}",
                f"- Reason: {' '.join(reason.splitlines())}",
            ])
            content = f"# {self._store.generator_name} State\n\n{section}" if is_full else section
            await self._store.update(
                content,
                {"partialStateCount": self._policy.partial_count},
                is_full=is_full,
            )

        await self.pub(TOPIC_INTERRUPT_REQUEST, interrupt.to_markdown())
