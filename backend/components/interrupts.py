from __future__ import annotations

from typing import Any

from adapters.llm.base import CompletionClient
from components.base import Component
from components.bus import TopicBus
from config import AppConfig
from constants import TOPIC_INTERRUPT_REQUEST
from interrupts.pipeline import (
    ContextProvider,
    InterruptPipeline,
    SubmitOutcome,
)
from interrupts.record import InterruptRecord
from observability.logger import ComponentLogger
from state_store.store import StateStore


class InterruptsComponent(Component):
    """
    Routes interrupt-request payloads into the pipeline.

    Subscribes: interrupt-request
    Publishes:  interrupt, resume, terminate, new-prompt, update-kb
    """

    name = "interrupts"

    def __init__(
        self,
        bus: TopicBus,
        *,
        config: AppConfig,
        client: CompletionClient | None = None,
        store: StateStore | None = None,
        context_provider: ContextProvider | None = None,
        log: ComponentLogger | None = None,
    ) -> None:
        super().__init__(bus, log=log)
        self.pipeline = InterruptPipeline(
            publish=self.pub,
            store=store,
            client=client,
            analysis_model=config.analysis_model,
            context_provider=context_provider,
            rate_limit_ms=config.rate_limit_ms,
            privileged_types=config.privileged_interrupt_types,
            log=self.log,
        )

        self.sub(TOPIC_INTERRUPT_REQUEST, self._on_request)

    async def submit(self, payload: InterruptRecord | str) -> SubmitOutcome:
        return await self.pipeline.submit(payload)

    async def _on_request(self, payload: Any) -> None:
        outcome = await self.pipeline.submit(payload)
        self.log.debug("interrupt_request_handled", outcome=outcome.value)

    async def on_connect(self) -> None:
        await self.pipeline.restore()
