"""
Mind session: the explicit composition root.

Responsibilities:
- Build every component with its bus, logger and state store
- Connect components in dependency order, disconnect in reverse
- Expose the control operations used by the HTTP surface

Non-responsibilities:
- No stream, interrupt or persistence logic of its own
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from adapters.llm.base import CompletionClient
from components.base import Component
from components.bus import TopicBus
from components.interrupts import InterruptsComponent
from components.mind import MindComponent
from components.recent_history import RecentHistoryComponent
from components.stream import StreamComponent
from components.timeout import TimeoutComponent
from components.token_monitor import TokenMonitorComponent
from components.tools import Tool, ToolsComponent
from config import AppConfig
from constants import (
    GENERATION_GENERATOR_NAME,
    KNOWLEDGE_BASE_GENERATOR_NAME,
    PIPELINE_GENERATOR_NAME,
    TOPIC_PROMPT,
)
from interrupts.pipeline import SubmitOutcome
from interrupts.record import InterruptRecord, create_external_interrupt
from observability.logger import ComponentLogger, LoggerFactory
from state_store.setup import get_interrupt_states_summary, setup_interrupt_state
from state_store.store import StateStore


# ---------------------------------------------------------------------
# MindSession
# ---------------------------------------------------------------------


@dataclass
class MindSession:
    """Mutable container for one running mind configuration."""

    config: AppConfig
    bus: TopicBus
    stream: StreamComponent
    interrupts: InterruptsComponent
    mind: MindComponent
    log: ComponentLogger
    extras: list[Component] = field(default_factory=list)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    connected: bool = False

    @property
    def components(self) -> list[Component]:
        # Mind goes last: its prompt must reach a mounted stream
        return [self.stream, self.interrupts, *self.extras, self.mind]

    def component(self, name: str) -> Component | None:
        for candidate in self.components:
            if candidate.name == name:
                return candidate
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if self.connected:
            return
        await setup_interrupt_state(self.config.state_dir, log=self.log)
        for component in self.components:
            await component.connect()
        self.connected = True
        self.log.info(
            "session_connected",
            session_id=self.session_id,
            components=[c.name for c in self.components],
        )

    async def disconnect(self) -> None:
        if not self.connected:
            return
        for component in reversed(self.components):
            await component.disconnect()
        self.connected = False
        self.log.info("session_disconnected", session_id=self.session_id)

    # ------------------------------------------------------------------
    # Control operations
    # ------------------------------------------------------------------

    async def start_prompt(self, prompt: str) -> None:
        await self.bus.publish(TOPIC_PROMPT, prompt)

    async def submit_interrupt(
        self,
        reason: str,
        interrupt_type: str = "UserInput",
    ) -> tuple[InterruptRecord, SubmitOutcome]:
        interrupt = create_external_interrupt(interrupt_type, reason)
        return interrupt, await self.interrupts.submit(interrupt)

    async def generators_summary(self) -> dict[str, dict[str, Any]]:
        return await get_interrupt_states_summary(self.config.state_dir, log=self.log)

    def snapshot(self) -> dict[str, Any]:
        pipeline = self.interrupts.pipeline
        return {
            "sessionId": self.session_id,
            "connected": self.connected,
            "generation": self.stream.controller.snapshot(),
            "pipeline": {
                "processing": pipeline.processing,
                "pending": pipeline.pending_count,
                "historyCount": pipeline.history_count,
                "lastInterruptTime": pipeline.last_interrupt_time,
                "history": pipeline.history[:10],
            },
            "originalPrompt": self.mind.original_prompt,
        }


# ---------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------


def build_session(
    config: AppConfig,
    client: CompletionClient,
    *,
    tools: list[Tool] | None = None,
    loggers: LoggerFactory | None = None,
) -> MindSession:
    """Wire the components of one session from configuration."""
    loggers = loggers or LoggerFactory(config)
    bus = TopicBus(log=loggers.for_component("bus"))
    analysis_model = config.analysis_model or None

    def _store(generator: str) -> StateStore:
        return StateStore(
            generator,
            base_dir=config.state_dir,
            log=loggers.for_component(f"state_store.{generator}"),
        )

    stream = StreamComponent(
        bus,
        client=client,
        store=_store(GENERATION_GENERATOR_NAME),
        model=config.llm_model,
        resumable=config.resumable,
        recent_output_chars=config.recent_output_chars,
        log=loggers.for_component("stream"),
    )

    mind = MindComponent(
        bus,
        prompt=config.initial_prompt,
        stream=stream,
        kb_store=_store(KNOWLEDGE_BASE_GENERATOR_NAME),
        full_state_interval=config.full_state_interval,
        log=loggers.for_component("mind"),
    )

    interrupts = InterruptsComponent(
        bus,
        config=config,
        client=client,
        store=_store(PIPELINE_GENERATOR_NAME),
        context_provider=mind.continuation_context,
        log=loggers.for_component("interrupts"),
    )

    extras: list[Component] = [
        RecentHistoryComponent(
            bus,
            client=client,
            model=analysis_model,
            log=loggers.for_component("recent-history"),
        ),
        ToolsComponent(
            bus,
            tools=tools,
            log=loggers.for_component("tools"),
        ),
    ]

    if config.enable_token_monitor:
        extras.append(TokenMonitorComponent(
            bus,
            store=_store("token-monitor-default"),
            client=client,
            model=analysis_model,
            full_state_interval=config.full_state_interval,
            log=loggers.for_component("token-monitor"),
        ))

    if config.timeout_ms is not None:
        extras.append(TimeoutComponent(
            bus,
            timeout_ms=config.timeout_ms,
            sigma_ms=config.timeout_sigma_ms,
            store=_store("time-based"),
            full_state_interval=config.full_state_interval,
            log=loggers.for_component("timeout"),
        ))

    return MindSession(
        config=config,
        bus=bus,
        stream=stream,
        interrupts=interrupts,
        mind=mind,
        log=loggers.for_component("session"),
        extras=extras,
    )
