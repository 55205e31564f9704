from __future__ import annotations

from typing import Any

from adapters.llm.base import CompletionClient
from components.base import Component
from components.bus import TopicBus
from constants import (
    RECENT_OUTPUT_MAX_CHARS,
    TOPIC_INTERRUPT,
    TOPIC_NEW_PROMPT,
    TOPIC_PROMPT,
    TOPIC_RESUME,
    TOPIC_TERMINATE,
    TOPIC_TOOLS_PROMPT,
)
from generation.controller import GenerationController
from observability.logger import ComponentLogger
from state_store.store import StateStore


class StreamComponent(Component):
    """
    Mounts the GenerationController on the bus.

    Subscribes: prompt, new-prompt, interrupt, resume, terminate, tools-prompt
    Publishes:  chunk, state (through the controller)
    """

    name = "stream"

    def __init__(
        self,
        bus: TopicBus,
        *,
        client: CompletionClient,
        store: StateStore | None = None,
        model: str | None = None,
        resumable: bool = True,
        recent_output_chars: int = RECENT_OUTPUT_MAX_CHARS,
        log: ComponentLogger | None = None,
    ) -> None:
        super().__init__(bus, log=log)
        self.controller = GenerationController(
            client=client,
            publish=self.pub,
            store=store,
            model=model,
            resumable=resumable,
            recent_output_chars=recent_output_chars,
            log=self.log,
        )
        self.tools_prompt: str | None = None

        self.sub(TOPIC_PROMPT, self._on_prompt)
        self.sub(TOPIC_NEW_PROMPT, self._on_prompt)
        self.sub(TOPIC_INTERRUPT, self._on_interrupt)
        self.sub(TOPIC_RESUME, self._on_resume)
        self.sub(TOPIC_TERMINATE, self._on_terminate)
        self.sub(TOPIC_TOOLS_PROMPT, self._on_tools_prompt)

    def compose_prompt(self, prompt: str) -> str:
        if self.tools_prompt:
            return f"{self.tools_prompt}\n\n{prompt}"
        return prompt

    async def _on_prompt(self, prompt: Any) -> None:
        text = str(prompt or "").strip()
        if not text:
            self.log.warning("empty_prompt_ignored")
            return
        await self.controller.start(self.compose_prompt(text))

    async def _on_interrupt(self, _interrupt: Any) -> None:
        await self.controller.interrupt()

    async def _on_resume(self, _payload: Any) -> None:
        await self.controller.resume()

    async def _on_terminate(self, _payload: Any) -> None:
        await self.controller.terminate()

    async def _on_tools_prompt(self, tools_prompt: Any) -> None:
        self.tools_prompt = str(tools_prompt) if tools_prompt else None

    async def on_disconnect(self) -> None:
        await self.controller.shutdown()
