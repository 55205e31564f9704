"""
Mind component: the reasoning goal and its memory.

Responsibilities:
- Publish the original prompt when connected
- Supply the continuation context used to write restart prompts
- Keep the compressed history published by the history component
- Apply knowledge-base updates and persist them
"""

from __future__ import annotations

from typing import Any

from components.base import Component
from components.bus import TopicBus
from components.stream import StreamComponent
from constants import (
    FULL_STATE_INTERVAL_DEFAULT,
    STREAM_UNAVAILABLE_MARKER,
    TOPIC_HISTORY,
    TOPIC_PROMPT,
    TOPIC_UPDATE_KB,
)
from interrupts.pipeline import ContinuationContext
from interrupts.record import utc_now_iso
from observability.logger import ComponentLogger
from state_store.sections import parse_sections
from state_store.store import CheckpointPolicy, StateStore


_KB_TITLE = "# Knowledge Base"


class MindComponent(Component):
    name = "mind"

    def __init__(
        self,
        bus: TopicBus,
        *,
        prompt: str = "",
        stream: StreamComponent | None = None,
        kb_store: StateStore | None = None,
        full_state_interval: int = FULL_STATE_INTERVAL_DEFAULT,
        log: ComponentLogger | None = None,
    ) -> None:
        super().__init__(bus, log=log)
        self.original_prompt = prompt
        self.history = ""
        self.knowledge_base: dict[str, str] = {}
        self._stream = stream
        self._kb_store = kb_store
        self._policy = CheckpointPolicy(full_state_interval)

        self.sub(TOPIC_PROMPT, self._on_prompt)
        self.sub(TOPIC_HISTORY, self._on_history)
        self.sub(TOPIC_UPDATE_KB, self._on_update_kb)

    # ------------------------------------------------------------------
    # Continuation context
    # ------------------------------------------------------------------

    def recent_output(self, max_chars: int | None = None) -> str:
        """Tail of the live stream, or a marker when no stream is mounted."""
        if self._stream is None or not self._stream.connected:
            return STREAM_UNAVAILABLE_MARKER
        return self._stream.controller.recent_output(max_chars)

    async def continuation_context(self) -> ContinuationContext:
        return ContinuationContext(
            original_prompt=self.original_prompt,
            history=self.history,
            recent_output=self.recent_output(),
        )

    def knowledge_base_text(self) -> str:
        return "\n\n".join(
            [_KB_TITLE] + [f"{header}\n{body}" for header, body in self.knowledge_base.items()]
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def on_connect(self) -> None:
        if self._kb_store is not None:
            restored = await self._kb_store.load_state()
            self.knowledge_base.update(parse_sections(restored))
            self.knowledge_base.pop(_KB_TITLE, None)
            meta = await self._kb_store.load_meta()
            count = meta.get("partialStateCount")
            if isinstance(count, int):
                self._policy.partial_count = count

        if self.original_prompt:
            await self.pub(TOPIC_PROMPT, self.original_prompt)

    async def _on_prompt(self, prompt: Any) -> None:
        text = str(prompt or "").strip()
        if text:
            self.original_prompt = text

    async def _on_history(self, history: Any) -> None:
        self.history = str(history or "")

    async def _on_update_kb(self, updates: Any) -> None:
        text = str(updates or "").strip()
        if not text:
            return

        header = f"## Update {utc_now_iso()}"
        # Same-millisecond updates must not collapse into one section
        suffix = 2
        while header in self.knowledge_base:
            header = f"## Update {utc_now_iso()} ({suffix})"
            suffix += 1
        self.knowledge_base[header] = text
        self.log.info("knowledge_base_updated", entries=len(self.knowledge_base))

        if self._kb_store is None:
            return

        is_full = self._policy.next_is_full()
        content = self.knowledge_base_text() if is_full else f"{header}\n{text}"
        await self._kb_store.update(
            content,
            {"partialStateCount": self._policy.partial_count},
            is_full=is_full,
        )
