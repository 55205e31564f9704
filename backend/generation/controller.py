"""
Generation controller: owns the single live model stream.

Transitions:
    IDLE --start--> STARTING --opened--> STREAMING
    STREAMING --interrupt (resumable)--> INTERRUPTED   (handle retained)
    STREAMING --interrupt (not resumable)--> IDLE      (handle aborted)
    INTERRUPTED --resume--> STREAMING
    INTERRUPTED | STREAMING --terminate--> IDLE        (handle aborted)
    STREAMING --natural end--> COMPLETED
    STREAMING --stream error--> ERROR
    any --start--> STARTING                            (live stream aborted)

Rules:
- A handle is aborted at most once: the reference is cleared before
  abort() is awaited.
- Every start() gets a new run id; a stream belonging to an older run
  is discarded (aborted if it opens late, ignored if it yields late).
- chunk_history is append-only. Deltas that arrive while INTERRUPTED are
  held and appended on resume, in order.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from adapters.llm.base import CompletionClient, StreamHandle
from constants import RECENT_OUTPUT_MAX_CHARS, TOPIC_CHUNK, TOPIC_STATE
from generation.history import recent_chunks
from generation.states import GenerationState
from interrupts.record import utc_now_iso
from observability.logger import ComponentLogger, default_logger
from state_store.store import StateStore


Publish = Callable[[str, Any], Awaitable[None]]


class GenerationController:
    def __init__(
        self,
        *,
        client: CompletionClient,
        publish: Publish,
        store: StateStore | None = None,
        model: str | None = None,
        resumable: bool = True,
        recent_output_chars: int = RECENT_OUTPUT_MAX_CHARS,
        log: ComponentLogger | None = None,
    ) -> None:
        self._client = client
        self._publish = publish
        self._store = store
        self._model = model
        self.resumable = resumable
        self._recent_output_chars = recent_output_chars
        self._log = log or default_logger("generation")

        self.state = GenerationState.IDLE
        self.chunk_history: list[str] = []
        self.prompt: str | None = None
        self.last_error: str | None = None
        self.run_id = 0

        self._handle: StreamHandle | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._held: list[str] = []
        self._ended_while_interrupted = False
        self._draining = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def has_live_stream(self) -> bool:
        return self._handle is not None

    def recent_chunks(self, max_chars: int | None = None) -> list[str]:
        budget = self._recent_output_chars if max_chars is None else max_chars
        return recent_chunks(self.chunk_history, budget)

    def recent_output(self, max_chars: int | None = None) -> str:
        return "".join(self.recent_chunks(max_chars))

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "runId": self.run_id,
            "prompt": self.prompt,
            "chunkCount": len(self.chunk_history),
            "heldCount": len(self._held),
            "hasLiveStream": self.has_live_stream,
            "lastError": self.last_error,
            "recentOutput": self.recent_output(),
        }

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self, prompt: str) -> None:
        """Abort any live stream and open a new one for prompt."""
        await self._stop_stream()
        run_id = self.run_id
        self.prompt = prompt
        self.last_error = None

        await self._transition(GenerationState.STARTING)

        try:
            handle = await self._client.continuation_stream(prompt, self._model)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            if run_id == self.run_id:
                await self._fail(exc)
            return

        if run_id != self.run_id:
            # Superseded while the stream was opening
            self._log.debug("stale_stream_discarded", run_id=run_id)
            await handle.abort()
            return

        self._handle = handle
        await self._transition(GenerationState.STREAMING)
        await self._persist()

        self._consumer = asyncio.get_running_loop().create_task(
            self._consume(run_id, handle)
        )

    async def interrupt(self) -> None:
        if self.state is not GenerationState.STREAMING:
            self._log.warning("interrupt_ignored", state=self.state.value)
            return

        if self.resumable:
            await self._transition(GenerationState.INTERRUPTED)
        else:
            await self._stop_stream()
            await self._transition(GenerationState.IDLE)
        await self._persist()

    async def resume(self) -> None:
        if self.state is not GenerationState.INTERRUPTED:
            self._log.warning("resume_ignored", state=self.state.value)
            return
        if self._handle is None:
            self._log.warning("resume_without_stream", state=self.state.value)
            return

        await self._transition(GenerationState.STREAMING)

        # New deltas keep queueing behind held ones until the queue drains
        self._draining = True
        try:
            while self._held:
                await self._emit(self._held.pop(0))
        finally:
            self._draining = False

        if self._ended_while_interrupted:
            await self._complete()

    async def terminate(self) -> None:
        if self.state not in (
            GenerationState.STARTING,
            GenerationState.STREAMING,
            GenerationState.INTERRUPTED,
        ):
            self._log.warning("terminate_ignored", state=self.state.value)
            return

        await self._stop_stream()
        await self._transition(GenerationState.IDLE)
        await self._persist()

    async def shutdown(self) -> None:
        await self._stop_stream()

    async def restore(self) -> str:
        """Last persisted generation state ("" if none)."""
        if self._store is None:
            return ""
        return await self._store.load_state()

    # ------------------------------------------------------------------
    # Stream consumption
    # ------------------------------------------------------------------

    async def _consume(self, run_id: int, handle: StreamHandle) -> None:
        try:
            async for delta in handle:
                if run_id != self.run_id:
                    return
                await self._on_delta(delta)

        except asyncio.CancelledError:
            # Expected when a new prompt or terminate replaces this run
            return

        except Exception as exc:  # pylint: disable=broad-exception-caught
            if handle.aborted or run_id != self.run_id:
                self._log.debug("stream_aborted", run_id=run_id)
                return
            await self._fail(exc)
            return

        if handle.aborted or run_id != self.run_id:
            return

        # resume() completes the stream once held deltas are out
        if self.state is GenerationState.INTERRUPTED or self._held or self._draining:
            self._ended_while_interrupted = True
            return
        await self._complete()

    async def _on_delta(self, delta: str) -> None:
        if self.state is GenerationState.INTERRUPTED or self._held or self._draining:
            self._held.append(delta)
            return
        if self.state is not GenerationState.STREAMING:
            return
        await self._emit(delta)

    async def _emit(self, delta: str) -> None:
        self.chunk_history.append(delta)
        await self._publish(TOPIC_CHUNK, delta)

    async def _complete(self) -> None:
        self._handle = None
        self._consumer = None
        self._ended_while_interrupted = False
        await self._transition(GenerationState.COMPLETED)
        await self._persist()

    async def _fail(self, exc: BaseException) -> None:
        self.last_error = f"{type(exc).__name__}: {exc}"
        self._log.error("stream_error", run_id=self.run_id, error=self.last_error)

        handle, self._handle = self._handle, None
        self._consumer = None
        self._held.clear()
        self._ended_while_interrupted = False
        if handle is not None:
            await handle.abort()

        await self._transition(GenerationState.ERROR)
        await self._persist()

    async def _stop_stream(self) -> None:
        """Invalidate the current run and release its stream."""
        self.run_id += 1
        handle, self._handle = self._handle, None
        consumer, self._consumer = self._consumer, None
        self._held.clear()
        self._ended_while_interrupted = False

        if handle is not None:
            await handle.abort()

        # The consumer may be the task running this very call
        if (
            consumer is not None
            and consumer is not asyncio.current_task()
            and not consumer.done()
        ):
            consumer.cancel()

    # ------------------------------------------------------------------
    # State changes and persistence
    # ------------------------------------------------------------------

    async def _transition(self, new_state: GenerationState) -> None:
        old_state, self.state = self.state, new_state
        self._log.debug(
            "generation_state",
            old_state=old_state.value,
            new_state=new_state.value,
            run_id=self.run_id,
        )
        await self._publish(TOPIC_STATE, {
            "newState": new_state.value,
            "oldState": old_state.value,
            "timestamp": utc_now_iso(),
        })

    async def _persist(self) -> None:
        if self._store is None:
            return
        content = "\n\n".join([
            "# Generation State",
            f"## Status\n{self.state.value}",
            f"## Prompt\n{self.prompt or ''}",
            f"## Recent Output\n{self.recent_output()}",
        ])
        await self._store.save_state(content, is_full=True)
