"""
Interrupt processing pipeline.

Design notes:
- Interrupts are processed strictly one at a time. Arrivals while busy
  (or while earlier arrivals are still queued) wait in a FIFO queue.
- The next queued interrupt is dispatched from a fresh task once the
  current one finishes; call stacks never nest.
- Four sequential stages: reception -> analysis -> planning -> execution.
- Analysis and planning may consult the completion service. A failing
  call degrades that stage to its deterministic default, and a degraded
  interrupt always ends in TERMINATE plus a continuation prompt.
- Any other failure runs the fallback, which always yields TERMINATE
  plus a generic continuation prompt.
- No timeout wraps completion calls; a hung call stalls this pipeline.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from adapters.llm.base import CompletionClient
from constants import (
    FALLBACK_PROMPT,
    PIPELINE_FULL_STATE_EVERY,
    PRIVILEGED_INTERRUPT_TYPES,
    PROCESSING_HISTORY_CAP,
    RATE_LIMIT_MS_DEFAULT,
    TOPIC_INTERRUPT,
    TOPIC_NEW_PROMPT,
    TOPIC_RESUME,
    TOPIC_TERMINATE,
    TOPIC_UPDATE_KB,
)
from interrupts.assessment import (
    Analysis,
    Plan,
    Strategy,
    default_analysis,
    default_plan,
    parse_analysis,
    parse_plan,
)
from interrupts.prompts import (
    build_analysis_prompt,
    build_continuation_prompt,
    build_planning_prompt,
)
from interrupts.rate_limit import RateLimiter
from interrupts.record import (
    InterruptRecord,
    coerce_interrupt,
    utc_now_iso,
    validate_interrupt,
)
from observability.logger import ComponentLogger, default_logger
from state_store.store import StateStore


Publish = Callable[[str, Any], Awaitable[None]]


class SubmitOutcome(str, Enum):
    REJECTED = "REJECTED"
    QUEUED = "QUEUED"
    PROCESSED = "PROCESSED"


@dataclass(frozen=True)
class ContinuationContext:
    """What the planner needs to write a restart prompt."""
    original_prompt: str = ""
    history: str = ""
    recent_output: str = ""


ContextProvider = Callable[[], Awaitable[ContinuationContext]]


@dataclass(frozen=True)
class PipelineResult:
    interrupt: InterruptRecord
    strategy: Strategy
    new_prompt: str | None
    kb_updates: str | None
    fallback: bool
    duration_ms: int

    def to_history_entry(self) -> dict[str, Any]:
        return {
            "dateTime": self.interrupt.date_time,
            "source": self.interrupt.source,
            "type": self.interrupt.interrupt_type,
            "reason": self.interrupt.reason,
            "strategy": self.strategy.value,
            "fallback": self.fallback,
            "durationMs": self.duration_ms,
        }


class InterruptPipeline:
    """
    Rate-limited, serialized interrupt processor for one generation layer.

    Publishes on the generation topics through the injected `publish`
    callable; never raises out of processing.
    """

    def __init__(
        self,
        *,
        publish: Publish,
        store: StateStore | None = None,
        client: CompletionClient | None = None,
        analysis_model: str | None = None,
        context_provider: ContextProvider | None = None,
        rate_limit_ms: int = RATE_LIMIT_MS_DEFAULT,
        privileged_types: Iterable[str] = PRIVILEGED_INTERRUPT_TYPES,
        history_cap: int = PROCESSING_HISTORY_CAP,
        full_state_every: int = PIPELINE_FULL_STATE_EVERY,
        clock: Callable[[], int] | None = None,
        log: ComponentLogger | None = None,
    ) -> None:
        self._publish = publish
        self._store = store
        self._client = client
        self._analysis_model = analysis_model
        self._context_provider = context_provider
        self._privileged_types = tuple(privileged_types)
        self._full_state_every = full_state_every
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)
        self._log = log or default_logger("interrupt_pipeline")

        self._limiter = RateLimiter(rate_limit_ms, self._privileged_types, self._clock)

        self.processing = False
        self._pending: deque[InterruptRecord] = deque()
        # Most recent first
        self._history: deque[dict[str, Any]] = deque(maxlen=history_cap)
        self.history_count = 0

        self._idle = asyncio.Event()
        self._idle.set()
        self._dispatch_task: asyncio.Task[None] | None = None
        self._recorded = False
        # Set when a completion call failed for the current interrupt
        self._degraded = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def last_interrupt_time(self) -> int | None:
        return self._limiter.last_interrupt_time

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def history(self) -> list[dict[str, Any]]:
        return list(self._history)

    async def submit(self, payload: InterruptRecord | str) -> SubmitOutcome:
        """
        Gate, queue, or process one interrupt.

        Returns:
            REJECTED if rate limited, QUEUED if another interrupt is in
            flight or waiting, PROCESSED once this one has been handled.
        """
        interrupt = coerce_interrupt(payload)

        if not self._limiter.allow(interrupt.interrupt_type):
            self._log.info(
                "interrupt_rate_limited",
                source=interrupt.source,
                type=interrupt.interrupt_type,
                reason=interrupt.reason,
            )
            return SubmitOutcome.REJECTED

        if self.processing or self._pending:
            self._pending.append(interrupt)
            self._idle.clear()
            self._log.debug(
                "interrupt_queued",
                type=interrupt.interrupt_type,
                pending=len(self._pending),
            )
            return SubmitOutcome.QUEUED

        await self._process(interrupt)
        return SubmitOutcome.PROCESSED

    async def join(self) -> None:
        """Wait until nothing is processing and the queue is empty."""
        await self._idle.wait()

    async def restore(self) -> None:
        """Continue history numbering from persisted metadata."""
        if self._store is None:
            return
        meta = await self._store.load_meta()
        count = meta.get("historyCount")
        if isinstance(count, int):
            self.history_count = count

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def _process(self, interrupt: InterruptRecord) -> PipelineResult:
        self.processing = True
        self._idle.clear()
        self._recorded = False
        self._degraded = False
        started = self._clock()

        try:
            try:
                return await self._run_stages(interrupt, started)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log.error(
                    "interrupt_pipeline_failed",
                    type=interrupt.interrupt_type,
                    error=f"{type(exc).__name__}: {exc}",
                )
                return await self._fallback(interrupt, started)
        finally:
            self.processing = False
            if self._pending:
                self._schedule_next()
            else:
                self._idle.set()

    def _schedule_next(self) -> None:
        self._dispatch_task = asyncio.get_running_loop().create_task(self._dispatch_next())

    async def _dispatch_next(self) -> None:
        if self.processing or not self._pending:
            return
        await self._process(self._pending.popleft())

    async def _run_stages(self, interrupt: InterruptRecord, started: int) -> PipelineResult:
        await self._publish(TOPIC_INTERRUPT, interrupt)

        received = self._reception(interrupt)
        context = await self._continuation_context()
        analysis = await self._analysis(received, context)
        plan = await self._planning(received, analysis, context)
        await self._execution(plan)

        result = PipelineResult(
            interrupt=plan.enhanced_interrupt,
            strategy=plan.strategy,
            new_prompt=plan.new_prompt,
            kb_updates=plan.kb_updates,
            fallback=False,
            duration_ms=self._clock() - started,
        )
        self._record(result)
        await self._persist(result)

        self._log.info(
            "interrupt_processed",
            type=interrupt.interrupt_type,
            strategy=result.strategy.value,
            new_prompt=result.new_prompt is not None,
            duration_ms=result.duration_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _reception(self, interrupt: InterruptRecord) -> InterruptRecord:
        validate_interrupt(interrupt)
        return interrupt.with_additional_data("reception", {
            "receivedAt": utc_now_iso(),
            "queueDepth": len(self._pending),
            "privileged": str(interrupt.interrupt_type in self._privileged_types).lower(),
        })

    async def _continuation_context(self) -> ContinuationContext:
        if self._context_provider is None:
            return ContinuationContext()
        return await self._context_provider()

    async def _analysis(
        self,
        interrupt: InterruptRecord,
        context: ContinuationContext,
    ) -> Analysis:
        default = default_analysis(interrupt, self._privileged_types)
        if self._client is None or not self._analysis_model:
            return default

        try:
            text = await self._client.complete(
                build_analysis_prompt(interrupt, context.recent_output),
                self._analysis_model,
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log.warning(
                "analysis_degraded",
                error=f"{type(exc).__name__}: {exc}",
            )
            self._degraded = True
            return default

        return parse_analysis(text, default)

    async def _planning(
        self,
        interrupt: InterruptRecord,
        analysis: Analysis,
        context: ContinuationContext,
    ) -> Plan:
        continuation = build_continuation_prompt(
            context.original_prompt,
            context.history,
            context.recent_output,
            interrupt.to_markdown(),
        )
        default = default_plan(interrupt, analysis, continuation)
        if self._client is None or not self._analysis_model:
            return default

        try:
            text = await self._client.complete(
                build_planning_prompt(interrupt, analysis, continuation),
                self._analysis_model,
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log.warning(
                "planning_degraded",
                error=f"{type(exc).__name__}: {exc}",
            )
            self._degraded = True
            return _terminate(default, continuation)

        plan = parse_plan(text, default)
        if self._degraded:
            return _terminate(plan, continuation)
        return plan

    async def _execution(self, plan: Plan) -> None:
        topic = TOPIC_RESUME if plan.strategy is Strategy.RESUME else TOPIC_TERMINATE
        await self._publish(topic, plan.enhanced_interrupt)

        if plan.new_prompt:
            await self._publish(TOPIC_NEW_PROMPT, plan.new_prompt)
        if plan.kb_updates:
            await self._publish(TOPIC_UPDATE_KB, plan.kb_updates)

    async def _fallback(self, interrupt: InterruptRecord, started: int) -> PipelineResult:
        result = PipelineResult(
            interrupt=interrupt,
            strategy=Strategy.TERMINATE,
            new_prompt=FALLBACK_PROMPT,
            kb_updates=None,
            fallback=True,
            duration_ms=self._clock() - started,
        )
        # A persistence failure happens after the entry was recorded
        if not self._recorded:
            self._record(result)

        try:
            await self._publish(TOPIC_TERMINATE, interrupt)
            await self._publish(TOPIC_NEW_PROMPT, FALLBACK_PROMPT)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log.error(
                "fallback_publish_failed",
                error=f"{type(exc).__name__}: {exc}",
            )

        self._log.warning(
            "interrupt_fallback",
            type=interrupt.interrupt_type,
            strategy=result.strategy.value,
        )
        return result

    # ------------------------------------------------------------------
    # History and persistence
    # ------------------------------------------------------------------

    def _record(self, result: PipelineResult) -> None:
        self._history.appendleft(result.to_history_entry())
        self.history_count += 1
        self._recorded = True

    async def _persist(self, result: PipelineResult) -> None:
        if self._store is None:
            return

        is_full = self.history_count % self._full_state_every == 0
        if is_full:
            content = "# Interrupt Pipeline History\n\n" + "\n\n".join(
                _history_section(entry) for entry in self._history
            )
        else:
            content = _history_section(result.to_history_entry())

        await self._store.update(
            content,
            {
                "historyCount": self.history_count,
                "lastStrategy": result.strategy.value,
                "lastInterruptTime": self._limiter.last_interrupt_time,
            },
            is_full=is_full,
        )


def _terminate(plan: Plan, continuation: str) -> Plan:
    return replace(
        plan,
        strategy=Strategy.TERMINATE,
        new_prompt=plan.new_prompt or continuation or FALLBACK_PROMPT,
    )


def _history_section(entry: dict[str, Any]) -> str:
    return "\n".join([
        f"## Interrupt {entry['dateTime']} [{entry['source']}/{entry['type']}]",
        f"- Reason: {' '.join(str(entry['reason']).splitlines())}",
        f"- Strategy: {entry['strategy']}",
        f"- Fallback: {str(entry['fallback']).lower()}",
        f"- Duration: {entry['durationMs']}ms",
    ])
