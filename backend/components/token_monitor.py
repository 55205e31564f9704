"""
Token monitor: watches the chunk stream and raises interrupt requests.

Detection order per chunk:
1. Rules from generator metadata (`rules`):
     {"type": "regex", "pattern": "...", "flags": "i", "name": ..., "description": ...}
     {"type": "keyword", "keywords": ["..."], "description": ...}
2. Optional model analysis once every window of new chunks; the model
   answers "INTERRUPT: <reason>" or "CONTINUE".

State is persisted through the generator's StateStore: partial
snapshots at most once per save cooldown, a forced full checkpoint on
every interrupt.
"""

from __future__ import annotations

import json
import re
import time
from collections import deque
from typing import Any, Callable

from adapters.llm.base import CompletionClient
from components.base import Component
from components.bus import TopicBus
from constants import (
    FULL_STATE_INTERVAL_DEFAULT,
    TOKEN_MONITOR_DEFAULT_CRITERIA,
    TOKEN_MONITOR_MAX_BUFFER,
    TOKEN_MONITOR_SAVE_COOLDOWN_MS,
    TOKEN_MONITOR_WINDOW_SIZE,
    TOPIC_CHUNK,
    TOPIC_INTERRUPT_REQUEST,
)
from interrupts.record import (
    InterruptContext,
    InterruptRecord,
    InterruptSource,
    utc_now_iso,
)
from observability.logger import ComponentLogger
from state_store.store import CheckpointPolicy, StateStore


TYPE_TOKEN_MONITOR = "TokenMonitor"

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}

_ANALYSIS_PROMPT = """Analyze this text and determine if an interrupt should be triggered:

Text to analyze:
{content}

Previous state context:
{state}

Monitoring criteria:
{criteria}

If an interrupt should be triggered, respond with "INTERRUPT: <reason>".
If no interrupt is needed, respond with "CONTINUE"."""


def check_rules(content: str, rules: list[dict[str, Any]], log: ComponentLogger) -> str | None:
    """First matching rule's reason, or None."""
    for rule in rules:
        kind = rule.get("type")
        try:
            if kind == "regex" and rule.get("pattern"):
                flags = 0
                for flag in str(rule.get("flags") or ""):
                    flags |= _REGEX_FLAGS.get(flag, 0)
                if re.search(rule["pattern"], content, flags):
                    return (
                        f"Rule trigger: {rule.get('name') or 'Unnamed rule'} - "
                        f"{rule.get('description') or 'Pattern match'}"
                    )
            elif kind == "keyword" and rule.get("keywords"):
                keywords = rule["keywords"]
                if isinstance(keywords, str):
                    keywords = [keywords]
                for keyword in keywords:
                    if keyword and keyword in content:
                        return (
                            f'Keyword trigger: "{keyword}" detected - '
                            f"{rule.get('description') or 'Keyword match'}"
                        )
        except re.error as exc:
            log.error(
                "token_rule_invalid",
                rule=rule.get("name") or "unknown",
                error=f"{type(exc).__name__}: {exc}",
            )
    return None


def parse_monitor_verdict(text: str) -> str | None:
    """Reason if the model asked to interrupt, else None."""
    stripped = text.strip()
    if stripped.upper().startswith("INTERRUPT:"):
        return stripped[len("INTERRUPT:"):].strip() or "Model requested an interrupt"
    return None


class TokenMonitorComponent(Component):
    """
    Subscribes: chunk
    Publishes:  interrupt-request
    """

    name = "token-monitor"

    def __init__(
        self,
        bus: TopicBus,
        *,
        store: StateStore | None = None,
        client: CompletionClient | None = None,
        model: str | None = None,
        rules: list[dict[str, Any]] | None = None,
        max_buffer: int = TOKEN_MONITOR_MAX_BUFFER,
        window_size: int = TOKEN_MONITOR_WINDOW_SIZE,
        full_state_interval: int = FULL_STATE_INTERVAL_DEFAULT,
        save_cooldown_ms: int = TOKEN_MONITOR_SAVE_COOLDOWN_MS,
        clock: Callable[[], int] | None = None,
        log: ComponentLogger | None = None,
    ) -> None:
        super().__init__(bus, log=log)
        self._store = store
        self._client = client
        self._model = model
        self.rules: list[dict[str, Any]] = list(rules or [])
        self._rules_pinned = rules is not None
        self.criteria = TOKEN_MONITOR_DEFAULT_CRITERIA

        self.buffer: deque[str] = deque(maxlen=max_buffer)
        self._window_size = window_size
        self._since_analysis = 0
        self.total_tokens_processed = 0
        self.interrupt_count = 0
        self.last_interrupt_time: str | None = None

        self._policy = CheckpointPolicy(full_state_interval)
        self._save_cooldown_ms = save_cooldown_ms
        self._last_save_ms: int | None = None
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)

        self.sub(TOPIC_CHUNK, self._on_chunk)

    async def on_connect(self) -> None:
        await self.reload()

    async def reload(self) -> None:
        """Refresh rules, criteria and checkpoint counter from metadata."""
        if self._store is None:
            return
        meta = await self._store.load_meta()
        if not self._rules_pinned and isinstance(meta.get("rules"), list):
            self.rules = meta["rules"]
        if isinstance(meta.get("criteria"), str) and meta["criteria"]:
            self.criteria = meta["criteria"]
        if isinstance(meta.get("partialStateCount"), int):
            self._policy.partial_count = meta["partialStateCount"]
        self.log.debug("token_monitor_loaded", rules=len(self.rules))

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def _on_chunk(self, chunk: Any) -> None:
        self.buffer.append(str(chunk))
        self.total_tokens_processed += 1
        self._since_analysis += 1

        content = "".join(self.buffer)
        reason = check_rules(content, self.rules, self.log)

        if reason is None and self._should_analyze():
            reason = await self._analyze(content)

        if reason is not None:
            await self._raise_interrupt(reason, content)
            return

        await self._save_state(force_full=False)

    def _should_analyze(self) -> bool:
        return (
            self._client is not None
            and bool(self._model)
            and self._since_analysis >= self._window_size
        )

    async def _analyze(self, content: str) -> str | None:
        self._since_analysis = 0
        state = await self._store.load_state() if self._store is not None else ""
        prompt = _ANALYSIS_PROMPT.format(content=content, state=state, criteria=self.criteria)
        try:
            text = await self._client.complete(prompt, self._model)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self.log.error(
                "token_analysis_failed",
                error=f"{type(exc).__name__}: {exc}",
            )
            return None
        return parse_monitor_verdict(text)

    async def _raise_interrupt(self, reason: str, content: str) -> None:
        interrupt = InterruptRecord(
            source=InterruptSource.INTERNAL.value,
            interrupt_type=TYPE_TOKEN_MONITOR,
            reason=reason,
            context=InterruptContext(last_output=content, stream_state="active"),
            additional_data={"monitor": self.name},
        )
        self.interrupt_count += 1
        self.last_interrupt_time = interrupt.date_time
        self.log.info("token_monitor_triggered", reason=reason)

        # Matched text must not retrigger on the next chunk
        self.buffer.clear()
        self._since_analysis = 0

        await self._save_state(force_full=True, last_reason=reason)
        await self.pub(TOPIC_INTERRUPT_REQUEST, interrupt.to_markdown())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _save_state(self, *, force_full: bool, last_reason: str | None = None) -> None:
        if self._store is None:
            return

        now = self._clock()
        if (
            not force_full
            and self._last_save_ms is not None
            and now - self._last_save_ms < self._save_cooldown_ms
        ):
            return
        self._last_save_ms = now

        is_full = self._policy.next_is_full(force=force_full)
        window = list(self.buffer)[-self._window_size:]
        stamp = utc_now_iso()

        if is_full:
            content = "\n\n".join([
                "# Token Monitor State",
                f"## Summary\n- Last updated: {stamp}\n"
                f"- Tokens processed: {self.total_tokens_processed}\n"
                f"- Interrupts raised: {self.interrupt_count}\n"
                f"- Last reason: {last_reason or 'none'}",
                f"## Token Window\n```\n{json.dumps(window, ensure_ascii=False)}\n```",
            ])
        else:
            content = f"## Snapshot {stamp}\n```\n{json.dumps(window, ensure_ascii=False)}\n```"

        await self._store.update(
            content,
            {
                "totalTokensProcessed": self.total_tokens_processed,
                "lastInterruptTime": self.last_interrupt_time,
                "partialStateCount": self._policy.partial_count,
            },
            is_full=is_full,
        )
