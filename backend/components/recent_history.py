"""
Recent history: a rolling, compressed summary of the generated text.

Chunks are grouped into blocks of roughly max_length / ratio chars. Each
full block is compressed on its own, the newest block_count blocks are
kept, and the blocks are compressed again as a whole whenever they
exceed max_length. Compression runs in the background; chunks that
arrive meanwhile are replayed once it finishes.

Without a model client, compression degrades to keeping the tail of the
text.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from adapters.llm.base import CompletionClient
from components.base import Component
from components.bus import TopicBus
from constants import (
    COMPRESSION_MAX_ITERATIONS,
    HISTORY_BLOCK_COUNT,
    HISTORY_MAX_LENGTH,
    HISTORY_RATIO,
    TOPIC_CHUNK,
    TOPIC_HISTORY,
)
from observability.logger import ComponentLogger


PromptFn = Callable[..., str]


def _pct(part: float, whole: float) -> str:
    return f"{(part / whole * 100):.1f}%" if whole else "100.0%"


def initial_block_prompt(content: str, target: int) -> str:
    return (
        "Compress this block of text while preserving key information:\n\n"
        f"<original-text>{content}</original-text>\n\n"
        "Provide a concise summary that maintains essential details.\n"
        f"Current length {len(content)} chars.\n"
        f"Target length: {target} chars, {_pct(target, len(content))} of the original.\n"
        "Output only the compressed text."
    )


def subsequent_block_prompt(content: str, previous: str, target: int) -> str:
    return (
        "You are iteratively compressing a block of text.\n"
        "Original text for reference:\n\n"
        f"<original-text>{content}</original-text>\n\n"
        f"Current best compression is {len(previous)} chars, "
        f"{len(previous) - target} chars longer than expected.\n\n"
        f"<previous-compression>{previous}</previous-compression>\n\n"
        "Your task is to create an even shorter version while maintaining essential details.\n"
        f"Target length: {target} chars, {_pct(target, len(content))} of the original.\n"
        "Output only the compressed text."
    )


def initial_all_prompt(content: str, target: int) -> str:
    return (
        "Create a compressed version of this historical content:\n\n"
        f"<original-text>{content}</original-text>\n\n"
        "Provide a concise summary that maintains the essential narrative and key points.\n"
        f"Current length {len(content)} chars.\n"
        f"Target length: {target} chars, {_pct(target, len(content))} of the original.\n"
        "Output only the compressed text."
    )


def subsequent_all_prompt(content: str, previous: str, target: int) -> str:
    return (
        "You are iteratively compressing historical content.\n"
        "Original content for reference:\n\n"
        f"<original-text>{content}</original-text>\n\n"
        f"Current best compression is {len(previous)} chars, "
        f"{len(previous) - target} chars longer than expected.\n\n"
        f"<previous-compression>{previous}</previous-compression>\n\n"
        "Your task is to create an even shorter version while maintaining "
        "the essential narrative and key points.\n"
        f"Target length: {target} chars, {_pct(target, len(content))} of the original.\n"
        "Output only the compressed text."
    )


class RecentHistoryComponent(Component):
    """
    Subscribes: chunk
    Publishes:  history
    """

    name = "recent-history"

    def __init__(
        self,
        bus: TopicBus,
        *,
        client: CompletionClient | None = None,
        model: str | None = None,
        block_count: int = HISTORY_BLOCK_COUNT,
        max_length: int = HISTORY_MAX_LENGTH,
        ratio: int = HISTORY_RATIO,
        max_iterations: int = COMPRESSION_MAX_ITERATIONS,
        log: ComponentLogger | None = None,
    ) -> None:
        super().__init__(bus, log=log)
        self._client = client
        self._model = model
        self.block_count = block_count
        self.max_length = max_length
        self.target_block_length = max(1, max_length // ratio)
        self.max_iterations = max_iterations

        self.blocks: list[str] = []
        self.last_compressed = ""
        self.compressing = False
        self._current: list[str] = []
        self._current_length = 0
        self._pending: list[str] = []
        self._task: asyncio.Task[None] | None = None

        self.sub(TOPIC_CHUNK, self._on_chunk)

    # ------------------------------------------------------------------
    # Chunk intake
    # ------------------------------------------------------------------

    async def _on_chunk(self, chunk: Any) -> None:
        self._accept(str(chunk))

    def _accept(self, chunk: str) -> None:
        if self.compressing:
            self._pending.append(chunk)
            return

        self._current.append(chunk)
        self._current_length += len(chunk)
        if self._current_length < self.target_block_length:
            return

        block = "".join(self._current)
        self._current = []
        self._current_length = 0
        self.compressing = True
        self._task = asyncio.get_running_loop().create_task(self._compress_cycle(block))

    async def join(self) -> None:
        """Wait until no compression is running."""
        while self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)

    async def on_disconnect(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    # ------------------------------------------------------------------
    # Compression
    # ------------------------------------------------------------------

    async def _compress_cycle(self, block: str) -> None:
        try:
            self.blocks.append(await self.compress_block(block))
            if len(self.blocks) > self.block_count:
                self.blocks.pop(0)
            await self.compress_all()
            await self.pub(TOPIC_HISTORY, self.last_compressed)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self.log.error(
                "history_compression_failed",
                error=f"{type(exc).__name__}: {exc}",
            )
        finally:
            self.compressing = False
            pending, self._pending = self._pending, []
            for chunk in pending:
                self._accept(chunk)

    async def compress_block(self, content: str) -> str:
        return await self.compress_iteratively(
            content,
            self.target_block_length,
            initial_block_prompt,
            subsequent_block_prompt,
        )

    async def compress_all(self) -> str:
        all_content = "\n".join([*self.blocks, "".join(self._current)]).strip("\n")
        if len(all_content) <= self.max_length:
            self.last_compressed = all_content
        else:
            self.last_compressed = await self.compress_iteratively(
                all_content,
                self.max_length,
                initial_all_prompt,
                subsequent_all_prompt,
            )
        return self.last_compressed

    async def compress_iteratively(
        self,
        content: str,
        target: int,
        initial: PromptFn,
        subsequent: PromptFn,
    ) -> str:
        """
        Up to max_iterations passes, each one fed the previous result.

        Accepts the first pass within max(target + 30, 1.2 * target);
        stops early when a pass is no shorter than the previous one.
        """
        if len(content) <= target:
            return content
        if self._client is None or not self._model:
            return content[-target:]

        previous: str | None = None
        best: str | None = None
        for iteration in range(1, self.max_iterations + 1):
            prompt = subsequent(content, previous, target) if previous else initial(content, target)
            compressed = (await self._client.complete(prompt, self._model)).strip()
            self.log.debug(
                "compression_pass",
                iteration=iteration,
                target=target,
                length=len(compressed),
            )

            if len(compressed) >= target * 0.8 and (best is None or len(compressed) < len(best)):
                best = compressed
            if len(compressed) <= max(target + 30, target * 1.2):
                return compressed
            if previous is not None and len(compressed) >= len(previous):
                return best or compressed
            previous = compressed

        return best or previous or content
