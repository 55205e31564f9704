"""
Model access contract.

Purpose:
- Define the two capabilities the rest of the system consumes:
    complete(prompt, model)            -> text (single shot)
    continuation_stream(prompt, model) -> abortable async sequence of deltas
- Keep all orchestration, retries, timing and suspension semantics
  OUT of the adapter.

Rules:
- This file contains NO logic.
- No retries.
- No timeouts.
- No knowledge of interrupts, topics, or the generation state machine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator


class StreamHandle(ABC):
    """
    A live model stream.

    Contract:
    - Iterating yields incremental text deltas, never full snapshots.
    - Iteration may be started once.
    - abort() is idempotent; after it, `aborted` is True and iteration
      stops (it may end early or raise; the consumer checks `aborted`
      to tell an abort from a genuine error).
    """

    @property
    @abstractmethod
    def aborted(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def abort(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[str]:
        raise NotImplementedError


class CompletionClient(ABC):
    """
    Abstract model client.

    The client is a *dumb pipe*:
    prompt -> vendor -> text.

    Caller responsibilities (NOT here):
    - When to start
    - When to abort
    - Retry policy
    - Timeouts
    - Prompt construction
    """

    @abstractmethod
    async def complete(self, prompt: str, model: str | None = None) -> str:
        """
        Single-shot completion.

        Raises:
            Any vendor error; callers decide how to degrade.
        """
        raise NotImplementedError

    @abstractmethod
    async def continuation_stream(
        self,
        prompt: str,
        model: str | None = None,
    ) -> StreamHandle:
        """
        Open a streaming completion and return its handle.

        The stream is open when this returns; deltas are pulled by
        iterating the handle.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release transport resources. Default: nothing to release."""
        return None
