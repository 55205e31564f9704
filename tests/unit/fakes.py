# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable

from adapters.llm.base import CompletionClient, StreamHandle


_END = object()


class FakeClock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class FakeStreamHandle(StreamHandle):
    """Deltas are fed by the test; iteration waits for them."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._aborted = False
        self.abort_calls = 0

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def abort(self) -> None:
        self.abort_calls += 1
        self._aborted = True
        self._queue.put_nowait(_END)

    def feed(self, *deltas: str) -> None:
        for delta in deltas:
            self._queue.put_nowait(delta)

    def finish(self) -> None:
        self._queue.put_nowait(_END)

    def fail(self, exc: BaseException) -> None:
        self._queue.put_nowait(exc)

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _END or self._aborted:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class FakeCompletionClient(CompletionClient):
    def __init__(
        self,
        responses: list[str | BaseException] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.error = error
        self.prompts: list[str] = []
        self.stream_prompts: list[str] = []
        self.handles: list[FakeStreamHandle] = []

    async def complete(self, prompt: str, model: str | None = None) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def continuation_stream(self, prompt: str, model: str | None = None) -> StreamHandle:
        self.stream_prompts.append(prompt)
        handle = FakeStreamHandle()
        self.handles.append(handle)
        return handle


class Recorder:
    """Collects (topic, payload) pairs; usable as a publish callable."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    async def __call__(self, topic: str, payload: Any = None) -> None:
        self.events.append((topic, payload))

    def topics(self) -> list[str]:
        return [topic for topic, _ in self.events]

    def payloads(self, topic: str) -> list[Any]:
        return [payload for t, payload in self.events if t == topic]


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate holds; worker-thread writes need real time."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)
