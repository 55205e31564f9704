# pylint: disable=missing-module-docstring,missing-function-docstring

from types import SimpleNamespace
from typing import Any

import pytest

from adapters.llm.openai_client import (
    OpenAICompletionClient,
    OpenAIStreamHandle,
    normalize_model_name,
)
from constants import COMPLETION_MAX_TOKENS, DEFAULT_MODEL, MODEL_ALIASES
from observability.logger import default_logger


def _chunk(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeVendorStream:
    """Async-iterable stand-in for the vendor response stream."""

    def __init__(self, chunks: list[Any]) -> None:
        self._chunks = chunks
        self.close_calls = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk

    async def close(self) -> None:
        self.close_calls += 1


class FakeCompletions:
    def __init__(self, result: Any) -> None:
        self.result = result
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        return self.result


def _vendor(result: Any) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(result)))


def test_normalize_model_name() -> None:
    assert normalize_model_name("gpt4") == "openai/gpt-4"
    assert normalize_model_name("vendor/custom") == "vendor/custom"
    assert normalize_model_name(None) == MODEL_ALIASES[DEFAULT_MODEL]
    assert normalize_model_name("mystery") == MODEL_ALIASES[DEFAULT_MODEL]


@pytest.mark.asyncio
async def test_stream_handle_yields_text_deltas_only() -> None:
    vendor = FakeVendorStream([_chunk("Hel"), _chunk(None), SimpleNamespace(choices=[]), _chunk("lo")])
    handle = OpenAIStreamHandle(vendor, default_logger("llm"))

    deltas = [delta async for delta in handle]

    assert deltas == ["Hel", "lo"]


@pytest.mark.asyncio
async def test_stream_handle_abort_is_idempotent() -> None:
    vendor = FakeVendorStream([_chunk("a")])
    handle = OpenAIStreamHandle(vendor, default_logger("llm"))

    await handle.abort()
    await handle.abort()

    assert handle.aborted is True
    assert vendor.close_calls == 1
    assert [delta async for delta in handle] == []


@pytest.mark.asyncio
async def test_complete_sends_single_user_message() -> None:
    message = SimpleNamespace(content="answer")
    vendor = _vendor(SimpleNamespace(choices=[SimpleNamespace(message=message)]))
    client = OpenAICompletionClient(client=vendor, default_model="gpt4")  # type: ignore[arg-type]

    text = await client.complete("question")

    (call,) = vendor.chat.completions.calls
    assert text == "answer"
    assert call["model"] == "openai/gpt-4"
    assert call["messages"] == [{"role": "user", "content": "question"}]
    assert call["max_tokens"] == COMPLETION_MAX_TOKENS


@pytest.mark.asyncio
async def test_continuation_stream_opens_streaming_request() -> None:
    vendor = _vendor(FakeVendorStream([_chunk("x")]))
    client = OpenAICompletionClient(client=vendor)  # type: ignore[arg-type]

    handle = await client.continuation_stream("go", "claude")

    (call,) = vendor.chat.completions.calls
    assert call["stream"] is True
    assert call["model"] == "anthropic/claude-3-sonnet"
    assert [delta async for delta in handle] == ["x"]
