"""OpenAI-compatible model client (OpenRouter by default)."""
from __future__ import annotations

from typing import Any, AsyncIterator

from openai import AsyncOpenAI

from adapters.llm.base import CompletionClient, StreamHandle
from config import AppConfig
from constants import COMPLETION_MAX_TOKENS, DEFAULT_MODEL, MODEL_ALIASES
from observability.logger import ComponentLogger, default_logger


def normalize_model_name(model: str | None, log: ComponentLogger | None = None) -> str:
    """
    Map a short alias to a provider model id.

    - known alias -> mapped id
    - "vendor/model" -> unchanged
    - anything else -> default model (with a warning)
    """
    name = model or DEFAULT_MODEL
    if name in MODEL_ALIASES:
        return MODEL_ALIASES[name]
    if "/" in name:
        return name

    (log or default_logger("llm")).warning(
        "unknown_model_defaulted",
        model=name,
        default=DEFAULT_MODEL,
    )
    return MODEL_ALIASES[DEFAULT_MODEL]


class OpenAIStreamHandle(StreamHandle):
    """
    Wraps a vendor AsyncStream.

    Design notes:
    - abort() closes the underlying HTTP response; a consumer blocked on
      the next chunk wakes up with an error or an early end.
    - Deltas are read with the OpenAI chat chunk layout.
    """

    def __init__(self, stream: Any, log: ComponentLogger) -> None:
        self._stream = stream
        self._aborted = False
        self._log = log

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def abort(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        try:
            await self._stream.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Closing a half-read response is best effort
            self._log.warning(
                "stream_close_failed",
                error=f"{type(exc).__name__}: {exc}",
            )

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        async for chunk in self._stream:
            if self._aborted:
                return
            delta = self._extract_delta(chunk)
            if delta:
                yield delta

    @staticmethod
    def _extract_delta(chunk: Any) -> str:
        """
        Extract token delta from vendor response (OpenAI format).
        """
        try:
            delta = chunk.choices[0].delta
            return delta.content or ""
        except (AttributeError, IndexError):
            return ""


class OpenAICompletionClient(CompletionClient):
    def __init__(
        self,
        *,
        client: AsyncOpenAI,
        default_model: str = DEFAULT_MODEL,
        log: ComponentLogger | None = None,
    ) -> None:
        self._client = client
        self._default_model = default_model
        self._log = log or default_logger("llm")

    async def complete(self, prompt: str, model: str | None = None) -> str:
        model_id = normalize_model_name(model or self._default_model, self._log)
        self._log.debug("completion_start", model=model_id, prompt_chars=len(prompt))

        completion = await self._client.chat.completions.create(
            model=model_id,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=COMPLETION_MAX_TOKENS,
        )
        text = completion.choices[0].message.content or ""

        self._log.debug("completion_done", model=model_id, chars=len(text))
        return text

    async def continuation_stream(
        self,
        prompt: str,
        model: str | None = None,
    ) -> StreamHandle:
        model_id = normalize_model_name(model or self._default_model, self._log)
        self._log.debug("stream_open", model=model_id, prompt_chars=len(prompt))

        stream = await self._client.chat.completions.create(
            model=model_id,
            messages=[{"role": "user", "content": prompt}],
            stream=True,
        )
        return OpenAIStreamHandle(stream, self._log)

    async def aclose(self) -> None:
        await self._client.close()


def build_llm_client(config: AppConfig, log: ComponentLogger | None = None) -> OpenAICompletionClient:
    """Build the model client for the configured OpenAI-compatible endpoint."""
    return OpenAICompletionClient(
        client=AsyncOpenAI(api_key=config.llm_api_key, base_url=config.llm_base_url),
        default_model=config.llm_model,
        log=log,
    )

