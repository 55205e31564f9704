"""
Tool registry and in-stream tool call detection.

A tool call is a block in the generated text:

    Use tool: <name>
    <free text handed to the tool>
    <blank line>

Detected calls raise a ToolCall interrupt request, run in the background,
and report back with a ToolResult interrupt request.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from components.base import Component
from components.bus import TopicBus
from constants import (
    TOOL_CALL_WINDOW_CHARS,
    TOOLS_PROMPT_PREFIX,
    TOPIC_CHUNK,
    TOPIC_INTERRUPT_REQUEST,
    TOPIC_TOOLS_PROMPT,
)
from interrupts.record import InterruptRecord, InterruptSource, utc_now_iso
from observability.logger import ComponentLogger


TYPE_TOOL_CALL = "ToolCall"
TYPE_TOOL_RESULT = "ToolResult"

TOOL_CALL_PATTERN = re.compile(
    r"^(?:Use|Call|Execute|Invoke|Run) tool: ([a-zA-Z0-9_-]+)[ \t]*\n([\s\S]*?)\n\n",
    re.MULTILINE,
)


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    execute: Callable[[str], Awaitable[Any]]


def format_tool_result(result: Any) -> str:
    if result is None:
        return "No result provided"
    if isinstance(result, str):
        return result
    if isinstance(result, (dict, list)):
        try:
            return json.dumps(result, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            return f"[Object that could not be serialized: {exc}]"
    return str(result)


class ToolsComponent(Component):
    """
    Subscribes: chunk
    Publishes:  tools-prompt, interrupt-request
    """

    name = "tools"

    def __init__(
        self,
        bus: TopicBus,
        *,
        tools: list[Tool] | None = None,
        prefix: str = TOOLS_PROMPT_PREFIX,
        window_chars: int = TOOL_CALL_WINDOW_CHARS,
        log: ComponentLogger | None = None,
    ) -> None:
        super().__init__(bus, log=log)
        self.tools: dict[str, Tool] = {}
        self._prefix = prefix
        self._window_chars = window_chars
        self._window = ""
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._call_seq = 0

        for tool in tools or ():
            self.tools[tool.name] = tool

        self.sub(TOPIC_CHUNK, self._on_chunk)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    async def register(self, tool: Tool) -> None:
        self.tools[tool.name] = tool
        self.log.debug("tool_registered", tool=tool.name)
        if self.connected:
            await self.publish_tools_prompt()

    def tools_prompt(self) -> str | None:
        if not self.tools:
            return None

        parts = [f"{self._prefix}\n"]
        for tool in self.tools.values():
            parts.append(f"Tool: {tool.name}\nDescription: {tool.description}\n")
        parts.append(
            "To use a tool, output text in the following format:\n"
            "Use tool: [tool name]\n"
            "[any text here that the tool will process]\n"
            "[an empty line]\n\n"
            "The tool will be executed asynchronously, and the result will be provided back to you."
        )
        return "\n".join(parts)

    async def publish_tools_prompt(self) -> None:
        prompt = self.tools_prompt()
        if prompt is not None:
            await self.pub(TOPIC_TOOLS_PROMPT, prompt)

    async def on_connect(self) -> None:
        await self.publish_tools_prompt()

    async def on_disconnect(self) -> None:
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()

    async def join(self) -> None:
        """Wait for every in-flight tool execution."""
        while self._pending:
            await asyncio.gather(*list(self._pending.values()), return_exceptions=True)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def _on_chunk(self, chunk: Any) -> None:
        self._window = (self._window + str(chunk))[-self._window_chars:]

        match = TOOL_CALL_PATTERN.search(self._window)
        if match is None:
            return

        tool_name = match.group(1).strip()
        args_text = match.group(2).strip()
        self._window = ""
        await self._handle_call(tool_name, args_text)

    async def _handle_call(self, tool_name: str, args_text: str) -> None:
        self.log.debug("tool_call_detected", tool=tool_name)

        tool = self.tools.get(tool_name)
        if tool is None:
            self.log.warning("tool_not_found", tool=tool_name)
            await self._report(tool_name, None, f"Tool '{tool_name}' not found.")
            return

        self._call_seq += 1
        call_id = f"{tool_name}_{self._call_seq}"

        await self.pub(TOPIC_INTERRUPT_REQUEST, InterruptRecord(
            source=InterruptSource.TOOL.value,
            interrupt_type=TYPE_TOOL_CALL,
            reason=f"Tool call detected: {tool_name}",
            additional_data={
                "toolName": tool_name,
                "callId": call_id,
                "argsText": args_text,
            },
        ).to_markdown())

        task = asyncio.get_running_loop().create_task(self._execute(call_id, tool, args_text))
        self._pending[call_id] = task

    async def _execute(self, call_id: str, tool: Tool, args_text: str) -> None:
        try:
            result = await tool.execute(args_text)
        except asyncio.CancelledError:
            self._pending.pop(call_id, None)
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self.log.error(
                "tool_execution_failed",
                tool=tool.name,
                error=f"{type(exc).__name__}: {exc}",
            )
            self._pending.pop(call_id, None)
            await self._report(tool.name, None, f"Error executing tool {tool.name}: {exc}")
            return

        self._pending.pop(call_id, None)
        self.log.debug("tool_execution_done", tool=tool.name)
        await self._report(tool.name, format_tool_result(result), None)

    async def _report(self, tool_name: str, result: str | None, error: str | None) -> None:
        data: dict[str, Any] = {"toolName": tool_name, "completedAt": utc_now_iso()}
        if result is not None:
            data["result"] = result
        if error is not None:
            data["error"] = error

        await self.pub(TOPIC_INTERRUPT_REQUEST, InterruptRecord(
            source=InterruptSource.TOOL.value,
            interrupt_type=TYPE_TOOL_RESULT,
            reason=(
                f"Tool execution failed: {tool_name}"
                if error is not None
                else f"Tool execution completed: {tool_name}"
            ),
            additional_data=data,
        ).to_markdown())
