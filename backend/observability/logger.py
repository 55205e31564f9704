"""
JSONL event logger.

Contract:
- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging

Components never reach for a global logger. Each one receives a
ComponentLogger at construction; debug output is scoped by a filter
predicate over component names.
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable

from config import AppConfig


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests, swappable in later phases)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single JSONL event to stdout.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, component, etc.

    This function:
    - Serializes to JSON
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)


# ------------------------------------------------------------------
# Component-scoped logging
# ------------------------------------------------------------------

DebugFilter = Callable[[str], bool]

_LEVELS: dict[str, int] = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
}


def build_debug_filter(spec: str | bool | None) -> DebugFilter:
    """
    Turn a debug configuration value into a component-name predicate.

    - True / "all" / "true" / "1": every component
    - False / None / "" / "false" / "0": no component
    - "stream,pipeline": components whose name contains any substring
    """
    if spec is True:
        return lambda _name: True
    if spec is None or spec is False:
        return lambda _name: False

    text = spec.strip()
    if text.lower() in ("all", "true", "1"):
        return lambda _name: True
    if text.lower() in ("", "false", "0"):
        return lambda _name: False

    allowed = tuple(part.strip() for part in text.split(",") if part.strip())
    return lambda name: any(part in name for part in allowed)


class ComponentLogger:
    """
    Logger capability handed to a single component.

    Every line carries ts_ms, level, component and event_type.
    """

    def __init__(
        self,
        component: str,
        *,
        min_level: str = "INFO",
        debug_filter: DebugFilter | None = None,
    ) -> None:
        self.component = component
        self._min_level = _LEVELS.get(min_level.upper(), _LEVELS["INFO"])
        self._debug_filter = debug_filter or (lambda _name: False)

    @property
    def debug_enabled(self) -> bool:
        return self._debug_filter(self.component)

    def debug(self, event_type: str, **fields: Any) -> None:
        # Debug scoping is decided by the filter, not the level threshold
        if self.debug_enabled:
            self._emit("DEBUG", event_type, fields)

    def info(self, event_type: str, **fields: Any) -> None:
        self._log("INFO", event_type, fields)

    def warning(self, event_type: str, **fields: Any) -> None:
        self._log("WARNING", event_type, fields)

    def error(self, event_type: str, **fields: Any) -> None:
        self._log("ERROR", event_type, fields)

    def _log(self, level: str, event_type: str, fields: dict[str, Any]) -> None:
        if _LEVELS[level] < self._min_level:
            return
        self._emit(level, event_type, fields)

    def _emit(self, level: str, event_type: str, fields: dict[str, Any]) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "level": level,
            "component": self.component,
            "event_type": event_type,
            **fields,
        })


class LoggerFactory:
    """Builds ComponentLoggers that share one level and debug filter."""

    def __init__(self, config: AppConfig | None = None) -> None:
        config = config or AppConfig()
        self._min_level = config.log_level
        self._debug_filter = build_debug_filter(config.debug)

    def for_component(self, component: str) -> ComponentLogger:
        return ComponentLogger(
            component,
            min_level=self._min_level,
            debug_filter=self._debug_filter,
        )


def default_logger(component: str) -> ComponentLogger:
    """Logger with default settings; used where no factory is wired."""
    return ComponentLogger(component)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000
