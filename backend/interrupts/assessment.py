"""
Analysis and planning outputs of the interrupt pipeline.

Each stage has a deterministic default derived from the interrupt type
and a tolerant parser for the line-oriented completion output:

    PRIORITY: high
    CONTEXT: the user asked to change topic,
    continuing on the next line until the next field
    STRATEGY: TERMINATE

Parsing is field by field: a missing or unreadable field keeps the
default value for that field only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from interrupts.record import InterruptRecord


class Strategy(str, Enum):
    RESUME = "RESUME"
    TERMINATE = "TERMINATE"


_LEVELS = ("high", "medium", "low")
_TRUE = ("true", "yes", "y", "1")
_FALSE = ("false", "no", "n", "0")
_EMPTY = ("", "none", "null", "n/a", "-")

ANALYSIS_FIELDS = (
    "PRIORITY",
    "RELEVANCE",
    "NEEDS_NEW_PROMPT",
    "NEEDS_KB_UPDATE",
    "SHOULD_RESUME",
    "CONTEXT",
)
PLAN_FIELDS = ("STRATEGY", "NEW_PROMPT", "KB_UPDATES")


@dataclass(frozen=True)
class Analysis:
    priority: str
    relevance: str
    needs_new_prompt: bool
    needs_kb_update: bool
    should_resume: bool
    context: str

    def to_dict(self) -> dict[str, str]:
        # Flat mapping so it can ride in additional_data
        return {
            "priority": self.priority,
            "relevance": self.relevance,
            "needsNewPrompt": str(self.needs_new_prompt).lower(),
            "needsKnowledgeBaseUpdate": str(self.needs_kb_update).lower(),
            "shouldResume": str(self.should_resume).lower(),
            "context": self.context,
        }


@dataclass(frozen=True)
class Plan:
    strategy: Strategy
    enhanced_interrupt: InterruptRecord
    new_prompt: str | None = None
    kb_updates: str | None = None


# ---------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------

def default_analysis(
    interrupt: InterruptRecord,
    privileged_types: Iterable[str] = (),
) -> Analysis:
    """Heuristic assessment used when no model is configured or it fails."""
    kind = interrupt.interrupt_type

    if kind in privileged_types and kind != "ToolResult":
        return Analysis(
            priority="high",
            relevance="high",
            needs_new_prompt=True,
            needs_kb_update=False,
            should_resume=False,
            context=f"User-directed interrupt: {interrupt.reason}",
        )
    if kind == "ToolCall":
        # The tool runs in the background; its result arrives as ToolResult
        return Analysis(
            priority="medium",
            relevance="high",
            needs_new_prompt=False,
            needs_kb_update=False,
            should_resume=True,
            context=f"Tool call in progress: {interrupt.reason}",
        )
    if kind == "ToolResult":
        return Analysis(
            priority="high",
            relevance="high",
            needs_new_prompt=True,
            needs_kb_update=True,
            should_resume=False,
            context=f"Tool finished: {interrupt.reason}",
        )
    if kind == "Time-Based":
        return Analysis(
            priority="medium",
            relevance="medium",
            needs_new_prompt=True,
            needs_kb_update=False,
            should_resume=False,
            context=f"Time limit reached: {interrupt.reason}",
        )
    return Analysis(
        priority="medium",
        relevance="medium",
        needs_new_prompt=True,
        needs_kb_update=False,
        should_resume=False,
        context=interrupt.reason,
    )


def default_plan(
    interrupt: InterruptRecord,
    analysis: Analysis,
    continuation_prompt: str | None,
) -> Plan:
    enhanced = interrupt.with_additional_data("analysis", analysis.to_dict())

    kb_updates = None
    if analysis.needs_kb_update:
        kb_updates = _kb_entry(interrupt)

    return Plan(
        strategy=Strategy.RESUME if analysis.should_resume else Strategy.TERMINATE,
        enhanced_interrupt=enhanced,
        new_prompt=continuation_prompt if analysis.needs_new_prompt else None,
        kb_updates=kb_updates,
    )


def _kb_entry(interrupt: InterruptRecord) -> str:
    lines = [f"- {interrupt.date_time} [{interrupt.source}/{interrupt.interrupt_type}] {interrupt.reason}"]
    for key in ("toolName", "result", "error"):
        value = interrupt.additional_data.get(key)
        if value not in (None, ""):
            lines.append(f"  - {key}: {value}")
    return "\n".join(lines)


# ---------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------

def parse_fields(text: str, names: Iterable[str]) -> dict[str, str]:
    """
    Extract NAME: value pairs; unrecognised lines extend the previous value.

    Field names are matched case-insensitively, optionally wrapped in
    markdown emphasis.
    """
    names = tuple(names)
    pattern = re.compile(
        r"^\s*[*_]*(" + "|".join(re.escape(n) for n in names) + r")[*_]*\s*:\s*(.*)$",
        re.IGNORECASE,
    )

    found: dict[str, list[str]] = {}
    current: str | None = None
    for line in text.split("\n"):
        match = pattern.match(line)
        if match:
            current = match.group(1).upper()
            found[current] = [match.group(2)]
        elif current is not None:
            found[current].append(line)

    return {name: "\n".join(parts).strip() for name, parts in found.items()}


def parse_analysis(text: str, default: Analysis) -> Analysis:
    fields = parse_fields(text, ANALYSIS_FIELDS)

    context = fields.get("CONTEXT")
    return Analysis(
        priority=_level(fields.get("PRIORITY"), default.priority),
        relevance=_level(fields.get("RELEVANCE"), default.relevance),
        needs_new_prompt=_flag(fields.get("NEEDS_NEW_PROMPT"), default.needs_new_prompt),
        needs_kb_update=_flag(fields.get("NEEDS_KB_UPDATE"), default.needs_kb_update),
        should_resume=_flag(fields.get("SHOULD_RESUME"), default.should_resume),
        context=context if context else default.context,
    )


def parse_plan(text: str, default: Plan) -> Plan:
    fields = parse_fields(text, PLAN_FIELDS)

    strategy = default.strategy
    if "STRATEGY" in fields:
        token = fields["STRATEGY"].split()[0].strip("*_.`").upper() if fields["STRATEGY"] else ""
        # Anything but an explicit RESUME stops the stream
        strategy = Strategy.RESUME if token == Strategy.RESUME.value else Strategy.TERMINATE

    return Plan(
        strategy=strategy,
        enhanced_interrupt=default.enhanced_interrupt,
        new_prompt=_optional_text(fields, "NEW_PROMPT", default.new_prompt),
        kb_updates=_optional_text(fields, "KB_UPDATES", default.kb_updates),
    )


def _level(raw: str | None, default: str) -> str:
    if raw is None:
        return default
    token = raw.split()[0].strip("*_.`").lower() if raw.strip() else ""
    return token if token in _LEVELS else default


def _flag(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    token = raw.split()[0].strip("*_.`").lower() if raw.strip() else ""
    if token in _TRUE:
        return True
    if token in _FALSE:
        return False
    return default


def _optional_text(fields: dict[str, str], name: str, default: str | None) -> str | None:
    if name not in fields:
        return default
    value = fields[name]
    if value.lower() in _EMPTY:
        return None
    return value
