"""
Interrupt record value object and its markdown wire format.

Wire format (headings and field order fixed):

    ## Interrupt Record
    - DateTime: <iso8601>
    - Source: <source>
    - Type: <type>
    - Context:
      - Last Output: <text>
      - Stream State: <state>
    - Reason: <text>
    - Additional Data:
      - <key>: <value>
      - <key>:
        - <subkey>: <subvalue>

Parsing rules:
- Only the fields above are recognised; anything else is a round-trip loss.
- A line that matches no field continues the previous field's value.
- Field lines count only in wire order; an out-of-order or repeated
  field line (say, inside a multi-line Last Output) is continuation text.
- Additional-data scalars come back as strings; an empty scalar keeps
  the space after its colon.
- A flat-object additional-data value comes back as {} (top key only).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


RECORD_HEADING = "## Interrupt Record"

TYPE_TIME_BASED = "Time-Based"
TYPE_TOKEN_BASED = "Token-Based"
TYPE_RAW_TEXT = "RawText"


class InterruptSource(str, Enum):
    """Well-known interrupt sources. Records accept any string."""

    INTERNAL = "Internal"
    EXTERNAL = "External"
    TOOL = "Tool"
    WEBSOCKET_CLIENT = "WebSocketClient"


class InterruptValidationError(ValueError):
    """Raised when a record lacks a required field."""


@dataclass(frozen=True)
class InterruptContext:
    """Stream context captured when the interrupt was raised."""
    last_output: str = ""
    stream_state: str = "unknown"


@dataclass(frozen=True)
class InterruptRecord:
    """
    Immutable interrupt.

    additional_data is a one-level-deep mapping of string keys to scalars
    or flat mappings. Use with_additional_data() to derive a copy.
    """

    source: str
    interrupt_type: str
    reason: str
    context: InterruptContext = field(default_factory=InterruptContext)
    additional_data: dict[str, Any] = field(default_factory=dict)
    date_time: str = field(default_factory=lambda: utc_now_iso())

    def with_additional_data(self, key: str, value: Any) -> InterruptRecord:
        return replace(self, additional_data={**self.additional_data, key: value})

    def to_dict(self) -> dict[str, Any]:
        return {
            "dateTime": self.date_time,
            "source": self.source,
            "type": self.interrupt_type,
            "context": {
                "lastOutput": self.context.last_output,
                "streamState": self.context.stream_state,
            },
            "reason": self.reason,
            "additionalData": dict(self.additional_data),
        }

    def to_markdown(self) -> str:
        lines = [
            RECORD_HEADING,
            f"- DateTime: {self.date_time}",
            f"- Source: {self.source}",
            f"- Type: {self.interrupt_type}",
            "- Context:",
            f"  - Last Output: {self.context.last_output}",
            f"  - Stream State: {self.context.stream_state}",
            f"- Reason: {self.reason}",
        ]

        if self.additional_data:
            lines.append("- Additional Data:")
            for key, value in self.additional_data.items():
                if isinstance(value, dict):
                    lines.append(f"  - {key}:")
                    for sub_key, sub_value in value.items():
                        lines.append(f"    - {sub_key}: {sub_value}")
                else:
                    lines.append(f"  - {key}: {value}")

        return "\n".join(lines) + "\n"

    @classmethod
    def from_markdown(cls, markdown: str) -> InterruptRecord:
        return _parse_markdown(markdown)

    def __str__(self) -> str:
        return f"[{self.source}/{self.interrupt_type}] {self.reason}"


# ---------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------

def validate_interrupt(record: InterruptRecord) -> None:
    """
    Raises:
        InterruptValidationError if source or type is empty.
    """
    if not record.source or not str(record.source).strip():
        raise InterruptValidationError("Interrupt record is missing a source")
    if not record.interrupt_type or not str(record.interrupt_type).strip():
        raise InterruptValidationError("Interrupt record is missing a type")


# ---------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------

def create_internal_interrupt(interrupt_type: str, reason: str, **kwargs: Any) -> InterruptRecord:
    return InterruptRecord(
        source=InterruptSource.INTERNAL.value,
        interrupt_type=interrupt_type,
        reason=reason,
        **kwargs,
    )


def create_external_interrupt(interrupt_type: str, reason: str, **kwargs: Any) -> InterruptRecord:
    return InterruptRecord(
        source=InterruptSource.EXTERNAL.value,
        interrupt_type=interrupt_type,
        reason=reason,
        **kwargs,
    )


def create_time_interrupt(reason: str, **kwargs: Any) -> InterruptRecord:
    return create_internal_interrupt(TYPE_TIME_BASED, reason, **kwargs)


def create_token_interrupt(reason: str, **kwargs: Any) -> InterruptRecord:
    return create_internal_interrupt(TYPE_TOKEN_BASED, reason, **kwargs)


def coerce_interrupt(payload: InterruptRecord | str) -> InterruptRecord:
    """
    Normalize an interrupt-request payload into a record.

    - a record is returned as-is
    - markdown carrying the record heading is parsed
    - any other string becomes an External RawText record
    """
    if isinstance(payload, InterruptRecord):
        return payload
    if isinstance(payload, str):
        if RECORD_HEADING in payload:
            return InterruptRecord.from_markdown(payload)
        return create_external_interrupt(TYPE_RAW_TEXT, payload.strip())
    raise TypeError(f"Unsupported interrupt payload: {type(payload).__name__}")


# ---------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------

_TOP_FIELDS = {
    "DateTime": "date_time",
    "Source": "source",
    "Type": "interrupt_type",
    "Reason": "reason",
}
_CONTEXT_FIELDS = {
    "Last Output": "last_output",
    "Stream State": "stream_state",
}

_TOP_LINE = re.compile(r"^- (DateTime|Source|Type|Reason): ?(.*)$")
_TOP_GROUP = re.compile(r"^- (Context|Additional Data):\s*$")
_CONTEXT_LINE = re.compile(r"^  - (Last Output|Stream State): ?(.*)$")
_DATA_LINE = re.compile(r"^  - ([^:]+):(?: (.*))?$")
_NESTED_LINE = re.compile(r"^    - [^:]+:")

# Position of each field line in the wire format
_ORDER = {
    "DateTime": 0,
    "Source": 1,
    "Type": 2,
    "Context": 3,
    "Last Output": 4,
    "Stream State": 5,
    "Reason": 6,
    "Additional Data": 7,
}


def _accepts(name: str, last: int) -> bool:
    """
    A field line counts only when it comes after the last field seen.
    Once Last Output has started, only Stream State may end it.
    """
    rank = _ORDER[name]
    if last == _ORDER["Last Output"]:
        return name == "Stream State"
    return rank > last


def _parse_markdown(markdown: str) -> InterruptRecord:
    fields: dict[str, str] = {}
    context: dict[str, str] = {}
    data: dict[str, Any] = {}

    group: str | None = None
    last = -1
    # (target mapping, key) of the field that continuation lines extend
    current: tuple[dict[str, Any], str] | None = None

    for line in markdown.split("\n"):
        if line.strip() == RECORD_HEADING:
            continue

        match = _TOP_LINE.match(line)
        if match and _accepts(match.group(1), last):
            name, value = match.groups()
            group, last = None, _ORDER[name]
            current = (fields, _TOP_FIELDS[name])
            fields[_TOP_FIELDS[name]] = value
            continue

        match = _TOP_GROUP.match(line)
        if match and _accepts(match.group(1), last):
            group = match.group(1)
            last = _ORDER[group]
            current = None
            continue

        if group == "Context":
            match = _CONTEXT_LINE.match(line)
            if match and _accepts(match.group(1), last):
                name, value = match.groups()
                last = _ORDER[name]
                current = (context, _CONTEXT_FIELDS[name])
                context[_CONTEXT_FIELDS[name]] = value
                continue

        if group == "Additional Data":
            if _NESTED_LINE.match(line):
                # Sub-keys are not recovered
                continue
            match = _DATA_LINE.match(line)
            if match:
                key, value = match.groups()
                key = key.strip()
                if value is None:
                    # "- key:" with nothing after the colon heads a flat mapping
                    data[key] = {}
                    current = None
                else:
                    data[key] = value
                    current = (data, key)
                continue

        if current is not None:
            target, key = current
            target[key] = f"{target[key]}\n{line}"

    def _clean(value: str) -> str:
        return value.rstrip("\n").strip()

    for key, value in list(data.items()):
        if isinstance(value, str):
            data[key] = _clean(value)

    kwargs: dict[str, Any] = {}
    if "date_time" in fields:
        kwargs["date_time"] = _clean(fields["date_time"])

    return InterruptRecord(
        source=_clean(fields.get("source", "")),
        interrupt_type=_clean(fields.get("interrupt_type", "")),
        reason=_clean(fields.get("reason", "")),
        context=InterruptContext(
            last_output=_clean(context.get("last_output", "")),
            stream_state=_clean(context.get("stream_state", "")) or "unknown",
        ),
        additional_data=data,
        **kwargs,
    )


def utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
