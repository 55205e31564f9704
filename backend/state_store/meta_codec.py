"""
Generator metadata <-> markdown codec.

Document layout:

    # Generator Metadata

    - **currentStateFile**: state_..._full_....md
    - **partialStateCount**: 3
    - **rules**: [{"type": "keyword", "keywords": ["stop"]}]

    ## configuration

    - **initialized**: true

    ## stateFiles

    - **state_..._full_....md**
      - timestamp: 2026-01-01T00:00:00.000Z
      - isFullState: true

Rules:
- Scalars are written before any section so a scalar line is never
  mistaken for a member of the preceding section.
- Mappings become "## key" sections (one level deep).
- Lists (other than stateFiles) are written as JSON on a scalar line.
"""

from __future__ import annotations

import json
import re
from typing import Any

STATE_FILES_KEY = "stateFiles"

_SECTION = re.compile(r"^## (.+)$")
_FILE_ENTRY = re.compile(r"^- \*\*(.+)\*\*$")
_FILE_ATTRIBUTE = re.compile(r"^\s+- (.+?): (.+)$")
_KEY_VALUE = re.compile(r"^- \*\*(.+?)\*\*: (.*)$")
_INT = re.compile(r"^-?\d+$")
_FLOAT = re.compile(r"^-?\d+\.\d+$")


def format_meta(meta: dict[str, Any]) -> str:
    """Render a metadata mapping as markdown."""
    lines = ["# Generator Metadata", ""]

    sections: list[tuple[str, Any]] = []
    for key, value in meta.items():
        if key == STATE_FILES_KEY or isinstance(value, dict):
            sections.append((key, value))
        else:
            lines.append(f"- **{key}**: {_format_scalar(value)}")

    for key, value in sections:
        lines.append("")
        lines.append(f"## {key}")
        lines.append("")
        if key == STATE_FILES_KEY:
            for entry in value or []:
                lines.append(f"- **{entry['filename']}**")
                for attr, attr_value in entry.items():
                    if attr == "filename":
                        continue
                    lines.append(f"  - {attr}: {_format_scalar(attr_value)}")
        else:
            for sub_key, sub_value in value.items():
                lines.append(f"- **{sub_key}**: {_format_scalar(sub_value)}")

    return "\n".join(lines) + "\n"


def parse_meta(content: str) -> dict[str, Any]:
    """Parse the markdown produced by format_meta() back into a mapping."""
    meta: dict[str, Any] = {}
    section: str | None = None
    current_file: dict[str, Any] | None = None

    for line in content.split("\n"):
        section_match = _SECTION.match(line)
        if section_match:
            section = section_match.group(1).strip()
            meta[section] = [] if section == STATE_FILES_KEY else {}
            current_file = None
            continue

        if section == STATE_FILES_KEY:
            file_match = _FILE_ENTRY.match(line)
            if file_match:
                current_file = {"filename": file_match.group(1).strip()}
                meta[section].append(current_file)
                continue

            attr_match = _FILE_ATTRIBUTE.match(line)
            if attr_match and current_file is not None:
                current_file[attr_match.group(1).strip()] = _parse_scalar(
                    attr_match.group(2)
                )
            continue

        kv_match = _KEY_VALUE.match(line)
        if kv_match:
            key = kv_match.group(1).strip()
            value = _parse_scalar(kv_match.group(2))
            if section is not None:
                meta[section][key] = value
            else:
                meta[key] = value

    return meta


def _format_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, ensure_ascii=False)
    # Values are line-oriented
    return str(value).replace("\n", " ")


def _parse_scalar(raw: str) -> Any:
    text = raw.strip()
    if text == "true":
        return True
    if text == "false":
        return False
    if text == "null":
        return None
    if _INT.match(text):
        return int(text)
    if _FLOAT.match(text):
        return float(text)
    if text.startswith(("[", "{")):
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text
