"""
Markdown section parsing and merging for chained state entries.

A section starts at a heading line ("#", "##", ...) and runs until the
next heading. Text before the first heading belongs to no section and is
dropped by parse_sections().

Merge rule (first write wins):
- Sections already present in the base are never overwritten.
- Only sections whose header line is new are appended.
"""

from __future__ import annotations

import re


_HEADING = re.compile(r"^#+\s+.+$")


def is_heading(line: str) -> bool:
    """True if the line opens a markdown section."""
    return bool(_HEADING.match(line))


def parse_sections(content: str) -> dict[str, str]:
    """
    Split content into {header line: body} in document order.

    The body keeps its inner newlines; a repeated header keeps the
    last body seen for it.
    """
    sections: dict[str, str] = {}
    header: str | None = None
    body: list[str] = []

    for line in content.split("\n"):
        if is_heading(line):
            if header is not None:
                sections[header] = "\n".join(body)
            header = line
            body = []
        elif header is not None:
            body.append(line)

    if header is not None:
        sections[header] = "\n".join(body)

    return sections


def render_sections(sections: dict[str, str]) -> str:
    return "\n\n".join(f"{header}\n{body}" for header, body in sections.items())


def merge_sections(base: str, newer: str) -> str:
    """
    Layer a newer partial entry onto an older reconstructed state.

    The base has priority: a header already in base keeps base's body.
    """
    merged = parse_sections(base)
    for header, body in parse_sections(newer).items():
        if header not in merged:
            merged[header] = body
    return render_sections(merged)
