from __future__ import annotations

from typing import Sequence


def recent_chunks(chunks: Sequence[str], max_chars: int) -> list[str]:
    """
    Minimal suffix of chunks whose combined length covers max_chars.

    Walks backward accumulating lengths; the chunk that crosses the budget
    is included whole. Fewer characters than the budget -> every chunk.
    """
    if max_chars <= 0:
        return []

    total = 0
    start = len(chunks)
    while start > 0 and total < max_chars:
        start -= 1
        total += len(chunks[start])

    return list(chunks[start:])
