"""
Generation lifecycle states.

Rules:
- This enum defines ONLY the stream lifecycle states.
- No behavior, no helper methods, no side effects.
- Transitions are owned exclusively by GenerationController.
"""

from __future__ import annotations

from enum import Enum


class GenerationState(str, Enum):
    """
    Lifecycle of the single live model stream.

    INTERRUPTED means suspended: the stream handle may still be open.
    """

    IDLE = "IDLE"
    STARTING = "STARTING"
    STREAMING = "STREAMING"
    INTERRUPTED = "INTERRUPTED"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"
