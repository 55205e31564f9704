"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object
- Parse human time expressions ("120s", "1.5h", "500ms")

Non-responsibilities:
- No orchestration logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from constants import (
    DEFAULT_MODEL,
    FULL_STATE_INTERVAL_DEFAULT,
    OPENROUTER_BASE_URL,
    PRIVILEGED_INTERRUPT_TYPES,
    RATE_LIMIT_MS_DEFAULT,
    RECENT_OUTPUT_MAX_CHARS,
    STATE_BASE_DIR_NAME,
    TIMEOUT_DEFAULT_S,
)


_TIME_EXPR = re.compile(r"^(\d*\.?\d+)\s*(ms|s|m|h)$", re.IGNORECASE)

_UNIT_TO_MS: dict[str, float] = {
    "ms": 1.0,
    "s": 1_000.0,
    "m": 60_000.0,
    "h": 3_600_000.0,
}


def parse_time(expr: str | float | int, default_unit: str = "ms") -> float:
    """
    Parse a time expression into milliseconds.

    Accepts:
    - numbers (default_unit applied)
    - numeric strings (default_unit applied)
    - "<number><unit>" with unit in ms|s|m|h

    Raises:
        ValueError on anything else.
    """
    if isinstance(expr, bool):
        raise ValueError("Time expression must be a string or number")

    if isinstance(expr, (int, float)):
        return _to_ms(float(expr), default_unit)

    if not isinstance(expr, str):
        raise ValueError("Time expression must be a string or number")

    text = expr.strip()
    try:
        return _to_ms(float(text), default_unit)
    except ValueError:
        pass

    match = _TIME_EXPR.match(text)
    if not match:
        raise ValueError(
            f"Invalid time expression: {expr}. "
            "Expected format: number + unit (ms|s|m|h)"
        )
    value, unit = match.groups()
    return _to_ms(float(value), unit.lower())


def format_time(ms: float) -> str:
    """Render milliseconds with the largest fitting unit."""
    if ms < 1_000:
        return f"{ms:g}ms"
    if ms < 60_000:
        return f"{ms / 1_000:g}s"
    if ms < 3_600_000:
        return f"{ms / 60_000:g}m"
    return f"{ms / 3_600_000:g}h"


def _to_ms(value: float, unit: str) -> float:
    factor = _UNIT_TO_MS.get(unit)
    if factor is None:
        raise ValueError(f"Unknown time unit: {unit}")
    return value * factor


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the session composition root.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"

    # "all", "" or a comma-separated list of component-name substrings
    debug: str = ""

    # ------------------------------------------------------------------
    # LLM configuration
    # ------------------------------------------------------------------

    llm_base_url: str = OPENROUTER_BASE_URL
    llm_api_key: str | None = None
    llm_model: str = DEFAULT_MODEL

    # None -> pipeline stages use deterministic heuristics
    analysis_model: str | None = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    state_dir: Path = Path(STATE_BASE_DIR_NAME)
    full_state_interval: int = FULL_STATE_INTERVAL_DEFAULT

    # ------------------------------------------------------------------
    # Interrupt handling
    # ------------------------------------------------------------------

    rate_limit_ms: int = RATE_LIMIT_MS_DEFAULT
    privileged_interrupt_types: tuple[str, ...] = PRIVILEGED_INTERRUPT_TYPES
    resumable: bool = True

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    initial_prompt: str = ""
    recent_output_chars: int = RECENT_OUTPUT_MAX_CHARS

    # ------------------------------------------------------------------
    # Interrupt generators
    # ------------------------------------------------------------------

    timeout_ms: float | None = TIMEOUT_DEFAULT_S * 1_000
    timeout_sigma_ms: float = 0.0
    enable_token_monitor: bool = True

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a time expression or integer is malformed.
        """
        privileged = os.environ.get("PRIVILEGED_INTERRUPT_TYPES")
        timeout = os.environ.get("TIMEOUT", f"{TIMEOUT_DEFAULT_S:g}s")

        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            debug=os.environ.get("DEBUG", ""),

            llm_base_url=os.environ.get("LLM_BASE_URL", OPENROUTER_BASE_URL),
            llm_api_key=(
                os.environ.get("OPENROUTER_API_KEY")
                or os.environ.get("OPENAI_API_KEY")
            ),
            llm_model=os.environ.get("LLM_MODEL", DEFAULT_MODEL),
            analysis_model=os.environ.get("ANALYSIS_MODEL") or None,

            state_dir=Path(
                os.environ.get("STATE_DIR", str(Path.cwd() / STATE_BASE_DIR_NAME))
            ),
            full_state_interval=int(
                os.environ.get("FULL_STATE_INTERVAL", FULL_STATE_INTERVAL_DEFAULT)
            ),

            rate_limit_ms=int(
                parse_time(os.environ.get("RATE_LIMIT", RATE_LIMIT_MS_DEFAULT))
            ),
            privileged_interrupt_types=(
                tuple(t.strip() for t in privileged.split(",") if t.strip())
                if privileged is not None
                else PRIVILEGED_INTERRUPT_TYPES
            ),
            resumable=os.environ.get("RESUMABLE", "1") == "1",

            initial_prompt=os.environ.get("INITIAL_PROMPT", ""),
            recent_output_chars=int(
                os.environ.get("RECENT_OUTPUT_CHARS", RECENT_OUTPUT_MAX_CHARS)
            ),

            timeout_ms=parse_time(timeout, default_unit="s") if timeout else None,
            timeout_sigma_ms=parse_time(
                os.environ.get("TIMEOUT_SIGMA", "0"), default_unit="s"
            ),
            enable_token_monitor=os.environ.get("ENABLE_TOKEN_MONITOR", "1") == "1",
        )
