"""
CONSTANTS
---------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Mapping, Tuple

# =============================================================================
# State storage layout
# =============================================================================

STATE_BASE_DIR_NAME: Final[str] = "interrupt-state"
STATE_META_FILENAME: Final[str] = "state.meta.md"

# Only the newest N chain entries stay discoverable through metadata.
# Older files remain on disk.
STATE_FILES_INDEX_CAP: Final[int] = 20

FULL_STATE_INTERVAL_DEFAULT: Final[int] = 10

CORE_GENERATORS: Final[Tuple[str, ...]] = (
    "token-monitor",
    "time-based",
)

# =============================================================================
# Interrupt pipeline
# =============================================================================

RATE_LIMIT_MS_DEFAULT: Final[int] = 3_000

# Types that always bypass the rate limiter
PRIVILEGED_INTERRUPT_TYPES: Final[Tuple[str, ...]] = (
    "UserInput",
    "UserCommand",
    "Urgent",
    "ToolResult",
)

PROCESSING_HISTORY_CAP: Final[int] = 50

# Every Nth history entry is persisted as a full checkpoint
PIPELINE_FULL_STATE_EVERY: Final[int] = 10

PIPELINE_GENERATOR_NAME: Final[str] = "interrupt-pipeline"
GENERATION_GENERATOR_NAME: Final[str] = "generation"
KNOWLEDGE_BASE_GENERATOR_NAME: Final[str] = "knowledge-base"

FALLBACK_PROMPT: Final[str] = (
    "Your previous line of thought was interrupted. "
    "Briefly restate where you were and continue reasoning from there."
)

# =============================================================================
# Generation
# =============================================================================

RECENT_OUTPUT_MAX_CHARS: Final[int] = 1_000

STREAM_UNAVAILABLE_MARKER: Final[str] = "[stream unavailable]"

# =============================================================================
# Model access
# =============================================================================

DEFAULT_MODEL: Final[str] = "deepseek-chat"
COMPLETION_MAX_TOKENS: Final[int] = 400
OPENROUTER_BASE_URL: Final[str] = "https://openrouter.ai/api/v1"

MODEL_ALIASES: Final[Mapping[str, str]] = {
    "gpt4": "openai/gpt-4",
    "gpt3": "openai/gpt-3.5-turbo",
    "claude": "anthropic/claude-3-sonnet",
    "deepseek": "deepseek-ai/deepseek-chat",
    "mixtral": "mistralai/mixtral-8x7b",
    "deepseek-chat": "deepseek-ai/deepseek-chat",
}

# =============================================================================
# Interrupt generators
# =============================================================================

TIMEOUT_DEFAULT_S: Final[float] = 120.0

TOKEN_MONITOR_MAX_BUFFER: Final[int] = 500
TOKEN_MONITOR_SAVE_COOLDOWN_MS: Final[int] = 3_000
TOKEN_MONITOR_WINDOW_SIZE: Final[int] = 100
TOKEN_MONITOR_DEFAULT_CRITERIA: Final[str] = (
    "Detect content that needs intervention, changes topic abruptly, "
    "or contains problematic material."
)

TOOL_CALL_WINDOW_CHARS: Final[int] = 1_000
TOOLS_PROMPT_PREFIX: Final[str] = "You have access to the following tools:"

# =============================================================================
# Recent history compression
# =============================================================================

HISTORY_BLOCK_COUNT: Final[int] = 10
HISTORY_MAX_LENGTH: Final[int] = 1_000
HISTORY_RATIO: Final[int] = 10
COMPRESSION_MAX_ITERATIONS: Final[int] = 3

# =============================================================================
# Topics
# =============================================================================

TOPIC_PROMPT: Final[str] = "prompt"
TOPIC_CHUNK: Final[str] = "chunk"
TOPIC_STATE: Final[str] = "state"
TOPIC_INTERRUPT_REQUEST: Final[str] = "interrupt-request"
TOPIC_INTERRUPT: Final[str] = "interrupt"
TOPIC_RESUME: Final[str] = "resume"
TOPIC_TERMINATE: Final[str] = "terminate"
TOPIC_NEW_PROMPT: Final[str] = "new-prompt"
TOPIC_UPDATE_KB: Final[str] = "update-kb"
TOPIC_TOOLS_PROMPT: Final[str] = "tools-prompt"
TOPIC_HISTORY: Final[str] = "history"
