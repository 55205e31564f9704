from __future__ import annotations

from interrupts.assessment import Analysis
from interrupts.record import InterruptRecord


ANALYSIS_PROMPT_V1: str = """
You are the interrupt analyst for a continuously generating language model.
An interrupt has been raised against the live output stream.

Interrupt:
{interrupt}

Recent output:
{recent_output}

Assess the interrupt. Answer with exactly these fields, one per line:

PRIORITY: high | medium | low
RELEVANCE: high | medium | low
NEEDS_NEW_PROMPT: true | false
NEEDS_KB_UPDATE: true | false
SHOULD_RESUME: true | false
CONTEXT: one or two sentences describing what the interrupt means for the stream
"""


PLANNING_PROMPT_V1: str = """
You are the interrupt planner for a continuously generating language model.

Interrupt:
{interrupt}

Analysis:
- Priority: {priority}
- Relevance: {relevance}
- Needs new prompt: {needs_new_prompt}
- Needs knowledge base update: {needs_kb_update}
- Should resume: {should_resume}
- Context: {context}

Draft continuation prompt:
{continuation_prompt}

Decide how the stream continues. Answer with exactly these fields:

STRATEGY: RESUME | TERMINATE
NEW_PROMPT: the prompt to restart generation with, or NONE
KB_UPDATES: markdown notes to add to the knowledge base, or NONE
"""


def build_analysis_prompt(interrupt: InterruptRecord, recent_output: str) -> str:
    return ANALYSIS_PROMPT_V1.format(
        interrupt=interrupt.to_markdown(),
        recent_output=recent_output or "(none)",
    ).strip()


def build_planning_prompt(
    interrupt: InterruptRecord,
    analysis: Analysis,
    continuation_prompt: str | None,
) -> str:
    return PLANNING_PROMPT_V1.format(
        interrupt=interrupt.to_markdown(),
        priority=analysis.priority,
        relevance=analysis.relevance,
        needs_new_prompt=str(analysis.needs_new_prompt).lower(),
        needs_kb_update=str(analysis.needs_kb_update).lower(),
        should_resume=str(analysis.should_resume).lower(),
        context=analysis.context,
        continuation_prompt=continuation_prompt or "(none)",
    ).strip()


def build_continuation_prompt(
    original_prompt: str,
    history: str,
    recent_output: str,
    interrupt: InterruptRecord | str,
) -> str:
    """Restart prompt: original goal, compressed history, recent tail, cause."""
    return "\n\n".join([
        f"Original prompt: {original_prompt}",
        f"History: {history}",
        f"Recent: {recent_output}",
        f"Interrupt caused by: {interrupt}",
    ])
