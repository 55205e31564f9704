# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from pathlib import Path

import pytest

from constants import (
    FALLBACK_PROMPT,
    TOPIC_INTERRUPT,
    TOPIC_NEW_PROMPT,
    TOPIC_TERMINATE,
)
from interrupts.assessment import Strategy
from interrupts.pipeline import ContinuationContext, InterruptPipeline, SubmitOutcome
from interrupts.record import InterruptRecord, create_external_interrupt
from state_store.store import StateStore

from fakes import FakeClock, FakeCompletionClient, Recorder, settle


def _user(reason: str) -> InterruptRecord:
    return create_external_interrupt("UserInput", reason)


# ---------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_processed_interrupt_publishes_stages_in_order() -> None:
    recorder = Recorder()

    async def provider() -> ContinuationContext:
        return ContinuationContext(original_prompt="write a poem", history="h", recent_output="roses")

    pipeline = InterruptPipeline(publish=recorder, context_provider=provider)

    outcome = await pipeline.submit(_user("change topic"))

    assert outcome is SubmitOutcome.PROCESSED
    assert recorder.topics() == [TOPIC_INTERRUPT, TOPIC_TERMINATE, TOPIC_NEW_PROMPT]
    new_prompt = recorder.payloads(TOPIC_NEW_PROMPT)[0]
    assert new_prompt.startswith("Original prompt: write a poem")
    assert "Recent: roses" in new_prompt
    assert "Interrupt caused by: ## Interrupt Record" in new_prompt
    terminated = recorder.payloads(TOPIC_TERMINATE)[0]
    assert "analysis" in terminated.additional_data
    assert "reception" in terminated.additional_data
    assert pipeline.processing is False


@pytest.mark.asyncio
async def test_plain_text_payload_is_accepted() -> None:
    recorder = Recorder()
    pipeline = InterruptPipeline(publish=recorder)

    assert await pipeline.submit("stop please") is SubmitOutcome.PROCESSED
    assert recorder.payloads(TOPIC_INTERRUPT)[0].reason == "stop please"


@pytest.mark.asyncio
async def test_model_output_drives_the_plan() -> None:
    recorder = Recorder()
    client = FakeCompletionClient(responses=[
        "PRIORITY: low\nSHOULD_RESUME: true\nCONTEXT: harmless",
        "STRATEGY: RESUME\nNEW_PROMPT: NONE\nKB_UPDATES: NONE",
    ])
    pipeline = InterruptPipeline(publish=recorder, client=client, analysis_model="m")

    await pipeline.submit(_user("fyi"))

    assert len(client.prompts) == 2
    assert recorder.topics() == [TOPIC_INTERRUPT, "resume"]
    assert pipeline.history[0]["strategy"] == Strategy.RESUME.value


# ---------------------------------------------------------------------
# Resilience
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_failing_completion_still_terminates_with_prompt() -> None:
    recorder = Recorder()
    client = FakeCompletionClient(error=RuntimeError("service down"))
    pipeline = InterruptPipeline(publish=recorder, client=client, analysis_model="m")

    outcome = await pipeline.submit(create_external_interrupt("TokenMonitor", "matched"))

    assert outcome is SubmitOutcome.PROCESSED
    assert len(client.prompts) == 2
    assert TOPIC_TERMINATE in recorder.topics()
    assert recorder.payloads(TOPIC_NEW_PROMPT)
    assert pipeline.processing is False


def _tool_call() -> InterruptRecord:
    return InterruptRecord(source="Tool", interrupt_type="ToolCall", reason="running search")


@pytest.mark.asyncio
async def test_failing_completion_overrides_resume_default_for_tool_call() -> None:
    recorder = Recorder()
    client = FakeCompletionClient(error=RuntimeError("service down"))
    pipeline = InterruptPipeline(publish=recorder, client=client, analysis_model="m")

    await pipeline.submit(_tool_call())

    assert recorder.topics() == [TOPIC_INTERRUPT, TOPIC_TERMINATE, TOPIC_NEW_PROMPT]
    assert pipeline.history[0]["strategy"] == Strategy.TERMINATE.value


@pytest.mark.asyncio
async def test_analysis_failure_alone_forces_terminate() -> None:
    recorder = Recorder()
    client = FakeCompletionClient(responses=[
        RuntimeError("analysis down"),
        "STRATEGY: RESUME\nNEW_PROMPT: NONE\nKB_UPDATES: NONE",
    ])
    pipeline = InterruptPipeline(publish=recorder, client=client, analysis_model="m")

    await pipeline.submit(_tool_call())

    assert len(client.prompts) == 2
    assert TOPIC_TERMINATE in recorder.topics()
    assert "resume" not in recorder.topics()
    new_prompt = recorder.payloads(TOPIC_NEW_PROMPT)[0]
    assert new_prompt.startswith("Original prompt:")
    assert pipeline.processing is False


@pytest.mark.asyncio
async def test_planning_failure_alone_forces_terminate() -> None:
    recorder = Recorder()
    client = FakeCompletionClient(responses=[
        "PRIORITY: low\nNEEDS_NEW_PROMPT: false\nSHOULD_RESUME: true\nCONTEXT: harmless",
        RuntimeError("planning down"),
    ])
    pipeline = InterruptPipeline(publish=recorder, client=client, analysis_model="m")

    await pipeline.submit(_tool_call())

    assert recorder.topics() == [TOPIC_INTERRUPT, TOPIC_TERMINATE, TOPIC_NEW_PROMPT]
    assert recorder.payloads(TOPIC_NEW_PROMPT)[0]
    assert pipeline.history[0]["strategy"] == Strategy.TERMINATE.value
    assert pipeline.history[0]["fallback"] is False


@pytest.mark.asyncio
async def test_stage_failure_runs_fallback() -> None:
    recorder = Recorder()

    async def broken_provider() -> ContinuationContext:
        raise RuntimeError("no context")

    pipeline = InterruptPipeline(publish=recorder, context_provider=broken_provider)

    outcome = await pipeline.submit(_user("stop"))

    assert outcome is SubmitOutcome.PROCESSED
    assert recorder.payloads(TOPIC_NEW_PROMPT) == [FALLBACK_PROMPT]
    assert TOPIC_TERMINATE in recorder.topics()
    assert pipeline.history[0]["fallback"] is True
    assert pipeline.history[0]["strategy"] == "TERMINATE"
    assert pipeline.processing is False


@pytest.mark.asyncio
async def test_invalid_record_runs_fallback() -> None:
    recorder = Recorder()
    pipeline = InterruptPipeline(publish=recorder)

    await pipeline.submit(InterruptRecord(source="", interrupt_type="UserInput", reason="x"))

    assert recorder.payloads(TOPIC_NEW_PROMPT) == [FALLBACK_PROMPT]
    assert pipeline.history_count == 1


# ---------------------------------------------------------------------
# Gating and ordering
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_rate_limited_interrupt_is_rejected() -> None:
    recorder = Recorder()
    clock = FakeClock(0)
    pipeline = InterruptPipeline(publish=recorder, rate_limit_ms=3000, clock=clock)

    assert await pipeline.submit("first") is SubmitOutcome.PROCESSED
    clock.now = 10
    assert await pipeline.submit("second") is SubmitOutcome.REJECTED
    assert await pipeline.submit(_user("user wins")) is SubmitOutcome.PROCESSED

    assert [e["reason"] for e in pipeline.history] == ["user wins", "first"]
    assert pipeline.last_interrupt_time == 10


@pytest.mark.asyncio
async def test_queued_interrupts_run_in_arrival_order() -> None:
    gate = asyncio.Event()
    seen: list[str] = []

    async def publish(topic: str, payload: object) -> None:
        if topic == TOPIC_INTERRUPT:
            assert isinstance(payload, InterruptRecord)
            seen.append(payload.reason)
            if payload.reason == "first":
                await gate.wait()

    pipeline = InterruptPipeline(publish=publish, rate_limit_ms=0)

    first = asyncio.create_task(pipeline.submit("first"))
    await settle()
    assert pipeline.processing is True

    outcomes = [await pipeline.submit(r) for r in ("second", "third", "fourth")]
    assert outcomes == [SubmitOutcome.QUEUED] * 3
    assert pipeline.pending_count == 3

    gate.set()
    assert await first is SubmitOutcome.PROCESSED
    await asyncio.wait_for(pipeline.join(), timeout=1)

    assert seen == ["first", "second", "third", "fourth"]
    assert [e["reason"] for e in pipeline.history] == ["fourth", "third", "second", "first"]
    assert pipeline.pending_count == 0
    assert pipeline.processing is False


@pytest.mark.asyncio
async def test_history_is_capped_newest_first() -> None:
    pipeline = InterruptPipeline(publish=Recorder(), history_cap=5)

    for i in range(7):
        await pipeline.submit(_user(f"r{i}"))

    assert len(pipeline.history) == 5
    assert pipeline.history_count == 7
    assert pipeline.history[0]["reason"] == "r6"
    assert pipeline.history[-1]["reason"] == "r2"


# ---------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_every_nth_entry_is_a_full_checkpoint(tmp_path: Path) -> None:
    store = StateStore("interrupt-pipeline", base_dir=tmp_path)
    pipeline = InterruptPipeline(publish=Recorder(), store=store, full_state_every=3)

    for i in range(3):
        await pipeline.submit(_user(f"r{i}"))

    index = await store.list_state_files()
    assert [e["isFullState"] for e in index] == [True, False, False]

    meta = await store.load_meta()
    assert meta["historyCount"] == 3
    assert meta["lastStrategy"] == "TERMINATE"

    state = await store.load_state()
    assert state.startswith("# Interrupt Pipeline History")
    assert state.count("## Interrupt ") == 3


@pytest.mark.asyncio
async def test_restore_continues_history_numbering(tmp_path: Path) -> None:
    store = StateStore("interrupt-pipeline", base_dir=tmp_path)
    await store.save_meta({"historyCount": 7})
    pipeline = InterruptPipeline(publish=Recorder(), store=store)

    await pipeline.restore()

    assert pipeline.history_count == 7
