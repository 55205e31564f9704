# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from config import AppConfig
from observability import logger


def test_log_event_emits_valid_jsonl(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    Phase 4 contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is
    - output sink is patchable
    """
    captured: list[str] = []

    def fake_print(line: str) -> None:
        captured.append(line)

    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", fake_print)

    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    # Must be valid JSON
    decoded = json.loads(captured[0])

    # Payload must be preserved exactly
    assert decoded == payload


# ---------------------------------------------------------------------
# Component-scoped logging
# ---------------------------------------------------------------------

def _capture(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    return captured


def _decode(captured: list[str]) -> list[dict[str, Any]]:
    return [json.loads(line) for line in captured]


def test_component_logger_tags_every_line(monkeypatch: pytest.MonkeyPatch) -> None:
    events = _capture(monkeypatch)

    logger.ComponentLogger("stream").warning("resume_ignored", state="IDLE")

    (event,) = _decode(events)
    assert event["component"] == "stream"
    assert event["level"] == "WARNING"
    assert event["event_type"] == "resume_ignored"
    assert event["state"] == "IDLE"
    assert isinstance(event["ts_ms"], int)


def test_level_threshold_drops_lower_levels(monkeypatch: pytest.MonkeyPatch) -> None:
    events = _capture(monkeypatch)
    log = logger.ComponentLogger("pipeline", min_level="WARNING")

    log.info("skipped")
    log.error("kept")

    assert [e["event_type"] for e in _decode(events)] == ["kept"]


def test_debug_output_is_scoped_by_filter(monkeypatch: pytest.MonkeyPatch) -> None:
    events = _capture(monkeypatch)
    debug_filter = logger.build_debug_filter("stream,token")

    logger.ComponentLogger("stream", debug_filter=debug_filter).debug("a")
    logger.ComponentLogger("token-monitor", debug_filter=debug_filter).debug("b")
    logger.ComponentLogger("mind", debug_filter=debug_filter).debug("c")

    assert [e["event_type"] for e in _decode(events)] == ["a", "b"]


@pytest.mark.parametrize(
    ("spec", "expected"),
    [
        ("all", True),
        ("1", True),
        (True, True),
        ("", False),
        ("false", False),
        (None, False),
    ],
)
def test_build_debug_filter_switches(spec: Any, expected: bool) -> None:
    assert logger.build_debug_filter(spec)("anything") is expected


def test_factory_shares_level_and_filter(monkeypatch: pytest.MonkeyPatch) -> None:
    events = _capture(monkeypatch)
    factory = logger.LoggerFactory(AppConfig(log_level="ERROR", debug="mind"))

    factory.for_component("mind").debug("visible")
    factory.for_component("stream").debug("hidden")
    factory.for_component("mind").warning("below_threshold")

    assert [e["event_type"] for e in _decode(events)] == ["visible"]


def test_unserializable_payload_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    events = _capture(monkeypatch)

    logger.log_event({"ts_ms": 1, "value": object()})

    (event,) = _decode(events)
    assert event["event_type"] == "LOGGER_SERIALIZATION_ERROR"
