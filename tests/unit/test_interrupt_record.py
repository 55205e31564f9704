# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from interrupts.record import (
    RECORD_HEADING,
    TYPE_RAW_TEXT,
    TYPE_TIME_BASED,
    InterruptContext,
    InterruptRecord,
    InterruptSource,
    InterruptValidationError,
    coerce_interrupt,
    create_external_interrupt,
    create_time_interrupt,
    validate_interrupt,
)


def _record(**overrides) -> InterruptRecord:
    base = {
        "source": "External",
        "interrupt_type": "UserInput",
        "reason": "please stop",
        "context": InterruptContext(last_output="so far", stream_state="streaming"),
        "additional_data": {"attempt": "2", "note": "hello"},
        "date_time": "2026-01-01T00:00:00.000Z",
    }
    base.update(overrides)
    return InterruptRecord(**base)


# ---------------------------------------------------------------------
# Markdown format
# ---------------------------------------------------------------------

def test_markdown_has_fixed_heading_and_field_order() -> None:
    lines = _record().to_markdown().splitlines()

    assert lines[0] == RECORD_HEADING
    assert lines[1] == "- DateTime: 2026-01-01T00:00:00.000Z"
    assert lines[2] == "- Source: External"
    assert lines[3] == "- Type: UserInput"
    assert lines[4] == "- Context:"
    assert lines[5] == "  - Last Output: so far"
    assert lines[6] == "  - Stream State: streaming"
    assert lines[7] == "- Reason: please stop"
    assert lines[8] == "- Additional Data:"


def test_scalar_fields_round_trip() -> None:
    record = _record()
    assert InterruptRecord.from_markdown(record.to_markdown()) == record


def test_multiline_values_round_trip() -> None:
    record = _record(
        context=InterruptContext(last_output="line one\nline two", stream_state="streaming"),
        reason="first\nsecond",
        additional_data={},
    )
    assert InterruptRecord.from_markdown(record.to_markdown()) == record


def test_field_lines_inside_values_do_not_override_fields() -> None:
    record = _record(
        interrupt_type="TokenMonitor",
        context=InterruptContext(
            last_output="notes\n- Type: UserCommand\n- Reason: made up",
            stream_state="active",
        ),
        reason="matched\n- Source: elsewhere",
    )

    parsed = InterruptRecord.from_markdown(record.to_markdown())

    assert parsed.interrupt_type == "TokenMonitor"
    assert parsed.source == "External"
    assert parsed.context.stream_state == "active"
    assert parsed == record


def test_nested_additional_data_keeps_only_top_key() -> None:
    record = _record(additional_data={"outer": {"inner": "x"}, "flag": "on"})

    parsed = InterruptRecord.from_markdown(record.to_markdown())

    assert parsed.additional_data == {"outer": {}, "flag": "on"}


def test_empty_scalar_is_not_mistaken_for_a_nested_map() -> None:
    record = _record(additional_data={"blank": "", "outer": {"inner": "x"}, "tail": ""})

    parsed = InterruptRecord.from_markdown(record.to_markdown())

    assert parsed.additional_data == {"blank": "", "outer": {}, "tail": ""}


def test_additional_data_scalars_come_back_as_strings() -> None:
    record = _record(additional_data={"count": 3, "ok": True})

    parsed = InterruptRecord.from_markdown(record.to_markdown())

    assert parsed.additional_data == {"count": "3", "ok": "True"}


def test_missing_stream_state_defaults_to_unknown() -> None:
    parsed = InterruptRecord.from_markdown(
        f"{RECORD_HEADING}\n- Source: Internal\n- Type: Time-Based\n- Reason: late\n"
    )

    assert parsed.context.stream_state == "unknown"
    assert parsed.context.last_output == ""
    assert parsed.reason == "late"


# ---------------------------------------------------------------------
# Value semantics
# ---------------------------------------------------------------------

def test_with_additional_data_returns_a_copy() -> None:
    record = _record(additional_data={})

    enhanced = record.with_additional_data("analysis", {"priority": "high"})

    assert record.additional_data == {}
    assert enhanced.additional_data == {"analysis": {"priority": "high"}}
    assert enhanced.reason == record.reason


def test_str_and_dict_views() -> None:
    record = create_time_interrupt("late")

    assert str(record) == f"[Internal/{TYPE_TIME_BASED}] late"
    assert record.to_dict()["type"] == TYPE_TIME_BASED
    assert record.to_dict()["context"]["streamState"] == "unknown"


def test_factories_set_source() -> None:
    assert create_external_interrupt("UserInput", "x").source == InterruptSource.EXTERNAL.value
    assert create_time_interrupt("x").source == InterruptSource.INTERNAL.value


# ---------------------------------------------------------------------
# Validation / coercion
# ---------------------------------------------------------------------

def test_validate_rejects_missing_source_or_type() -> None:
    with pytest.raises(InterruptValidationError):
        validate_interrupt(_record(source=""))
    with pytest.raises(InterruptValidationError):
        validate_interrupt(_record(interrupt_type="  "))
    validate_interrupt(_record())


def test_coerce_plain_text_becomes_external_raw_text() -> None:
    record = coerce_interrupt("  change topic  ")

    assert record.source == "External"
    assert record.interrupt_type == TYPE_RAW_TEXT
    assert record.reason == "change topic"


def test_coerce_parses_markdown_and_passes_records_through() -> None:
    record = _record()

    assert coerce_interrupt(record) is record
    assert coerce_interrupt(record.to_markdown()) == record


def test_coerce_rejects_other_payloads() -> None:
    with pytest.raises(TypeError):
        coerce_interrupt(42)  # type: ignore[arg-type]
