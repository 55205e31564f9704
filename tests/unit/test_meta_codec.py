# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

from state_store.meta_codec import format_meta, parse_meta


def test_meta_scalars_sections_and_index_survive_a_round_trip() -> None:
    meta: dict[str, Any] = {
        "currentStateFile": "state_1_full_abc.md",
        "isCurrentStateFull": True,
        "partialStateCount": 3,
        "ratio": 1.5,
        "lastInterruptTime": None,
        "rules": [{"type": "keyword", "keywords": ["stop"]}],
        "configuration": {"initialized": True, "owner": "tests"},
        "stateFiles": [
            {
                "filename": "state_1_full_abc.md",
                "timestamp": "2026-01-01T00:00:00.000Z",
                "isFullState": True,
            },
        ],
    }

    assert parse_meta(format_meta(meta)) == meta


def test_scalars_are_written_before_sections() -> None:
    text = format_meta({"configuration": {"a": 1}, "generatorType": "time-based"})

    assert text.index("**generatorType**") < text.index("## configuration")
    assert parse_meta(text)["generatorType"] == "time-based"
    assert parse_meta(text)["configuration"] == {"a": 1}


def test_multiline_scalar_is_flattened() -> None:
    parsed = parse_meta(format_meta({"note": "one\ntwo"}))
    assert parsed["note"] == "one two"


def test_empty_document_parses_to_empty_mapping() -> None:
    assert not parse_meta("")
