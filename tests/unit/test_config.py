# pylint: disable=missing-module-docstring,missing-function-docstring

from pathlib import Path

import pytest

from config import AppConfig, format_time, parse_time
from constants import PRIVILEGED_INTERRUPT_TYPES


@pytest.mark.parametrize(
    ("expr", "expected"),
    [
        ("500ms", 500),
        ("120s", 120_000),
        ("10m", 600_000),
        ("1.5h", 5_400_000),
        ("250", 250),
        (42, 42),
        (" 2S ", 2_000),
    ],
)
def test_parse_time(expr: str | int, expected: float) -> None:
    assert parse_time(expr) == expected


def test_parse_time_default_unit() -> None:
    assert parse_time("2", default_unit="s") == 2_000
    assert parse_time(1.5, default_unit="m") == 90_000


@pytest.mark.parametrize("expr", ["abc", "10 days", "", True])
def test_parse_time_rejects_garbage(expr: object) -> None:
    with pytest.raises(ValueError):
        parse_time(expr)  # type: ignore[arg-type]


def test_format_time_picks_largest_unit() -> None:
    assert format_time(500) == "500ms"
    assert format_time(1_500) == "1.5s"
    assert format_time(120_000) == "2m"
    assert format_time(5_400_000) == "1.5h"


def test_load_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RATE_LIMIT", "5s")
    monkeypatch.setenv("TIMEOUT", "")
    monkeypatch.setenv("PRIVILEGED_INTERRUPT_TYPES", "UserInput, Urgent")
    monkeypatch.setenv("STATE_DIR", str(tmp_path))
    monkeypatch.setenv("RESUMABLE", "0")
    monkeypatch.setenv("ANALYSIS_MODEL", "")

    config = AppConfig.load_from_env()

    assert config.rate_limit_ms == 5_000
    assert config.timeout_ms is None
    assert config.privileged_interrupt_types == ("UserInput", "Urgent")
    assert config.state_dir == tmp_path
    assert config.resumable is False
    assert config.analysis_model is None


def test_load_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("RATE_LIMIT", "TIMEOUT", "PRIVILEGED_INTERRUPT_TYPES", "RESUMABLE"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig.load_from_env()

    assert config.rate_limit_ms == 3_000
    assert config.timeout_ms == 120_000
    assert config.privileged_interrupt_types == PRIVILEGED_INTERRUPT_TYPES
    assert config.resumable is True


def test_malformed_rate_limit_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT", "soon")
    with pytest.raises(ValueError):
        AppConfig.load_from_env()
