# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from state_store.store import CheckpointPolicy


def test_full_after_exactly_interval_partials_then_counter_resets() -> None:
    policy = CheckpointPolicy(full_state_interval=3)

    decisions = [policy.next_is_full() for _ in range(5)]

    assert decisions == [False, False, False, True, False]
    assert policy.partial_count == 1


def test_forced_full_resets_counter() -> None:
    policy = CheckpointPolicy(full_state_interval=3, partial_count=2)

    assert policy.next_is_full(force=True) is True
    assert policy.partial_count == 0


def test_restored_counter_is_honoured() -> None:
    policy = CheckpointPolicy(full_state_interval=10, partial_count=10)
    assert policy.next_is_full() is True


def test_interval_below_one_is_rejected() -> None:
    with pytest.raises(ValueError):
        CheckpointPolicy(full_state_interval=0)
