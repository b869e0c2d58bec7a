from __future__ import annotations

import pytest

from stakeledger.ledger.constants import DEFAULT_LOCK_MULTIPLIER
from stakeledger.ledger.lock_periods import (
    is_configured,
    lock_duration,
    lock_multiplier,
    require_lock_period,
    set_lock_period,
    set_lock_period_multiplier,
)
from stakeledger.runtime.errors import WrongLockPeriod
from stakeledger.runtime.state_invariants import ensure_state


def test_unset_lock_reads_as_zero_duration_and_unit_multiplier() -> None:
    st = ensure_state({})
    assert lock_duration(st, 3) == 0
    assert lock_multiplier(st, 3) == DEFAULT_LOCK_MULTIPLIER
    assert not is_configured(st, 3)


def test_set_lock_period_and_multiplier_are_independent() -> None:
    st = ensure_state({})
    set_lock_period_multiplier(st, 1, 150_000)
    assert lock_multiplier(st, 1) == 150_000
    assert not is_configured(st, 1)

    set_lock_period(st, 1, 86_400)
    assert lock_duration(st, 1) == 86_400
    assert lock_multiplier(st, 1) == 150_000
    assert is_configured(st, 1)


def test_strict_mode_rejects_unconfigured_lock_ids() -> None:
    st = ensure_state({})
    with pytest.raises(WrongLockPeriod):
        require_lock_period(st, 9)

    set_lock_period(st, 9, 0)
    assert require_lock_period(st, 9) == 0


def test_lenient_mode_treats_unknown_lock_as_no_lock() -> None:
    st = ensure_state({"params": {"strict_lock_ids": False}})
    assert require_lock_period(st, 42) == 0
