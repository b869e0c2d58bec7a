from __future__ import annotations

import pytest

from stakeledger.ledger.constants import UINT256_MAX
from stakeledger.ledger.fees import compute_fee, normalize_fee_config, split_fee
from stakeledger.ledger.numeric import as_uint, checked_add, checked_mul, checked_sub, mul_div, saturating_sub
from stakeledger.runtime.errors import ArithmeticOverflow, InvalidAmount


def test_compute_fee_is_floor_basis_points() -> None:
    assert compute_fee(1000, 100) == 10
    assert compute_fee(999, 100) == 9
    assert compute_fee(1, 9_999) == 0
    assert compute_fee(12345, 0) == 0
    assert compute_fee(12345, 10_000) == 12345


def test_split_fee_one_percent_of_1000() -> None:
    net, fee = split_fee(1000, 100)
    assert (net, fee) == (990, 10)
    assert net + fee == 1000


def test_fee_never_exceeds_amount_for_bounded_bps() -> None:
    for amount in (0, 1, 7, 10_001, 2**128 + 3):
        for bps in (0, 1, 5_000, 9_999, 10_000):
            net, fee = split_fee(amount, bps)
            assert 0 <= fee <= amount
            assert net == amount - fee


def test_normalize_fee_config_defaults_missing_keys_to_zero() -> None:
    assert normalize_fee_config({"claim_fee_bps": 250}) == {
        "deposit_fee_bps": 0,
        "withdraw_fee_bps": 0,
        "claim_fee_bps": 250,
    }
    assert normalize_fee_config(None) == {"deposit_fee_bps": 0, "withdraw_fee_bps": 0, "claim_fee_bps": 0}


def test_normalize_fee_config_rejects_bps_above_denominator() -> None:
    with pytest.raises(InvalidAmount) as e:
        normalize_fee_config({"withdraw_fee_bps": 10_001})
    assert e.value.code == "InvalidAmount"
    assert e.value.details["field"] == "withdraw_fee_bps"


def test_checked_arithmetic_hard_fails_outside_uint256() -> None:
    assert checked_add(UINT256_MAX - 1, 1) == UINT256_MAX
    with pytest.raises(ArithmeticOverflow):
        checked_add(UINT256_MAX, 1)
    with pytest.raises(ArithmeticOverflow):
        checked_sub(1, 2)
    with pytest.raises(ArithmeticOverflow):
        checked_mul(2**200, 2**100)
    with pytest.raises(ArithmeticOverflow):
        mul_div(1, 1, 0)


def test_as_uint_rejects_bools_negatives_and_garbage() -> None:
    assert as_uint("42") == 42
    for bad in (True, -1, UINT256_MAX + 1, "x", None):
        with pytest.raises(ArithmeticOverflow):
            as_uint(bad, field="v")


def test_saturating_sub_clamps_at_zero() -> None:
    assert saturating_sub(5, 3) == 2
    assert saturating_sub(3, 5) == 0
