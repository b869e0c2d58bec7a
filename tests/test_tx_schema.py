from __future__ import annotations

import pytest

from stakeledger.runtime.clock import ManualClock
from stakeledger.runtime.engine import StakeLedger
from stakeledger.runtime.errors import ArithmeticOverflow, InvalidAmount, InvalidPayload, TxUnimplemented
from stakeledger.runtime.tx_schema import schema_for, validate_payload


def test_every_engine_tx_type_has_a_schema() -> None:
    for t in (
        "POOL_ADD",
        "POOL_INFO_SET",
        "POOL_FEE_SET",
        "REWARD_CONFIG_SET",
        "LOCK_PERIOD_SET",
        "LOCK_PERIOD_MULTIPLIER_SET",
        "ROLE_SET",
        "LEDGER_PAUSE",
        "LEDGER_UNPAUSE",
        "DEPOSIT",
        "DEPOSIT_EXTERNAL",
        "CLAIM",
        "CLAIM_ALL",
        "CLAIM_ALL_BY_LOCK",
        "WITHDRAW",
        "WITHDRAW_PARTIAL",
        "REWARDS_ADD",
    ):
        assert schema_for(t) is not None, t
    assert schema_for("deposit") is schema_for("DEPOSIT")
    assert schema_for("") is None


def test_pool_add_defaults_are_filled() -> None:
    out = validate_payload("POOL_ADD", {"base_token": "JAV", "reward_token": "RWD"})
    assert out == {
        "base_token": "JAV",
        "reward_token": "RWD",
        "last_reward_block": 0,
        "acc_reward_per_share": 0,
        "fee": {"deposit_fee_bps": 0, "withdraw_fee_bps": 0, "claim_fee_bps": 0},
        "min_stake_amount": 0,
    }


@pytest.mark.parametrize(
    "payload",
    [
        {"pool_id": 0, "lock_id": 0, "amount": "100"},
        {"pool_id": 0, "lock_id": 0, "amount": True},
        {"pool_id": 0, "lock_id": 0, "amount": -1},
        {"pool_id": 0, "lock_id": 0, "amount": 1.5},
        {"pool_id": 0, "lock_id": 0},
        {"pool_id": 0, "lock_id": 0, "amount": 1, "memo": "hi"},
    ],
)
def test_deposit_payload_shape_is_strict(payload: dict) -> None:
    with pytest.raises(InvalidPayload) as e:
        validate_payload("DEPOSIT", payload)
    assert e.value.reason == "payload_schema_mismatch"
    assert e.value.details["errors"]


def test_payload_must_be_an_object() -> None:
    with pytest.raises(InvalidPayload) as e:
        validate_payload("CLAIM", [0, 0])
    assert e.value.reason == "payload_must_be_object"


def test_empty_payloads() -> None:
    assert validate_payload("LEDGER_PAUSE", None) == {}
    with pytest.raises(InvalidPayload):
        validate_payload("LEDGER_UNPAUSE", {"why": "maintenance"})


def test_unknown_tx_type() -> None:
    with pytest.raises(TxUnimplemented):
        validate_payload("BURN_ALL", {})


def test_role_set_rejects_unknown_roles() -> None:
    assert validate_payload("ROLE_SET", {"role": "vesting", "address": "v"}) == {"role": "vesting", "address": "v"}
    with pytest.raises(InvalidPayload):
        validate_payload("ROLE_SET", {"role": "root", "address": "v"})
    with pytest.raises(InvalidPayload):
        validate_payload("ROLE_SET", {"role": "vesting", "address": ""})


def test_fee_ceiling_is_enforced_by_the_ledger_not_the_schema() -> None:
    out = validate_payload("POOL_FEE_SET", {"pool_id": 0, "fee": {"claim_fee_bps": 10_001}})
    assert out["fee"]["claim_fee_bps"] == 10_001

    led = StakeLedger(admin="admin", clock=ManualClock())
    with pytest.raises(InvalidAmount):
        led.add_pool("admin", base_token="JAV", reward_token="RWD", fee={"withdraw_fee_bps": 10_001})
    assert led.get_pool_length() == 0


def test_out_of_range_integers_overflow_in_the_ledger() -> None:
    led = StakeLedger(admin="admin", clock=ManualClock())
    with pytest.raises(ArithmeticOverflow):
        led.add_pool("admin", base_token="JAV", reward_token="RWD", acc_reward_per_share=2**256)
