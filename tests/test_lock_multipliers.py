from __future__ import annotations

from stakeledger.runtime.clock import ManualClock
from stakeledger.runtime.engine import StakeLedger
from stakeledger.runtime.ledger_config import default_ledger_config, with_overrides
from stakeledger.runtime.tokens import LEDGER_HOLDER, InMemoryTokenGateway

ADMIN = "admin"
DISTRIBUTOR = "distributor"
RPB = 10**17


def _ledger() -> tuple[StakeLedger, ManualClock, InMemoryTokenGateway]:
    clock = ManualClock()
    gw = InMemoryTokenGateway()
    led = StakeLedger(
        admin=ADMIN,
        clock=clock,
        gateway=gw,
        config=with_overrides(default_ledger_config(), mode="dev"),
        rewards_distributor=DISTRIBUTOR,
    )
    led.set_reward_configuration(ADMIN, RPB)
    led.set_lock_period(ADMIN, 0, 0)
    led.set_lock_period(ADMIN, 1, 0)
    led.set_lock_period_multiplier(ADMIN, 1, 150_000)
    led.add_pool(ADMIN, base_token="JAV", reward_token="RWD")
    gw.mint("JAV", "alice", 10**6)
    gw.mint("JAV", "bob", 10**6)
    gw.mint("RWD", LEDGER_HOLDER, 10**30)
    return led, clock, gw


def test_multiplier_scales_block_emission_only() -> None:
    led, clock, _gw = _ledger()
    led.deposit("alice", 0, 1, 100)
    clock.mine(10)
    led.add_rewards(DISTRIBUTOR, 0, 100)

    assert led.pending_reward_breakdown(0, "alice", 0) == {
        "block": 15 * 10**17,
        "bonus": 100,
        "total": 15 * 10**17 + 100,
    }


def test_unit_multiplier_tier_is_unscaled() -> None:
    led, clock, _gw = _ledger()
    led.deposit("alice", 0, 0, 100)
    led.deposit("bob", 0, 1, 100)
    clock.mine(10)

    assert led.pending_reward(0, "alice", 0) == 5 * 10**17
    assert led.pending_reward(0, "bob", 0) == 75 * 10**16


def test_claim_pays_the_multiplied_amount() -> None:
    led, clock, gw = _ledger()
    led.deposit("alice", 0, 1, 100)
    clock.mine(2)
    meta = led.claim("alice", 0, 0)
    assert meta["reward"] == 3 * 10**17
    assert gw.balance_of("RWD", "alice") == 3 * 10**17
    assert led.pool_info(0)["rewards_released_total"] == 3 * 10**17


def test_lowered_accumulator_clamps_pending_at_zero() -> None:
    led, clock, gw = _ledger()
    gw.mint("JAV", "alice", 10**18)
    gw.mint("JAV", "bob", 10**18)

    led.deposit("alice", 0, 0, 10**18)
    clock.mine(10)
    led.deposit("bob", 0, 0, 10**18)
    assert led.user_deposit("bob", 0, 0)["reward_debt"] == 10**18

    led.set_pool_info(ADMIN, 0, last_reward_block=10, acc_reward_per_share=0)
    assert led.pending_reward(0, "bob", 0) == 0
    assert led.pending_reward(0, "alice", 0) == 0

    meta = led.claim("bob", 0, 0)
    assert meta["reward"] == 0
