from __future__ import annotations

import pytest

from stakeledger.ledger.state import LedgerView
from stakeledger.runtime.clock import ManualClock, SystemClock
from stakeledger.runtime.engine import StakeLedger
from stakeledger.runtime.errors import InvalidAmount
from stakeledger.runtime.tokens import LEDGER_HOLDER, InMemoryTokenGateway, Transfer


def test_gateway_batches_are_all_or_nothing() -> None:
    gw = InMemoryTokenGateway()
    gw.mint("JAV", "alice", 100)

    batch = [
        {"kind": "in", "token": "JAV", "account": "alice", "amount": 100},
        {"kind": "out", "token": "RWD", "account": "alice", "amount": 1},
    ]
    with pytest.raises(InvalidAmount):
        gw.execute(batch)
    assert gw.balance_of("JAV", "alice") == 100
    assert gw.balance_of("JAV", LEDGER_HOLDER) == 0

    gw.execute(batch[:1] + [{"kind": "burn", "token": "JAV", "account": "alice", "amount": 10}])
    assert gw.balance_of("JAV", LEDGER_HOLDER) == 90
    assert gw.burned("JAV") == 10


def test_transfer_rejects_unknown_kinds() -> None:
    with pytest.raises(ValueError):
        Transfer.from_json({"kind": "mint", "token": "JAV", "account": "a", "amount": 1})
    t = Transfer.from_json({"kind": "out", "token": "JAV", "account": "a", "amount": 5})
    assert Transfer.from_json(t.to_json()) == t


def test_manual_clock_is_monotonic() -> None:
    clock = ManualClock(block=5, ts=100)
    assert clock.mine(2) == 7
    assert clock.advance(10) == 110
    with pytest.raises(ValueError):
        clock.set(block=6)
    with pytest.raises(ValueError):
        clock.advance(-1)
    clock.set(block=9, ts=200)
    assert (clock.block_number(), clock.timestamp()) == (9, 200)


def test_system_clock_derives_height_from_block_time() -> None:
    clock = SystemClock(genesis_ts=0, block_time_s=12)
    assert clock.block_number() == clock.timestamp() // 12
    with pytest.raises(ValueError):
        SystemClock(block_time_s=0)


def test_view_is_a_detached_copy() -> None:
    gw = InMemoryTokenGateway()
    gw.mint("JAV", "alice", 100)
    led = StakeLedger(admin="admin", clock=ManualClock(block=3, ts=50), gateway=gw)
    led.set_lock_period("admin", 0, 0)
    led.add_pool("admin", base_token="JAV", reward_token="RWD")
    led.deposit("alice", 0, 0, 100)

    view = led.view()
    assert isinstance(view, LedgerView)
    assert view.pool_count == 1
    assert view.get_pool(0)["total_shares"] == 100
    assert view.get_pool(9) == {}
    assert view.depositors(0) == ["alice"]
    assert view.get_deposits("alice", 0)[0]["amount"] == 100
    assert view.get_param("paused") is False
    assert (view.height, view.time) == (3, 50)

    view.pools[0]["total_shares"] = 0
    assert led.pool_info(0)["total_shares"] == 100
    assert LedgerView.from_ledger(view.to_ledger()) == view
