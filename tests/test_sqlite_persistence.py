from __future__ import annotations

import copy
import sqlite3
from pathlib import Path

import pytest

from stakeledger.runtime.clock import ManualClock
from stakeledger.runtime.engine import EngineError, StakeLedger
from stakeledger.runtime.errors import NotAuthorized
from stakeledger.runtime.ledger_config import LedgerConfig, default_ledger_config, with_overrides
from stakeledger.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from stakeledger.runtime.tokens import LEDGER_HOLDER, InMemoryTokenGateway

ADMIN = "admin"
RPB = 10**17


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def _cfg(tmp_path: Path, **kw) -> LedgerConfig:
    return with_overrides(default_ledger_config(), mode="dev", db_path=str(tmp_path / "ledger.db"), ledger_id="t-1", **kw)


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STAKELEDGER_MODE", "prod")
    monkeypatch.delenv("STAKELEDGER_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("STAKELEDGER_SQLITE_BUSY_TIMEOUT_MS", "1234")
    monkeypatch.setenv("STAKELEDGER_SQLITE_WAL_AUTOCHECKPOINT", "777")

    db = SqliteDB(path=str(tmp_path / "ledger.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"
        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2
        # MEMORY corresponds to 2
        assert int(_pragma(con, "temp_store")) == 2
        assert int(_pragma(con, "busy_timeout")) == 1234
        assert int(_pragma(con, "wal_autocheckpoint")) == 777


def test_sqlite_synchronous_is_normal_outside_prod(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STAKELEDGER_MODE", "dev")
    monkeypatch.delenv("STAKELEDGER_SQLITE_SYNCHRONOUS", raising=False)

    db = SqliteDB(path=str(tmp_path / "ledger.db"))
    db.init_schema()
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 1


def test_schema_version_mismatch_refuses_to_start(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "ledger.db"))
    db.init_schema()
    with db.write_tx() as con:
        con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")
    with pytest.raises(RuntimeError):
        db.init_schema()


def test_restart_restores_state_and_pending_rewards(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    clock = ManualClock(block=0, ts=1_000)
    gw = InMemoryTokenGateway()
    gw.mint("JAV", "alice", 10**6)
    gw.mint("RWD", LEDGER_HOLDER, 10**30)

    led = StakeLedger(admin=ADMIN, clock=clock, gateway=gw, config=cfg)
    led.set_reward_configuration(ADMIN, RPB)
    led.set_lock_period(ADMIN, 0, 0)
    led.add_pool(ADMIN, base_token="JAV", reward_token="RWD")
    led.deposit("alice", 0, 0, 100)
    clock.mine(10)

    pending = led.pending_reward(0, "alice", 0)
    nonce = led.state["last_nonce"]

    restarted = StakeLedger(clock=clock, gateway=gw, config=cfg)
    assert restarted.state == led.state
    assert restarted.pending_reward(0, "alice", 0) == pending == 10 * RPB
    assert restarted.pool_info(0) == led.pool_info(0)

    restarted.claim("alice", 0, 0)
    assert restarted.state["last_nonce"] == nonce + 1
    assert gw.balance_of("RWD", "alice") == 10 * RPB


def test_ops_journal_records_only_applied_calls(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    led = StakeLedger(admin=ADMIN, clock=ManualClock(), config=cfg)
    led.set_lock_period(ADMIN, 0, 0)
    with pytest.raises(NotAuthorized):
        led.set_lock_period("mallory", 1, 10)
    led.add_pool(ADMIN, base_token="JAV", reward_token="RWD")

    ops = led.ops()
    assert [o["tx_type"] for o in ops] == ["LOCK_PERIOD_SET", "POOL_ADD"]
    assert [o["nonce"] for o in ops] == [1, 2]
    assert ops[1]["meta"]["pool_id"] == 0
    assert ops[0]["envelope"]["payload"] == {"lock_id": 0, "duration": 0}
    assert set(ops[0]["envelope"]) == {"tx_type", "signer", "nonce", "payload"}
    assert led.ops(signer="mallory") == []


def test_store_write_and_read_round_trip_big_integers(tmp_path: Path) -> None:
    store = SqliteLedgerStore(db=SqliteDB(path=str(tmp_path / "ledger.db")))
    assert store.exists() is False
    st = {"height": 3, "last_nonce": 0, "pools": [{"acc_reward_per_share": 2**200}]}
    store.write(st)
    assert store.exists() is True
    assert store.read() == st


def test_ledger_id_mismatch_refuses_to_start(tmp_path: Path) -> None:
    StakeLedger(admin=ADMIN, clock=ManualClock(), config=_cfg(tmp_path))
    with pytest.raises(EngineError):
        StakeLedger(clock=ManualClock(), config=with_overrides(_cfg(tmp_path), ledger_id="t-2"))


class _SettableClock:
    """Clock that can be moved to any reading, including backwards."""

    def __init__(self, block: int, ts: int) -> None:
        self.block = block
        self.ts = ts

    def block_number(self) -> int:
        return self.block

    def timestamp(self) -> int:
        return self.ts


def test_restart_with_clock_behind_snapshot_refuses_to_start(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    clock = ManualClock(block=100, ts=5_000)
    gw = InMemoryTokenGateway()
    gw.mint("JAV", "alice", 10**6)

    led = StakeLedger(admin=ADMIN, clock=clock, gateway=gw, config=cfg)
    led.set_lock_period(ADMIN, 0, 0)
    led.add_pool(ADMIN, base_token="JAV", reward_token="RWD")
    led.deposit("alice", 0, 0, 100)

    for behind in (ManualClock(), ManualClock(block=99, ts=5_000), ManualClock(block=100, ts=4_999)):
        with pytest.raises(EngineError):
            StakeLedger(clock=behind, gateway=gw, config=cfg)

    restarted = StakeLedger(clock=ManualClock(block=100, ts=5_000), gateway=gw, config=cfg)
    restarted.set_reward_configuration(ADMIN, RPB)
    assert restarted.state["height"] == 100
    assert restarted.state["time"] == 5_000
    assert restarted.get_rewards_configuration()["last_update_block_num"] == 100


def test_submit_rejects_a_clock_that_moved_backwards(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    clock = _SettableClock(block=50, ts=2_000)
    gw = InMemoryTokenGateway()
    gw.mint("JAV", "alice", 10**6)

    led = StakeLedger(admin=ADMIN, clock=clock, gateway=gw, config=cfg)
    led.set_lock_period(ADMIN, 0, 0)
    led.add_pool(ADMIN, base_token="JAV", reward_token="RWD")
    before = copy.deepcopy(led.state)
    ops_before = len(led.ops())

    clock.block = 49
    with pytest.raises(EngineError):
        led.deposit("alice", 0, 0, 100)

    clock.block, clock.ts = 50, 1_999
    with pytest.raises(EngineError):
        led.deposit("alice", 0, 0, 100)

    assert led.state == before
    assert len(led.ops()) == ops_before
    assert gw.balance_of("JAV", "alice") == 10**6

    clock.ts = 2_000
    led.deposit("alice", 0, 0, 100)
    assert led.pool_info(0)["total_shares"] == 100
