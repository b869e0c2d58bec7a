from __future__ import annotations

import pytest

from stakeledger.runtime.domain_apply import apply_tx_atomic
from stakeledger.runtime.domain_dispatch import apply_tx
from stakeledger.runtime.errors import InvalidPayload, LedgerError, NotAuthorized, TxUnimplemented
from stakeledger.runtime.state_invariants import ensure_state
from stakeledger.runtime.tx_types import TxEnvelope


def _state() -> dict:
    return ensure_state({"roles": {"admin": "admin"}})


def _pool_add(signer: str = "admin") -> dict:
    return {"tx_type": "POOL_ADD", "signer": signer, "payload": {"base_token": "JAV", "reward_token": "RWD"}}


class _BrokenAuthorizer:
    def is_authorized(self, state, caller, role) -> bool:
        raise ValueError("role lookup failed")


def test_unknown_tx_type_fails_closed() -> None:
    with pytest.raises(TxUnimplemented) as e:
        apply_tx(_state(), {"tx_type": "MINT_EVERYTHING", "signer": "admin", "payload": {}})
    assert e.value.code == "TxUnimplemented"
    assert e.value.reason == "tx_type_not_implemented"


def test_missing_tx_type_is_invalid_payload() -> None:
    with pytest.raises(InvalidPayload) as e:
        apply_tx(_state(), {"signer": "admin"})
    assert e.value.reason == "missing_tx_type"


def test_dict_and_envelope_inputs_are_equivalent() -> None:
    st1 = _state()
    st2 = _state()
    m1 = apply_tx(st1, _pool_add())
    m2 = apply_tx(st2, TxEnvelope(tx_type="POOL_ADD", signer="admin", payload={"base_token": "JAV", "reward_token": "RWD"}))
    assert m1 == m2
    assert m1["pool_id"] == 0
    assert m1["transfers"] == []
    assert st1 == st2


def test_tx_type_is_case_insensitive() -> None:
    st = _state()
    env = _pool_add()
    env["tx_type"] = "pool_add"
    assert apply_tx(st, env)["applied"] == "POOL_ADD"


def test_foreign_exceptions_are_wrapped_as_ledger_errors() -> None:
    with pytest.raises(LedgerError) as e:
        apply_tx(_state(), _pool_add(), authorizer=_BrokenAuthorizer())
    err = e.value
    assert err.code == "domain_error"
    assert err.reason == "ValueError"
    assert err.details["domain"] == "apply_pools"


def test_atomic_apply_stamps_clock_and_commits_in_place() -> None:
    st = _state()
    ref = st
    meta = apply_tx_atomic(st, _pool_add(), block=7, now=1_234)
    assert meta["pool_id"] == 0
    assert ref["height"] == 7
    assert ref["time"] == 1_234
    assert len(ref["pools"]) == 1


def test_atomic_apply_leaves_state_untouched_on_error() -> None:
    st = _state()
    with pytest.raises(NotAuthorized):
        apply_tx_atomic(st, _pool_add(signer="mallory"), block=7)
    assert st["pools"] == []
    assert st["height"] == 0


def test_before_commit_failure_rolls_back() -> None:
    st = _state()
    seen = {}

    def _hook(snapshot: dict, meta: dict) -> None:
        seen["pools"] = len(snapshot["pools"])
        raise RuntimeError("refused")

    with pytest.raises(RuntimeError):
        apply_tx_atomic(st, _pool_add(), before_commit=_hook)
    assert seen["pools"] == 1
    assert st["pools"] == []
