# src/stakeledger/runtime/apply/staking.py
from __future__ import annotations

"""Deposit lifecycle apply semantics.

Tx types (blocked while the ledger is paused):
- DEPOSIT, CLAIM, CLAIM_ALL, CLAIM_ALL_BY_LOCK, WITHDRAW  (signer is the user)
- DEPOSIT_EXTERNAL, WITHDRAW_PARTIAL                      (vesting collaborator only;
                                                           the user is named in the payload)

Block height and wall-clock time are read from state["height"] / state["time"],
which the engine stamps on the working snapshot before dispatch.
"""

from typing import Any, Dict, Optional

from stakeledger.ledger import deposits
from stakeledger.ledger.constants import ROLE_VESTING
from stakeledger.runtime.errors import NotAllowed
from stakeledger.runtime.gates import Authorizer, require_not_paused, require_role
from stakeledger.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]

STAKING_TX_TYPES = frozenset(
    {
        "DEPOSIT",
        "DEPOSIT_EXTERNAL",
        "CLAIM",
        "CLAIM_ALL",
        "CLAIM_ALL_BY_LOCK",
        "WITHDRAW",
        "WITHDRAW_PARTIAL",
    }
)


def _height(state: Json) -> int:
    return int(state.get("height", 0) or 0)


def _now(state: Json) -> int:
    return int(state.get("time", 0) or 0)


def _user(env: TxEnvelope) -> str:
    u = str(env.signer or "").strip()
    if not u:
        raise NotAllowed("missing_signer", {"tx_type": env.tx_type})
    return u


def _apply_deposit(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    meta = deposits.open_deposit(
        state,
        _user(env),
        p["pool_id"],
        lock_id=p["lock_id"],
        gross_amount=p["amount"],
        current_block=_height(state),
        now=_now(state),
    )
    return {"applied": "DEPOSIT", "pool_id": int(p["pool_id"]), "lock_id": int(p["lock_id"]), **meta}


def _apply_deposit_external(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    meta = deposits.open_external_deposit(
        state,
        str(p["user"]).strip(),
        p["pool_id"],
        lock_id=p["lock_id"],
        amount=p["amount"],
        deposit_timestamp=p["deposit_timestamp"],
        withdrawal_timestamp=p["withdrawal_timestamp"],
        current_block=_height(state),
    )
    return {"applied": "DEPOSIT_EXTERNAL", "pool_id": int(p["pool_id"]), "user": str(p["user"]).strip(), **meta}


def _apply_claim(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    meta = deposits.claim(state, _user(env), p["pool_id"], p["deposit_index"], current_block=_height(state))
    return {"applied": "CLAIM", "pool_id": int(p["pool_id"]), **meta}


def _apply_claim_all(state: Json, env: TxEnvelope, *, by_lock: bool) -> Json:
    p = env.payload
    lock_id = int(p["lock_id"]) if by_lock else None
    meta = deposits.claim_many(state, _user(env), p["pool_id"], current_block=_height(state), lock_id=lock_id)
    out: Json = {"applied": "CLAIM_ALL_BY_LOCK" if by_lock else "CLAIM_ALL", "pool_id": int(p["pool_id"]), **meta}
    if by_lock:
        out["lock_id"] = lock_id
    return out


def _apply_withdraw(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    meta = deposits.withdraw(
        state, _user(env), p["pool_id"], p["deposit_index"], current_block=_height(state), now=_now(state)
    )
    return {"applied": "WITHDRAW", "pool_id": int(p["pool_id"]), **meta}


def _apply_withdraw_partial(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    user = str(p["user"]).strip()
    meta = deposits.withdraw_partial(
        state, user, p["pool_id"], p["deposit_index"], p["amount"], current_block=_height(state)
    )
    return {"applied": "WITHDRAW_PARTIAL", "pool_id": int(p["pool_id"]), "user": user, **meta}


def apply_staking(state: Json, env: TxEnvelope, authorizer: Authorizer) -> Optional[Json]:
    """Apply deposit lifecycle txs. Returns meta dict if handled; otherwise None."""
    t = str(env.tx_type or "").strip()
    if t not in STAKING_TX_TYPES:
        return None

    require_not_paused(state)

    if t in {"DEPOSIT_EXTERNAL", "WITHDRAW_PARTIAL"}:
        require_role(state, env.signer, ROLE_VESTING, authorizer)

    if t == "DEPOSIT":
        return _apply_deposit(state, env)
    if t == "DEPOSIT_EXTERNAL":
        return _apply_deposit_external(state, env)
    if t == "CLAIM":
        return _apply_claim(state, env)
    if t == "CLAIM_ALL":
        return _apply_claim_all(state, env, by_lock=False)
    if t == "CLAIM_ALL_BY_LOCK":
        return _apply_claim_all(state, env, by_lock=True)
    if t == "WITHDRAW":
        return _apply_withdraw(state, env)
    if t == "WITHDRAW_PARTIAL":
        return _apply_withdraw_partial(state, env)
    return None


__all__ = ["STAKING_TX_TYPES", "apply_staking"]
