# src/stakeledger/runtime/apply/admin.py
from __future__ import annotations

"""Administrative apply semantics: lock tiers, role addresses, pause switch.

All tx types here are admin only and stay available while the ledger is
paused, so an operator can always reconfigure or unpause.
"""

from typing import Any, Dict, Optional

from stakeledger.ledger import lock_periods
from stakeledger.runtime.gates import Authorizer, require_admin
from stakeledger.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]

ADMIN_TX_TYPES = frozenset(
    {
        "LOCK_PERIOD_SET",
        "LOCK_PERIOD_MULTIPLIER_SET",
        "ROLE_SET",
        "LEDGER_PAUSE",
        "LEDGER_UNPAUSE",
    }
)


def _ensure_root_dict(state: Json, key: str) -> Json:
    cur = state.get(key)
    if not isinstance(cur, dict):
        cur = {}
        state[key] = cur
    return cur


def _apply_lock_period_set(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    ent = lock_periods.set_lock_period(state, p["lock_id"], p["duration"])
    return {"applied": "LOCK_PERIOD_SET", "lock_id": int(p["lock_id"]), **ent}


def _apply_lock_period_multiplier_set(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    ent = lock_periods.set_lock_period_multiplier(state, p["lock_id"], p["multiplier"])
    return {"applied": "LOCK_PERIOD_MULTIPLIER_SET", "lock_id": int(p["lock_id"]), **ent}


def _apply_role_set(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    roles = _ensure_root_dict(state, "roles")
    prev = roles.get(p["role"])
    roles[p["role"]] = str(p["address"]).strip()
    return {"applied": "ROLE_SET", "role": p["role"], "address": roles[p["role"]], "previous": prev}


def _apply_pause(state: Json, paused: bool) -> Json:
    params = _ensure_root_dict(state, "params")
    was = bool(params.get("paused", False))
    params["paused"] = bool(paused)
    return {"applied": "LEDGER_PAUSE" if paused else "LEDGER_UNPAUSE", "paused": bool(paused), "changed": was != bool(paused)}


def apply_admin(state: Json, env: TxEnvelope, authorizer: Authorizer) -> Optional[Json]:
    """Apply admin txs. Returns meta dict if handled; otherwise None."""
    t = str(env.tx_type or "").strip()
    if t not in ADMIN_TX_TYPES:
        return None

    require_admin(state, env.signer, authorizer)

    if t == "LOCK_PERIOD_SET":
        return _apply_lock_period_set(state, env)
    if t == "LOCK_PERIOD_MULTIPLIER_SET":
        return _apply_lock_period_multiplier_set(state, env)
    if t == "ROLE_SET":
        return _apply_role_set(state, env)
    if t == "LEDGER_PAUSE":
        return _apply_pause(state, True)
    if t == "LEDGER_UNPAUSE":
        return _apply_pause(state, False)
    return None


__all__ = ["ADMIN_TX_TYPES", "apply_admin"]
