# src/stakeledger/ledger/lock_periods.py
from __future__ import annotations

"""Lock tier table: lock_id -> (duration seconds, reward multiplier).

State shape:
  state["lock_periods"][str(lock_id)] = {
      "duration": int,      # seconds
      "multiplier": int,    # 1e5 == 1.0x
      "configured": bool,   # True once set_lock_period() has run for this id
  }

Unset ids read as duration 0 and multiplier 1.0x. Whether an unset id may be
used for a new deposit is decided by require_lock_period().
"""

from typing import Any, Dict

from stakeledger.ledger.constants import DEFAULT_LOCK_MULTIPLIER
from stakeledger.ledger.numeric import as_uint
from stakeledger.runtime.errors import WrongLockPeriod

Json = Dict[str, Any]


def _ensure_table(state: Json) -> Json:
    table = state.get("lock_periods")
    if not isinstance(table, dict):
        table = {}
        state["lock_periods"] = table
    return table


def _entry(state: Json, lock_id: int) -> Json:
    table = _ensure_table(state)
    key = str(as_uint(lock_id, field="lock_id"))
    ent = table.get(key)
    if not isinstance(ent, dict):
        ent = {"duration": 0, "multiplier": DEFAULT_LOCK_MULTIPLIER, "configured": False}
        table[key] = ent
    return ent


def _peek(state: Json, lock_id: int) -> Json:
    table = state.get("lock_periods")
    if not isinstance(table, dict):
        return {}
    ent = table.get(str(int(lock_id)))
    return ent if isinstance(ent, dict) else {}


def set_lock_period(state: Json, lock_id: int, duration_seconds: int) -> Json:
    ent = _entry(state, lock_id)
    ent["duration"] = as_uint(duration_seconds, field="duration")
    ent["configured"] = True
    return dict(ent)


def set_lock_period_multiplier(state: Json, lock_id: int, multiplier: int) -> Json:
    ent = _entry(state, lock_id)
    ent["multiplier"] = as_uint(multiplier, field="multiplier")
    return dict(ent)


def lock_duration(state: Json, lock_id: int) -> int:
    return int(_peek(state, lock_id).get("duration", 0) or 0)


def lock_multiplier(state: Json, lock_id: int) -> int:
    ent = _peek(state, lock_id)
    if "multiplier" not in ent:
        return DEFAULT_LOCK_MULTIPLIER
    return int(ent["multiplier"])


def is_configured(state: Json, lock_id: int) -> bool:
    return bool(_peek(state, lock_id).get("configured", False))


def require_lock_period(state: Json, lock_id: int) -> int:
    """Return the lock duration for a new deposit, rejecting unknown ids in strict mode."""
    strict = bool((state.get("params") or {}).get("strict_lock_ids", True))
    if strict and not is_configured(state, lock_id):
        raise WrongLockPeriod("unknown_lock_id", {"lock_id": int(lock_id)})
    return lock_duration(state, lock_id)


__all__ = [
    "set_lock_period",
    "set_lock_period_multiplier",
    "lock_duration",
    "lock_multiplier",
    "is_configured",
    "require_lock_period",
]
