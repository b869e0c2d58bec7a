# src/stakeledger/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Ledger state is a nested JSON-like dict mutated only by the apply modules.
This module is the single place that

  - validates the state is dict-like and creates the core roots, and
  - cross-checks the bookkeeping that every successful call must preserve.

check_ledger_invariants() is run inside the atomic snapshot when enabled, so
a violation rejects the call instead of committing a corrupted ledger.
"""

from collections.abc import MutableMapping
from typing import Any, Dict, List

from stakeledger.ledger.constants import STATE_VERSION
from stakeledger.runtime.errors import InvariantViolation

Json = Dict[str, Any]

_DEFAULT_PARAMS: Json = {
    "paused": False,
    "strict_lock_ids": True,
    "unique_pool_pairs": False,
}

_DICT_ROOTS = ("params", "roles", "rewards_config", "lock_periods", "deposits", "users")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains the core roots.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st, or one of its roots, has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in _DICT_ROOTS:
        cur = st.get(key)
        if cur is None:
            st[key] = {}
        elif not isinstance(cur, dict):
            # Fail closed: do not attempt to coerce arbitrary types.
            raise TypeError(f"state['{key}'] must be dict, got {type(cur)}")

    pools = st.get("pools")
    if pools is None:
        st["pools"] = []
    elif not isinstance(pools, list):
        raise TypeError(f"state['pools'] must be list, got {type(pools)}")

    for k, v in _DEFAULT_PARAMS.items():
        st["params"].setdefault(k, v)

    rc = st["rewards_config"]
    rc.setdefault("reward_per_block", 0)
    rc.setdefault("update_blocks_interval", 0)
    rc.setdefault("last_update_block_num", 0)

    st.setdefault("state_version", STATE_VERSION)
    st.setdefault("height", 0)
    st.setdefault("time", 0)
    st.setdefault("last_nonce", 0)
    return st  # type: ignore[return-value]


def _as_int(x: Any) -> int:
    try:
        return int(x)
    except Exception:
        return 0


def collect_violations(state: Json) -> List[Json]:
    """Every bookkeeping mismatch found in `state`, as detail dicts."""
    out: List[Json] = []
    pools = state.get("pools") if isinstance(state.get("pools"), list) else []
    deposits = state.get("deposits") if isinstance(state.get("deposits"), dict) else {}
    users = state.get("users") if isinstance(state.get("users"), dict) else {}

    live_by_pool: Dict[int, int] = {pid: 0 for pid in range(len(pools))}
    live_by_pool_lock: Dict[int, Dict[str, int]] = {pid: {} for pid in range(len(pools))}

    for user, by_pool in deposits.items():
        if not isinstance(by_pool, dict):
            out.append({"check": "deposits_shape", "user": user})
            continue
        for pid_s, lst in by_pool.items():
            pid = _as_int(pid_s)
            if pid not in live_by_pool:
                out.append({"check": "deposit_unknown_pool", "user": user, "pool_id": pid_s})
                continue
            principal = 0
            for idx, dep in enumerate(lst if isinstance(lst, list) else []):
                amount = _as_int(dep.get("amount"))
                if bool(dep.get("finished", False)):
                    if amount != 0:
                        out.append({"check": "finished_with_amount", "user": user, "pool_id": pid, "deposit_index": idx, "amount": amount})
                    continue
                principal += amount
                lock_key = str(_as_int(dep.get("lock_id")))
                live_by_pool_lock[pid][lock_key] = live_by_pool_lock[pid].get(lock_key, 0) + amount
            live_by_pool[pid] += principal

            agg = (users.get(user) or {}).get(pid_s) if isinstance(users.get(user), dict) else None
            recorded = _as_int(agg.get("total_deposit_amount")) if isinstance(agg, dict) else 0
            if recorded != principal:
                out.append({"check": "user_total_deposit", "user": user, "pool_id": pid, "recorded": recorded, "live": principal})

    for pid, pool in enumerate(pools):
        shares = _as_int(pool.get("total_shares"))
        if shares != live_by_pool[pid]:
            out.append({"check": "total_shares", "pool_id": pid, "total_shares": shares, "live": live_by_pool[pid]})

        tvl = pool.get("tvl_by_lock") if isinstance(pool.get("tvl_by_lock"), dict) else {}
        if sum(_as_int(v) for v in tvl.values()) != shares:
            out.append({"check": "tvl_sum", "pool_id": pid, "total_shares": shares})
        for lock_key, v in tvl.items():
            if _as_int(v) != live_by_pool_lock[pid].get(str(lock_key), 0):
                out.append({"check": "tvl_by_lock", "pool_id": pid, "lock_id": lock_key, "tvl": _as_int(v)})

    return out


def check_ledger_invariants(state: Json) -> None:
    violations = collect_violations(state)
    if violations:
        raise InvariantViolation("ledger_invariants_broken", {"violations": violations})


__all__ = ["ensure_state", "collect_violations", "check_ledger_invariants"]
