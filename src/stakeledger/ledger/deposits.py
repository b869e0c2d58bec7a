# src/stakeledger/ledger/deposits.py
from __future__ import annotations

"""Per-user, per-pool deposit records and their reward settlement.

Each deposit is an independent position:

  state["deposits"][user][str(pool_id)] = [
      {
        "amount": int,                 # live principal, post deposit fee
        "lock_id": int,
        "deposit_timestamp": int,
        "withdrawal_timestamp": int,
        "reward_debt": int,            # amount * acc_reward_per_share // 1e18
        "reward_debt_bonus": int,      # amount * bonus_acc_reward_per_share // 1e18
        "total_claimed": int,          # net rewards paid out for this record
        "finished": bool,
      },
      ...
  ]

and a per-user aggregate in state["users"][user][str(pool_id)].

Records are never removed; `finished` is terminal. Mutating helpers return a
meta dict whose "transfers" list is executed by the token gateway only after
the state change commits.
"""

from typing import Any, Dict, List, Optional, Tuple

from stakeledger.ledger.constants import ACC_PRECISION, MULTIPLIER_DENOMINATOR
from stakeledger.ledger.fees import split_fee
from stakeledger.ledger.lock_periods import lock_multiplier, require_lock_period
from stakeledger.ledger.numeric import as_uint, checked_add, checked_sub, mul_div, saturating_sub
from stakeledger.ledger.pools import (
    add_shares,
    get_pool,
    record_fee_burn,
    remove_shares,
    settle,
    simulated_accumulators,
)
from stakeledger.runtime.errors import InvalidAmount, PeriodNotEnded, WrongDeposit

Json = Dict[str, Any]


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return int(default)


def _ensure_root(state: Json, key: str) -> Json:
    cur = state.get(key)
    if not isinstance(cur, dict):
        cur = {}
        state[key] = cur
    return cur


def _user_deposits(state: Json, user: str, pool_id: int, *, create: bool = False) -> List[Json]:
    if not create:
        by_pool = (state.get("deposits") or {}).get(user)
        if not isinstance(by_pool, dict):
            return []
        lst = by_pool.get(str(int(pool_id)))
        return lst if isinstance(lst, list) else []

    by_user = _ensure_root(state, "deposits")
    by_pool = by_user.get(user)
    if not isinstance(by_pool, dict):
        by_pool = {}
        by_user[user] = by_pool
    lst = by_pool.get(str(int(pool_id)))
    if not isinstance(lst, list):
        lst = []
        by_pool[str(int(pool_id))] = lst
    return lst


def _user_agg(state: Json, user: str, pool_id: int) -> Json:
    users = _ensure_root(state, "users")
    by_pool = users.get(user)
    if not isinstance(by_pool, dict):
        by_pool = {}
        users[user] = by_pool
    agg = by_pool.get(str(int(pool_id)))
    if not isinstance(agg, dict):
        agg = {"total_deposit_amount": 0, "deposit_count": 0, "total_claim": 0}
        by_pool[str(int(pool_id))] = agg
    return agg


def get_deposit(state: Json, user: str, pool_id: int, deposit_index: Any) -> Json:
    get_pool(state, pool_id)
    lst = _user_deposits(state, user, pool_id)
    try:
        idx = int(deposit_index)
    except Exception:
        raise WrongDeposit("deposit_index_not_int", {"deposit_index": repr(deposit_index)})
    if idx < 0 or idx >= len(lst):
        raise WrongDeposit(
            "unknown_deposit",
            {"user": user, "pool_id": int(pool_id), "deposit_index": idx, "deposit_count": len(lst)},
        )
    return lst[idx]


def _debts(amount: int, acc: int, bonus_acc: int) -> Tuple[int, int]:
    return mul_div(amount, acc, ACC_PRECISION), mul_div(amount, bonus_acc, ACC_PRECISION)


def _pending_parts(state: Json, dep: Json, acc: int, bonus_acc: int) -> Tuple[int, int]:
    """(block_part, bonus_part) owed to a deposit at the given accumulator values.

    The lock multiplier scales only the block-emission part. Each part is
    clamped at zero so an admin-lowered accumulator never yields a negative
    figure.
    """
    if bool(dep.get("finished", False)):
        return 0, 0
    amount = _as_int(dep.get("amount"), 0)
    if amount == 0:
        return 0, 0
    owed_block, owed_bonus = _debts(amount, acc, bonus_acc)
    raw_block = saturating_sub(owed_block, _as_int(dep.get("reward_debt"), 0))
    bonus = saturating_sub(owed_bonus, _as_int(dep.get("reward_debt_bonus"), 0))
    block = mul_div(raw_block, lock_multiplier(state, _as_int(dep.get("lock_id"), 0)), MULTIPLIER_DENOMINATOR)
    return block, bonus


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def pending_reward_breakdown(state: Json, pool_id: int, user: str, deposit_index: int, current_block: int) -> Tuple[int, int]:
    dep = get_deposit(state, user, pool_id, deposit_index)
    acc, bonus_acc = simulated_accumulators(state, pool_id, current_block)
    return _pending_parts(state, dep, acc, bonus_acc)


def pending_reward(state: Json, pool_id: int, user: str, deposit_index: int, current_block: int) -> int:
    block, bonus = pending_reward_breakdown(state, pool_id, user, deposit_index, current_block)
    return block + bonus


def pending_reward_by_lock(
    state: Json, pool_id: int, user: str, current_block: int, lock_id: Optional[int] = None
) -> int:
    """Sum of pending rewards over a user's deposits in a pool, optionally for one lock id."""
    get_pool(state, pool_id)
    acc, bonus_acc = simulated_accumulators(state, pool_id, current_block)
    total = 0
    for dep in _user_deposits(state, user, pool_id):
        if lock_id is not None and _as_int(dep.get("lock_id"), 0) != int(lock_id):
            continue
        block, bonus = _pending_parts(state, dep, acc, bonus_acc)
        total += block + bonus
    return total


def pending_reward_total(state: Json, pool_id: int, user: str, current_block: int) -> int:
    return pending_reward_by_lock(state, pool_id, user, current_block, None)


def user_deposits(state: Json, user: str, pool_id: int) -> List[Json]:
    get_pool(state, pool_id)
    return [dict(d) for d in _user_deposits(state, user, pool_id)]


def user_info(state: Json, user: str, pool_id: int) -> Json:
    get_pool(state, pool_id)
    agg = ((state.get("users") or {}).get(user) or {}).get(str(int(pool_id)))
    if not isinstance(agg, dict):
        return {"total_deposit_amount": 0, "deposit_count": 0, "total_claim": 0}
    return dict(agg)


def get_user_last_deposit_id(state: Json, user: str, pool_id: int) -> int:
    """Index of the user's newest deposit in the pool, or -1 when there is none."""
    get_pool(state, pool_id)
    return len(_user_deposits(state, user, pool_id)) - 1


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def _append_deposit(
    state: Json,
    user: str,
    pool_id: int,
    pool: Json,
    *,
    amount: int,
    lock_id: int,
    deposit_timestamp: int,
    withdrawal_timestamp: int,
) -> int:
    debt, debt_bonus = _debts(
        amount,
        _as_int(pool.get("acc_reward_per_share"), 0),
        _as_int(pool.get("bonus_acc_reward_per_share"), 0),
    )
    lst = _user_deposits(state, user, pool_id, create=True)
    lst.append(
        {
            "amount": amount,
            "lock_id": int(lock_id),
            "deposit_timestamp": int(deposit_timestamp),
            "withdrawal_timestamp": int(withdrawal_timestamp),
            "reward_debt": debt,
            "reward_debt_bonus": debt_bonus,
            "total_claimed": 0,
            "finished": False,
        }
    )
    add_shares(pool, lock_id, amount)

    agg = _user_agg(state, user, pool_id)
    agg["total_deposit_amount"] = checked_add(_as_int(agg.get("total_deposit_amount"), 0), amount)
    agg["deposit_count"] = _as_int(agg.get("deposit_count"), 0) + 1
    return len(lst) - 1


def open_deposit(
    state: Json,
    user: str,
    pool_id: int,
    *,
    lock_id: int,
    gross_amount: int,
    current_block: int,
    now: int,
) -> Json:
    pool = get_pool(state, pool_id)
    gross = as_uint(gross_amount, field="amount")
    if gross == 0:
        raise InvalidAmount("zero_amount", {"pool_id": int(pool_id)})

    duration = require_lock_period(state, lock_id)

    net, fee = split_fee(gross, _as_int(pool["fee"].get("deposit_fee_bps"), 0))
    if net == 0:
        raise InvalidAmount("zero_amount_after_fee", {"pool_id": int(pool_id), "amount": gross, "fee": fee})
    min_stake = _as_int(pool.get("min_stake_amount"), 0)
    if net < min_stake:
        raise InvalidAmount("below_min_stake_amount", {"pool_id": int(pool_id), "net_amount": net, "min_stake_amount": min_stake})

    settle(state, pool_id, current_block)

    idx = _append_deposit(
        state,
        user,
        pool_id,
        pool,
        amount=net,
        lock_id=lock_id,
        deposit_timestamp=now,
        withdrawal_timestamp=checked_add(int(now), duration),
    )

    transfers: List[Json] = [{"kind": "in", "token": pool["base_token"], "account": user, "amount": gross}]
    if fee:
        record_fee_burn(pool, "base", fee)
        transfers.append({"kind": "burn", "token": pool["base_token"], "account": user, "amount": fee})

    return {"deposit_index": idx, "amount": net, "fee": fee, "gross_amount": gross, "transfers": transfers}


def open_external_deposit(
    state: Json,
    user: str,
    pool_id: int,
    *,
    lock_id: int,
    amount: int,
    deposit_timestamp: int,
    withdrawal_timestamp: int,
    current_block: int,
) -> Json:
    """Deposit created by the vesting collaborator: no fee, explicit lock window.

    The collaborator delivers the tokens itself, so no transfer is emitted.
    """
    pool = get_pool(state, pool_id)
    amt = as_uint(amount, field="amount")
    if amt == 0:
        raise InvalidAmount("zero_amount", {"pool_id": int(pool_id)})

    settle(state, pool_id, current_block)

    idx = _append_deposit(
        state,
        user,
        pool_id,
        pool,
        amount=amt,
        lock_id=lock_id,
        deposit_timestamp=deposit_timestamp,
        withdrawal_timestamp=withdrawal_timestamp,
    )
    return {"deposit_index": idx, "amount": amt, "fee": 0, "transfers": []}


def _pay_reward(state: Json, user: str, pool_id: int, pool: Json, dep: Json, *, claim_fee_bps: int) -> Tuple[int, int, List[Json]]:
    """Pay out whatever the (already settled) deposit is owed and reset its debts.

    Returns (net_paid, fee, transfers).
    """
    acc = _as_int(pool.get("acc_reward_per_share"), 0)
    bonus_acc = _as_int(pool.get("bonus_acc_reward_per_share"), 0)
    block, bonus = _pending_parts(state, dep, acc, bonus_acc)
    gross = checked_add(block, bonus)

    amount = _as_int(dep.get("amount"), 0)
    dep["reward_debt"], dep["reward_debt_bonus"] = _debts(amount, acc, bonus_acc)

    if gross == 0:
        return 0, 0, []

    net, fee = split_fee(gross, claim_fee_bps)
    dep["total_claimed"] = checked_add(_as_int(dep.get("total_claimed"), 0), net)
    agg = _user_agg(state, user, pool_id)
    agg["total_claim"] = checked_add(_as_int(agg.get("total_claim"), 0), net)
    pool["rewards_released_total"] = checked_add(_as_int(pool.get("rewards_released_total"), 0), gross)

    transfers: List[Json] = []
    if net:
        transfers.append({"kind": "out", "token": pool["reward_token"], "account": user, "amount": net})
    if fee:
        record_fee_burn(pool, "reward", fee)
        transfers.append({"kind": "burn", "token": pool["reward_token"], "account": user, "amount": fee})
    return net, fee, transfers


def _require_live(dep: Json, pool_id: int, deposit_index: int) -> None:
    if bool(dep.get("finished", False)):
        raise InvalidAmount("deposit_finished", {"pool_id": int(pool_id), "deposit_index": int(deposit_index)})


def claim(state: Json, user: str, pool_id: int, deposit_index: int, *, current_block: int) -> Json:
    """Pay a deposit's pending reward net of the claim fee. Zero pending is a no-op claim."""
    dep = get_deposit(state, user, pool_id, deposit_index)
    _require_live(dep, pool_id, deposit_index)

    pool = settle(state, pool_id, current_block)
    net, fee, transfers = _pay_reward(
        state, user, pool_id, pool, dep, claim_fee_bps=_as_int(pool["fee"].get("claim_fee_bps"), 0)
    )
    return {"deposit_index": int(deposit_index), "reward": net, "fee": fee, "transfers": transfers}


def claim_many(state: Json, user: str, pool_id: int, *, current_block: int, lock_id: Optional[int] = None) -> Json:
    """Claim every live deposit of a user in a pool, optionally only those on one lock id."""
    pool = settle(state, pool_id, current_block)
    fee_bps = _as_int(pool["fee"].get("claim_fee_bps"), 0)

    total_net = 0
    total_fee = 0
    claimed: List[int] = []
    transfers: List[Json] = []
    for idx, dep in enumerate(_user_deposits(state, user, pool_id)):
        if bool(dep.get("finished", False)):
            continue
        if lock_id is not None and _as_int(dep.get("lock_id"), 0) != int(lock_id):
            continue
        net, fee, tr = _pay_reward(state, user, pool_id, pool, dep, claim_fee_bps=fee_bps)
        total_net += net
        total_fee += fee
        claimed.append(idx)
        transfers.extend(tr)

    return {"deposit_indexes": claimed, "reward": total_net, "fee": total_fee, "transfers": _merge_transfers(transfers)}


def _merge_transfers(transfers: List[Json]) -> List[Json]:
    merged: Dict[Tuple[str, str, str], int] = {}
    order: List[Tuple[str, str, str]] = []
    for tr in transfers:
        key = (str(tr["kind"]), str(tr["token"]), str(tr["account"]))
        if key not in merged:
            order.append(key)
            merged[key] = 0
        merged[key] += int(tr["amount"])
    return [{"kind": k, "token": t, "account": a, "amount": merged[(k, t, a)]} for (k, t, a) in order]


def withdraw(state: Json, user: str, pool_id: int, deposit_index: int, *, current_block: int, now: int) -> Json:
    """Close a deposit after its lock expired: reward net of claim fee, principal net of withdraw fee."""
    dep = get_deposit(state, user, pool_id, deposit_index)
    _require_live(dep, pool_id, deposit_index)

    unlock_at = _as_int(dep.get("withdrawal_timestamp"), 0)
    if int(now) < unlock_at:
        raise PeriodNotEnded(
            "lock_not_expired",
            {"pool_id": int(pool_id), "deposit_index": int(deposit_index), "now": int(now), "withdrawal_timestamp": unlock_at},
        )

    pool = settle(state, pool_id, current_block)
    reward, reward_fee, transfers = _pay_reward(
        state, user, pool_id, pool, dep, claim_fee_bps=_as_int(pool["fee"].get("claim_fee_bps"), 0)
    )

    principal = _as_int(dep.get("amount"), 0)
    net_principal, principal_fee = split_fee(principal, _as_int(pool["fee"].get("withdraw_fee_bps"), 0))

    remove_shares(pool, _as_int(dep.get("lock_id"), 0), principal)
    agg = _user_agg(state, user, pool_id)
    agg["total_deposit_amount"] = checked_sub(_as_int(agg.get("total_deposit_amount"), 0), principal)

    dep["amount"] = 0
    dep["reward_debt"] = 0
    dep["reward_debt_bonus"] = 0
    dep["finished"] = True

    if net_principal:
        transfers.append({"kind": "out", "token": pool["base_token"], "account": user, "amount": net_principal})
    if principal_fee:
        record_fee_burn(pool, "base", principal_fee)
        transfers.append({"kind": "burn", "token": pool["base_token"], "account": user, "amount": principal_fee})

    return {
        "deposit_index": int(deposit_index),
        "principal": principal,
        "principal_paid": net_principal,
        "withdraw_fee": principal_fee,
        "reward": reward,
        "claim_fee": reward_fee,
        "transfers": transfers,
    }


def withdraw_partial(state: Json, user: str, pool_id: int, deposit_index: int, amount: int, *, current_block: int) -> Json:
    """Vesting-controlled unlock of part of a deposit.

    Lock expiry is not checked and no fees are taken: the vesting schedule,
    not the lock table, governs this path.
    """
    dep = get_deposit(state, user, pool_id, deposit_index)
    _require_live(dep, pool_id, deposit_index)

    amt = as_uint(amount, field="amount")
    current = _as_int(dep.get("amount"), 0)
    if amt == 0 or amt > current:
        raise InvalidAmount(
            "invalid_withdraw_amount",
            {"pool_id": int(pool_id), "deposit_index": int(deposit_index), "amount": amt, "available": current},
        )

    pool = settle(state, pool_id, current_block)
    reward, _fee, transfers = _pay_reward(state, user, pool_id, pool, dep, claim_fee_bps=0)

    remaining = checked_sub(current, amt)
    remove_shares(pool, _as_int(dep.get("lock_id"), 0), amt)
    agg = _user_agg(state, user, pool_id)
    agg["total_deposit_amount"] = checked_sub(_as_int(agg.get("total_deposit_amount"), 0), amt)

    dep["amount"] = remaining
    dep["reward_debt"], dep["reward_debt_bonus"] = _debts(
        remaining,
        _as_int(pool.get("acc_reward_per_share"), 0),
        _as_int(pool.get("bonus_acc_reward_per_share"), 0),
    )
    if remaining == 0:
        dep["finished"] = True

    transfers.append({"kind": "out", "token": pool["base_token"], "account": user, "amount": amt})
    return {
        "deposit_index": int(deposit_index),
        "amount": amt,
        "remaining": remaining,
        "finished": remaining == 0,
        "reward": reward,
        "transfers": transfers,
    }


__all__ = [
    "get_deposit",
    "pending_reward_breakdown",
    "pending_reward",
    "pending_reward_by_lock",
    "pending_reward_total",
    "user_deposits",
    "user_info",
    "get_user_last_deposit_id",
    "open_deposit",
    "open_external_deposit",
    "claim",
    "claim_many",
    "withdraw",
    "withdraw_partial",
]
