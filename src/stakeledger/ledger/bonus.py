# src/stakeledger/ledger/bonus.py
from __future__ import annotations

"""Discrete reward injections spread pro-rata over current depositors.

An injection is folded into a second accumulator so no deposit record has to
be touched:

  bonus_acc_reward_per_share += amount * 1e18 // total_shares

The two accumulators are kept apart on purpose; each deposit snapshots both
with its own reward-debt field.
"""

from typing import Any, Dict

from stakeledger.ledger.constants import ACC_PRECISION
from stakeledger.ledger.numeric import as_uint, checked_add, mul_div
from stakeledger.ledger.pools import get_pool, settle
from stakeledger.runtime.errors import InvalidAmount

Json = Dict[str, Any]


def add_rewards(state: Json, pool_id: int, amount: int, current_block: int) -> Json:
    amt = as_uint(amount, field="amount")
    if amt == 0:
        raise InvalidAmount("zero_rewards", {"pool_id": int(pool_id)})

    pool = settle(state, pool_id, current_block)

    shares = int(pool.get("total_shares", 0) or 0)
    if shares == 0:
        raise InvalidAmount("no_shares_to_distribute_over", {"pool_id": int(pool_id), "amount": amt})

    delta = mul_div(amt, ACC_PRECISION, shares)
    pool["bonus_acc_reward_per_share"] = checked_add(int(pool.get("bonus_acc_reward_per_share", 0) or 0), delta)
    pool["bonus_rewards_amount"] = checked_add(int(pool.get("bonus_rewards_amount", 0) or 0), amt)

    return {
        "pool_id": int(pool_id),
        "amount": amt,
        "acc_delta": delta,
        "bonus_rewards_amount": pool["bonus_rewards_amount"],
        "bonus_acc_reward_per_share": pool["bonus_acc_reward_per_share"],
    }


def products_rewards_info(state: Json, pool_id: int) -> Json:
    pool = get_pool(state, pool_id)
    return {
        "bonus_rewards_amount": int(pool.get("bonus_rewards_amount", 0) or 0),
        "bonus_acc_reward_per_share": int(pool.get("bonus_acc_reward_per_share", 0) or 0),
    }


__all__ = ["add_rewards", "products_rewards_info"]
