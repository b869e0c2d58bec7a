# src/stakeledger/ledger/pools.py
from __future__ import annotations

"""Pool registry and block-emission accrual.

Pools live in an append-only list; a pool id is its index and is never reused
or reindexed, because deposits and external records refer to it by integer.

Settlement advances the block accumulator:

  acc_reward_per_share += elapsed_blocks * reward_per_block * 1e18 // total_shares

With no shares staked, the interval's emission is dropped rather than
carried forward (emission, not backlog).
"""

from typing import Any, Dict, List, Tuple

from stakeledger.ledger.constants import ACC_PRECISION
from stakeledger.ledger.fees import normalize_fee_config
from stakeledger.ledger.numeric import as_uint, checked_add, checked_mul, checked_sub, mul_div
from stakeledger.runtime.errors import PoolAlreadyExists, WrongPool

Json = Dict[str, Any]


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return int(default)


def ensure_pools(state: Json) -> List[Json]:
    pools = state.get("pools")
    if not isinstance(pools, list):
        pools = []
        state["pools"] = pools
    return pools


def ensure_rewards_config(state: Json) -> Json:
    rc = state.get("rewards_config")
    if not isinstance(rc, dict):
        rc = {}
        state["rewards_config"] = rc
    rc.setdefault("reward_per_block", 0)
    rc.setdefault("update_blocks_interval", 0)
    rc.setdefault("last_update_block_num", 0)
    return rc


def reward_per_block(state: Json) -> int:
    return _as_int(ensure_rewards_config(state).get("reward_per_block"), 0)


def pool_count(state: Json) -> int:
    pools = state.get("pools")
    return len(pools) if isinstance(pools, list) else 0


def get_pool(state: Json, pool_id: Any) -> Json:
    """Return the live pool dict. Unknown ids raise WrongPool."""
    pools = state.get("pools")
    try:
        pid = int(pool_id)
    except Exception:
        raise WrongPool("pool_id_not_int", {"pool_id": repr(pool_id)})
    if isinstance(pool_id, bool) or not isinstance(pools, list) or pid < 0 or pid >= len(pools):
        raise WrongPool("unknown_pool", {"pool_id": pid, "pool_count": pool_count(state)})
    return pools[pid]


def add_pool(
    state: Json,
    *,
    base_token: str,
    reward_token: str,
    last_reward_block: int,
    acc_reward_per_share: int,
    fee: Any,
    min_stake_amount: int = 0,
) -> int:
    pools = ensure_pools(state)
    base = str(base_token).strip()
    reward = str(reward_token).strip()

    unique = bool((state.get("params") or {}).get("unique_pool_pairs", False))
    if unique:
        for pid, p in enumerate(pools):
            if p.get("base_token") == base and p.get("reward_token") == reward:
                raise PoolAlreadyExists("pair_already_registered", {"pool_id": pid, "base_token": base, "reward_token": reward})

    pools.append(
        {
            "base_token": base,
            "reward_token": reward,
            "total_shares": 0,
            "last_reward_block": as_uint(last_reward_block, field="last_reward_block"),
            "acc_reward_per_share": as_uint(acc_reward_per_share, field="acc_reward_per_share"),
            "bonus_rewards_amount": 0,
            "bonus_acc_reward_per_share": 0,
            "fee": normalize_fee_config(fee),
            "min_stake_amount": as_uint(min_stake_amount, field="min_stake_amount"),
            "tvl_by_lock": {},
            "rewards_released_total": 0,
            "fees_burned": {"base": 0, "reward": 0},
        }
    )
    return len(pools) - 1


def _accrued_acc(pool: Json, current_block: int, rpb: int) -> int:
    """Block accumulator value at current_block, without mutating the pool."""
    acc = _as_int(pool.get("acc_reward_per_share"), 0)
    last = _as_int(pool.get("last_reward_block"), 0)
    shares = _as_int(pool.get("total_shares"), 0)
    if current_block <= last or shares == 0:
        return acc
    elapsed = current_block - last
    reward = checked_mul(elapsed, rpb)
    return checked_add(acc, mul_div(reward, ACC_PRECISION, shares))


def settle(state: Json, pool_id: int, current_block: int) -> Json:
    """Advance the pool's block accumulator to current_block. Idempotent per block."""
    pool = get_pool(state, pool_id)
    blk = as_uint(current_block, field="current_block")
    last = _as_int(pool.get("last_reward_block"), 0)
    if blk <= last:
        return pool

    if _as_int(pool.get("total_shares"), 0) == 0:
        pool["last_reward_block"] = blk
        return pool

    pool["acc_reward_per_share"] = _accrued_acc(pool, blk, reward_per_block(state))
    pool["last_reward_block"] = blk
    return pool


def settle_all(state: Json, current_block: int) -> None:
    for pid in range(pool_count(state)):
        settle(state, pid, current_block)


def simulated_accumulators(state: Json, pool_id: int, current_block: int) -> Tuple[int, int]:
    """(acc_reward_per_share, bonus_acc_reward_per_share) as settle() would leave them."""
    pool = get_pool(state, pool_id)
    acc = _accrued_acc(pool, int(current_block), reward_per_block(state))
    return acc, _as_int(pool.get("bonus_acc_reward_per_share"), 0)


def set_reward_configuration(state: Json, *, reward_per_block: int, update_blocks_interval: int, current_block: int) -> Json:
    """Install a new emission rate effective from current_block.

    Every pool is settled at the old rate first, so blocks already elapsed are
    never repriced at the new one.
    """
    rpb = as_uint(reward_per_block, field="reward_per_block")
    interval = as_uint(update_blocks_interval, field="update_blocks_interval")
    blk = as_uint(current_block, field="current_block")

    settle_all(state, blk)

    rc = ensure_rewards_config(state)
    rc["reward_per_block"] = rpb
    rc["update_blocks_interval"] = interval
    rc["last_update_block_num"] = blk
    return dict(rc)


def get_rewards_configuration(state: Json) -> Json:
    rc = state.get("rewards_config") if isinstance(state.get("rewards_config"), dict) else {}
    last = _as_int(rc.get("last_update_block_num"), 0)
    interval = _as_int(rc.get("update_blocks_interval"), 0)
    return {
        "reward_per_block": _as_int(rc.get("reward_per_block"), 0),
        "update_blocks_interval": interval,
        "last_update_block_num": last,
        "next_update_block": last + interval,
    }


def set_pool_info(state: Json, pool_id: int, *, last_reward_block: int, acc_reward_per_share: int) -> Json:
    pool = get_pool(state, pool_id)
    pool["last_reward_block"] = as_uint(last_reward_block, field="last_reward_block")
    pool["acc_reward_per_share"] = as_uint(acc_reward_per_share, field="acc_reward_per_share")
    return pool


def set_pool_fee(state: Json, pool_id: int, fee: Any) -> Json:
    pool = get_pool(state, pool_id)
    pool["fee"] = normalize_fee_config(fee)
    return pool


def add_shares(pool: Json, lock_id: int, amount: int) -> None:
    pool["total_shares"] = checked_add(_as_int(pool.get("total_shares"), 0), amount)
    tvl = pool.setdefault("tvl_by_lock", {})
    key = str(int(lock_id))
    tvl[key] = checked_add(_as_int(tvl.get(key), 0), amount)


def remove_shares(pool: Json, lock_id: int, amount: int) -> None:
    pool["total_shares"] = checked_sub(_as_int(pool.get("total_shares"), 0), amount)
    tvl = pool.setdefault("tvl_by_lock", {})
    key = str(int(lock_id))
    tvl[key] = checked_sub(_as_int(tvl.get(key), 0), amount)


def tvl(state: Json, pool_id: int, lock_id: int) -> int:
    pool = get_pool(state, pool_id)
    by_lock = pool.get("tvl_by_lock") if isinstance(pool.get("tvl_by_lock"), dict) else {}
    return _as_int(by_lock.get(str(int(lock_id))), 0)


def record_fee_burn(pool: Json, side: str, amount: int) -> None:
    burned = pool.setdefault("fees_burned", {"base": 0, "reward": 0})
    burned[side] = checked_add(_as_int(burned.get(side), 0), amount)


__all__ = [
    "ensure_pools",
    "ensure_rewards_config",
    "reward_per_block",
    "pool_count",
    "get_pool",
    "add_pool",
    "settle",
    "settle_all",
    "simulated_accumulators",
    "set_reward_configuration",
    "get_rewards_configuration",
    "set_pool_info",
    "set_pool_fee",
    "add_shares",
    "remove_shares",
    "tvl",
    "record_fee_burn",
]
