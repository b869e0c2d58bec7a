# src/stakeledger/runtime/apply/pools.py
from __future__ import annotations

"""Pool registry apply semantics (admin only).

Tx types:
- POOL_ADD
- POOL_INFO_SET
- POOL_FEE_SET
- REWARD_CONFIG_SET
"""

from typing import Any, Dict, Optional

from stakeledger.ledger import pools as registry
from stakeledger.runtime.gates import Authorizer, require_admin
from stakeledger.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]

POOLS_TX_TYPES = frozenset({"POOL_ADD", "POOL_INFO_SET", "POOL_FEE_SET", "REWARD_CONFIG_SET"})


def _height(state: Json) -> int:
    return int(state.get("height", 0) or 0)


def _apply_pool_add(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    pid = registry.add_pool(
        state,
        base_token=p["base_token"],
        reward_token=p["reward_token"],
        last_reward_block=p.get("last_reward_block", 0),
        acc_reward_per_share=p.get("acc_reward_per_share", 0),
        fee=p.get("fee") or {},
        min_stake_amount=p.get("min_stake_amount", 0),
    )
    return {"applied": "POOL_ADD", "pool_id": pid, "pool_count": registry.pool_count(state)}


def _apply_pool_info_set(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    pool = registry.set_pool_info(
        state,
        p["pool_id"],
        last_reward_block=p["last_reward_block"],
        acc_reward_per_share=p["acc_reward_per_share"],
    )
    return {
        "applied": "POOL_INFO_SET",
        "pool_id": int(p["pool_id"]),
        "last_reward_block": pool["last_reward_block"],
        "acc_reward_per_share": pool["acc_reward_per_share"],
    }


def _apply_pool_fee_set(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    pool = registry.set_pool_fee(state, p["pool_id"], p["fee"])
    return {"applied": "POOL_FEE_SET", "pool_id": int(p["pool_id"]), "fee": dict(pool["fee"])}


def _apply_reward_config_set(state: Json, env: TxEnvelope) -> Json:
    p = env.payload
    rc = registry.set_reward_configuration(
        state,
        reward_per_block=p["reward_per_block"],
        update_blocks_interval=p.get("update_blocks_interval", 0),
        current_block=_height(state),
    )
    return {"applied": "REWARD_CONFIG_SET", **rc}


def apply_pools(state: Json, env: TxEnvelope, authorizer: Authorizer) -> Optional[Json]:
    """Apply pool registry txs. Returns meta dict if handled; otherwise None."""
    t = str(env.tx_type or "").strip()
    if t not in POOLS_TX_TYPES:
        return None

    require_admin(state, env.signer, authorizer)

    if t == "POOL_ADD":
        return _apply_pool_add(state, env)
    if t == "POOL_INFO_SET":
        return _apply_pool_info_set(state, env)
    if t == "POOL_FEE_SET":
        return _apply_pool_fee_set(state, env)
    if t == "REWARD_CONFIG_SET":
        return _apply_reward_config_set(state, env)
    return None


__all__ = ["POOLS_TX_TYPES", "apply_pools"]
