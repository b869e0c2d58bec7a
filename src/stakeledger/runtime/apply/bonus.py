# src/stakeledger/runtime/apply/bonus.py
from __future__ import annotations

"""Bonus reward injection (rewards distributor only).

REWARDS_ADD only credits the pool's bonus accumulator. The distributor is
expected to have delivered the reward tokens to ledger custody already, so no
transfer is emitted. Pausing the ledger does not block injections.
"""

from typing import Any, Dict, Optional

from stakeledger.ledger import bonus
from stakeledger.ledger.constants import ROLE_REWARDS_DISTRIBUTOR
from stakeledger.runtime.gates import Authorizer, require_role
from stakeledger.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]

BONUS_TX_TYPES = frozenset({"REWARDS_ADD"})


def apply_bonus(state: Json, env: TxEnvelope, authorizer: Authorizer) -> Optional[Json]:
    t = str(env.tx_type or "").strip()
    if t not in BONUS_TX_TYPES:
        return None

    require_role(state, env.signer, ROLE_REWARDS_DISTRIBUTOR, authorizer)

    p = env.payload
    meta = bonus.add_rewards(state, p["pool_id"], p["amount"], int(state.get("height", 0) or 0))
    return {"applied": "REWARDS_ADD", **meta, "transfers": []}


__all__ = ["BONUS_TX_TYPES", "apply_bonus"]
