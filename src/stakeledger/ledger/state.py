from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Any, Dict, List


Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class LedgerView:
    """
    Immutable read-only copy of the ledger state, handed to reporting code and
    off-chain consumers so they never hold a reference into live state.
    """

    pools: List[Json] = field(default_factory=list)
    deposits: Dict[str, Any] = field(default_factory=dict)
    users: Dict[str, Any] = field(default_factory=dict)
    lock_periods: Dict[str, Any] = field(default_factory=dict)
    rewards_config: Dict[str, Any] = field(default_factory=dict)
    roles: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)

    # clock markers as of the last applied call
    height: int = 0
    time: int = 0

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "LedgerView":
        def _d(key: str) -> Dict[str, Any]:
            v = state.get(key)
            return copy.deepcopy(v) if isinstance(v, dict) else {}

        pools = state.get("pools")
        return cls(
            pools=copy.deepcopy(pools) if isinstance(pools, list) else [],
            deposits=_d("deposits"),
            users=_d("users"),
            lock_periods=_d("lock_periods"),
            rewards_config=_d("rewards_config"),
            roles=_d("roles"),
            params=_d("params"),
            height=int(state.get("height", 0) or 0),
            time=int(state.get("time", 0) or 0),
        )

    def to_ledger(self) -> Dict[str, Any]:
        return {
            "pools": copy.deepcopy(self.pools),
            "deposits": copy.deepcopy(self.deposits),
            "users": copy.deepcopy(self.users),
            "lock_periods": copy.deepcopy(self.lock_periods),
            "rewards_config": copy.deepcopy(self.rewards_config),
            "roles": copy.deepcopy(self.roles),
            "params": copy.deepcopy(self.params),
            "height": int(self.height),
            "time": int(self.time),
        }

    @property
    def pool_count(self) -> int:
        return len(self.pools)

    def get_pool(self, pool_id: int) -> Json:
        try:
            p = self.pools[int(pool_id)]
        except Exception:
            return {}
        return p if isinstance(p, dict) and int(pool_id) >= 0 else {}

    def get_deposits(self, user: str, pool_id: int) -> List[Json]:
        by_pool = self.deposits.get(user)
        if not isinstance(by_pool, dict):
            return []
        lst = by_pool.get(str(int(pool_id)))
        return lst if isinstance(lst, list) else []

    def depositors(self, pool_id: int) -> List[str]:
        """Users holding at least one live deposit in the pool, sorted."""
        out: List[str] = []
        for user in sorted(self.deposits.keys()):
            for dep in self.get_deposits(user, pool_id):
                if isinstance(dep, dict) and not bool(dep.get("finished", False)):
                    out.append(user)
                    break
        return out

    def get_role(self, role: str) -> str:
        v = self.roles.get(role)
        return str(v).strip() if v is not None else ""

    def get_param(self, key: str, default: Any = None) -> Any:
        try:
            return self.params.get(key, default)
        except Exception:
            return default
