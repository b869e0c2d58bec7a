from __future__ import annotations

"""Token movement boundary.

The ledger never moves tokens itself. Each successful call yields a list of
transfers that the engine hands to a TokenGateway; if the gateway refuses the
batch, the call is rolled back as a whole.

Transfer kinds:
  in    account -> ledger custody (deposit principal, gross of fee)
  out   ledger custody -> account (rewards, returned principal)
  burn  destroyed out of ledger custody (fees)
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Protocol, Tuple

from stakeledger.runtime.errors import InvalidAmount

LEDGER_HOLDER = "LEDGER"

TRANSFER_KINDS = ("in", "out", "burn")


@dataclass(frozen=True)
class Transfer:
    kind: str
    token: str
    account: str
    amount: int

    @staticmethod
    def from_json(j: Any) -> "Transfer":
        if isinstance(j, Transfer):
            return j
        kind = str(j.get("kind", "")).strip()
        if kind not in TRANSFER_KINDS:
            raise ValueError(f"unknown transfer kind: {kind!r}")
        return Transfer(
            kind=kind,
            token=str(j.get("token", "")),
            account=str(j.get("account", "")),
            amount=int(j.get("amount", 0)),
        )

    def to_json(self) -> Dict[str, Any]:
        return {"kind": self.kind, "token": self.token, "account": self.account, "amount": self.amount}


class TokenGateway(Protocol):
    def execute(self, transfers: List[Transfer]) -> None:
        """Apply the whole batch or none of it; raise on refusal."""
        ...


class InMemoryTokenGateway:
    """Balances per (token, holder), with the ledger's custody under LEDGER_HOLDER."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._balances: Dict[Tuple[str, str], int] = {}
        self._burned: Dict[str, int] = {}

    def mint(self, token: str, account: str, amount: int) -> None:
        if int(amount) < 0:
            raise ValueError("mint amount must be >= 0")
        with self._lock:
            key = (str(token), str(account))
            self._balances[key] = self._balances.get(key, 0) + int(amount)

    def balance_of(self, token: str, account: str) -> int:
        with self._lock:
            return int(self._balances.get((str(token), str(account)), 0))

    def burned(self, token: str) -> int:
        with self._lock:
            return int(self._burned.get(str(token), 0))

    def execute(self, transfers: Iterable[Any]) -> None:
        batch = [Transfer.from_json(t) for t in transfers]
        with self._lock:
            balances = dict(self._balances)
            burned = dict(self._burned)
            for tr in batch:
                if tr.amount < 0:
                    raise InvalidAmount("negative_transfer", tr.to_json())
                if tr.kind == "in":
                    src, dst = (tr.token, tr.account), (tr.token, LEDGER_HOLDER)
                elif tr.kind == "out":
                    src, dst = (tr.token, LEDGER_HOLDER), (tr.token, tr.account)
                else:
                    src, dst = (tr.token, LEDGER_HOLDER), None

                have = balances.get(src, 0)
                if have < tr.amount:
                    raise InvalidAmount(
                        "insufficient_balance",
                        {"token": tr.token, "holder": src[1], "have": have, "need": tr.amount},
                    )
                balances[src] = have - tr.amount
                if dst is None:
                    burned[tr.token] = burned.get(tr.token, 0) + tr.amount
                else:
                    balances[dst] = balances.get(dst, 0) + tr.amount

            self._balances = balances
            self._burned = burned


__all__ = ["LEDGER_HOLDER", "TRANSFER_KINDS", "Transfer", "TokenGateway", "InMemoryTokenGateway"]
