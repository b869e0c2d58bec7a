# src/stakeledger/ledger/__init__.py
"""Pure accounting modules.

Everything here operates on the JSON-like ledger state dict and knows nothing
about callers, tokens or persistence. Authorization and atomicity live in
stakeledger.runtime.
"""

from __future__ import annotations

__all__ = [
    "bonus",
    "constants",
    "deposits",
    "fees",
    "lock_periods",
    "numeric",
    "pools",
    "state",
]
