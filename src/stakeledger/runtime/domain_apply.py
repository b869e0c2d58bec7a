# src/stakeledger/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying ledger call envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Optional

from stakeledger.runtime.domain_dispatch import apply_tx
from stakeledger.runtime.errors import LedgerError
from stakeledger.runtime.gates import Authorizer
from stakeledger.runtime.state_invariants import check_ledger_invariants
from stakeledger.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]


def apply_tx_atomic(
    state: Json,
    env: Any,
    *,
    authorizer: Optional[Authorizer] = None,
    block: Optional[int] = None,
    now: Optional[int] = None,
    check_invariants: bool = False,
    before_commit: Optional[Callable[[Json, Json], None]] = None,
) -> Json:
    """Apply a call with fail-atomic semantics.

    On success:
      - state is updated as if apply_tx() ran directly.

    On any error (apply, invariant check, or before_commit hook):
      - state remains unchanged.

    `block` / `now` stamp the clock readings onto the working copy so every
    applier sees the same height and time. `before_commit(snapshot, meta)` runs
    after apply but before the commit; the engine uses it to execute token
    transfers so a refused transfer also rejects the call.
    """

    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    # Apply on a deep copy to guarantee atomicity.
    snapshot = copy.deepcopy(state)
    if block is not None:
        snapshot["height"] = int(block)
    if now is not None:
        snapshot["time"] = int(now)

    meta = apply_tx(snapshot, env_norm, authorizer=authorizer)

    if check_invariants:
        check_ledger_invariants(snapshot)

    if before_commit is not None:
        before_commit(snapshot, meta)

    # Commit by replacing contents in-place so callers holding references
    # to `state` see the updated view.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["LedgerError", "apply_tx", "apply_tx_atomic", "Json"]
