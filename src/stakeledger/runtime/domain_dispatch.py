# src/stakeledger/runtime/domain_dispatch.py

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Optional

from stakeledger.runtime.errors import InvalidPayload, LedgerError, TxUnimplemented
from stakeledger.runtime.gates import Authorizer, RoleAuthorizer
from stakeledger.runtime.state_invariants import ensure_state
from stakeledger.runtime.tx_schema import validate_payload
from stakeledger.runtime.tx_types import TxEnvelope

# Domain appliers (each returns Optional[Json]; returning None means "not claimed")
from stakeledger.runtime.apply.admin import apply_admin
from stakeledger.runtime.apply.bonus import apply_bonus
from stakeledger.runtime.apply.pools import apply_pools
from stakeledger.runtime.apply.staking import apply_staking

Json = Dict[str, Any]
ApplyFn = Callable[[Json, TxEnvelope, Authorizer], Optional[Json]]

_DEFAULT_AUTHORIZER = RoleAuthorizer()


def _get(env: Any, key: str, default: Any = None) -> Any:
    """Read a field from either a TxEnvelope-like object or a dict.

    Tests and tools pass raw dict envelopes directly into apply_tx(), while
    the engine passes a TxEnvelope object.
    """

    if isinstance(env, dict):
        return env.get(key, default)
    return getattr(env, key, default)


def _tx_type(env: Any) -> str:
    return str(_get(env, "tx_type", "") or "").strip().upper()


_APPLIERS: tuple[ApplyFn, ...] = (
    apply_pools,
    apply_admin,
    apply_staking,
    apply_bonus,
)


def apply_tx(state: Json, env: Any, *, authorizer: Optional[Authorizer] = None) -> Json:
    """Dispatch a TxEnvelope to the first domain applier that claims it.

    The payload is schema-validated first; appliers only ever see the
    normalized payload.
    """

    ensure_state(state)

    env_norm: Any = env
    if isinstance(env, dict):
        env_norm = TxEnvelope.from_json(env)

    t = _tx_type(env_norm)
    if not t:
        raise InvalidPayload("missing_tx_type", {"tx_type": t})

    env_norm = replace(env_norm, tx_type=t, payload=validate_payload(t, _get(env_norm, "payload", None)))
    auth = authorizer if authorizer is not None else _DEFAULT_AUTHORIZER

    for fn in _APPLIERS:
        try:
            out = fn(state, env_norm, auth)
        except LedgerError:
            raise
        except Exception as e:
            code = getattr(e, "code", None)
            reason = getattr(e, "reason", None)
            details = getattr(e, "details", None)

            if code is not None or reason is not None:
                raise LedgerError(
                    str(code or "domain_error"),
                    str(reason or type(e).__name__),
                    details if details is not None else {"tx_type": t, "domain": fn.__name__},
                ) from e

            raise LedgerError(
                "domain_error",
                type(e).__name__,
                {"tx_type": t, "domain": fn.__name__, "error": str(e)},
            ) from e

        if out is not None:
            out.setdefault("transfers", [])
            return out

    raise TxUnimplemented("tx_type_not_implemented", {"tx_type": t})


__all__ = ["apply_tx"]
