from __future__ import annotations

from typing import Any, Dict, Protocol

from stakeledger.ledger.constants import ROLE_ADMIN, ROLES
from stakeledger.runtime.errors import EnforcedPause, NotAllowed, NotAuthorized

Json = Dict[str, Any]


class Authorizer(Protocol):
    def is_authorized(self, state: Json, caller: str, role: str) -> bool: ...


class RoleAuthorizer:
    """Resolve each role to the single address stored in state["roles"]."""

    def is_authorized(self, state: Json, caller: str, role: str) -> bool:
        roles = state.get("roles") if isinstance(state.get("roles"), dict) else {}
        holder = str(roles.get(role) or "").strip()
        return bool(holder) and holder == str(caller or "").strip()


def _as_str(v: Any) -> str:
    return str(v) if v is not None else ""


def require_admin(state: Json, caller: str, authorizer: Authorizer) -> None:
    if not authorizer.is_authorized(state, caller, ROLE_ADMIN):
        raise NotAuthorized("admin_required", {"caller": _as_str(caller)})


def require_role(state: Json, caller: str, role: str, authorizer: Authorizer) -> None:
    """Collaborator-only entry points fail NotAllowed, unlike admin ones."""
    if role not in ROLES:
        raise NotAllowed("unknown_role", {"role": _as_str(role)})
    if not authorizer.is_authorized(state, caller, role):
        raise NotAllowed("role_required", {"caller": _as_str(caller), "role": role})


def is_paused(state: Json) -> bool:
    params = state.get("params") if isinstance(state.get("params"), dict) else {}
    return bool(params.get("paused", False))


def require_not_paused(state: Json) -> None:
    if is_paused(state):
        raise EnforcedPause("ledger_paused")


__all__ = ["Authorizer", "RoleAuthorizer", "require_admin", "require_role", "is_paused", "require_not_paused"]
