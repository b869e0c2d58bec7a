from __future__ import annotations

"""Ledger call payload schemas.

Every tx type has a strict model: unknown keys are rejected and integers are
not coerced from strings or bools. Apply-layer code still enforces semantics
(pool existence, lock ids, balances); these are shape checks run before any
state is touched.
"""

from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError, model_validator

from stakeledger.ledger.constants import ROLES
from stakeledger.runtime.errors import InvalidPayload, TxUnimplemented

Json = Dict[str, Any]


# ---------------------------------------------------------------------------
# Base Models
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Strict model: reject unknown keys and loose scalar coercion."""

    model_config = ConfigDict(extra="forbid")


class _EmptyPayload(_StrictModel):
    """Tx types that take no arguments."""


def _uint(**kw: Any) -> Any:
    # upper bound is enforced by the ledger (ArithmeticOverflow), not here
    return Field(ge=0, **kw)


class FeeConfig(_StrictModel):
    """Basis points; the 10_000 ceiling is checked by the fee engine."""

    deposit_fee_bps: StrictInt = Field(default=0, ge=0)
    withdraw_fee_bps: StrictInt = Field(default=0, ge=0)
    claim_fee_bps: StrictInt = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class PoolAddPayload(_StrictModel):
    base_token: StrictStr = Field(..., min_length=1)
    reward_token: StrictStr = Field(..., min_length=1)
    last_reward_block: StrictInt = _uint(default=0)
    acc_reward_per_share: StrictInt = _uint(default=0)
    fee: FeeConfig = Field(default_factory=FeeConfig)
    min_stake_amount: StrictInt = _uint(default=0)


class PoolInfoSetPayload(_StrictModel):
    pool_id: StrictInt = _uint()
    last_reward_block: StrictInt = _uint()
    acc_reward_per_share: StrictInt = _uint()


class PoolFeeSetPayload(_StrictModel):
    pool_id: StrictInt = _uint()
    fee: FeeConfig


class RewardConfigSetPayload(_StrictModel):
    reward_per_block: StrictInt = _uint()
    update_blocks_interval: StrictInt = _uint(default=0)


class LockPeriodSetPayload(_StrictModel):
    lock_id: StrictInt = _uint()
    duration: StrictInt = _uint()


class LockPeriodMultiplierSetPayload(_StrictModel):
    lock_id: StrictInt = _uint()
    multiplier: StrictInt = _uint()


class RoleSetPayload(_StrictModel):
    role: StrictStr
    address: StrictStr = Field(..., min_length=1)

    @model_validator(mode="after")
    def _known_role(self) -> "RoleSetPayload":
        if self.role not in ROLES:
            raise ValueError(f"unknown_role:{self.role}")
        return self


# ---------------------------------------------------------------------------
# Staking
# ---------------------------------------------------------------------------


class DepositPayload(_StrictModel):
    pool_id: StrictInt = _uint()
    lock_id: StrictInt = _uint()
    amount: StrictInt = _uint()


class DepositExternalPayload(_StrictModel):
    pool_id: StrictInt = _uint()
    user: StrictStr = Field(..., min_length=1)
    lock_id: StrictInt = _uint()
    amount: StrictInt = _uint()
    deposit_timestamp: StrictInt = _uint()
    withdrawal_timestamp: StrictInt = _uint()

    @model_validator(mode="after")
    def _window_ordered(self) -> "DepositExternalPayload":
        if self.withdrawal_timestamp < self.deposit_timestamp:
            raise ValueError("withdrawal_before_deposit")
        return self


class ClaimPayload(_StrictModel):
    pool_id: StrictInt = _uint()
    deposit_index: StrictInt = _uint()


class ClaimAllPayload(_StrictModel):
    pool_id: StrictInt = _uint()


class ClaimAllByLockPayload(_StrictModel):
    pool_id: StrictInt = _uint()
    lock_id: StrictInt = _uint()


class WithdrawPayload(_StrictModel):
    pool_id: StrictInt = _uint()
    deposit_index: StrictInt = _uint()


class WithdrawPartialPayload(_StrictModel):
    pool_id: StrictInt = _uint()
    user: StrictStr = Field(..., min_length=1)
    deposit_index: StrictInt = _uint()
    amount: StrictInt = _uint()


# ---------------------------------------------------------------------------
# Bonus
# ---------------------------------------------------------------------------


class RewardsAddPayload(_StrictModel):
    pool_id: StrictInt = _uint()
    amount: StrictInt = _uint()


Schema = Type[_StrictModel]

_SCHEMA_BY_TX_TYPE: Dict[str, Schema] = {
    "POOL_ADD": PoolAddPayload,
    "POOL_INFO_SET": PoolInfoSetPayload,
    "POOL_FEE_SET": PoolFeeSetPayload,
    "REWARD_CONFIG_SET": RewardConfigSetPayload,
    "LOCK_PERIOD_SET": LockPeriodSetPayload,
    "LOCK_PERIOD_MULTIPLIER_SET": LockPeriodMultiplierSetPayload,
    "ROLE_SET": RoleSetPayload,
    "LEDGER_PAUSE": _EmptyPayload,
    "LEDGER_UNPAUSE": _EmptyPayload,
    "DEPOSIT": DepositPayload,
    "DEPOSIT_EXTERNAL": DepositExternalPayload,
    "CLAIM": ClaimPayload,
    "CLAIM_ALL": ClaimAllPayload,
    "CLAIM_ALL_BY_LOCK": ClaimAllByLockPayload,
    "WITHDRAW": WithdrawPayload,
    "WITHDRAW_PARTIAL": WithdrawPartialPayload,
    "REWARDS_ADD": RewardsAddPayload,
}


def schema_for(tx_type: str) -> Optional[Schema]:
    t = str(tx_type or "").strip().upper()
    if not t:
        return None
    return _SCHEMA_BY_TX_TYPE.get(t)


def validate_payload(tx_type: str, payload: Any) -> Json:
    """Validate and normalize a payload; returns the model dump.

    Raises InvalidPayload on any shape mismatch and TxUnimplemented for an
    unknown tx type.
    """
    sch = schema_for(tx_type)
    if sch is None:
        raise TxUnimplemented("tx_type_not_implemented", {"tx_type": str(tx_type)})

    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidPayload("payload_must_be_object", {"tx_type": str(tx_type)})

    try:
        return sch.model_validate(payload).model_dump()
    except ValidationError as ve:
        raise InvalidPayload(
            "payload_schema_mismatch",
            {"tx_type": str(tx_type), "errors": ve.errors(include_url=False, include_context=False)},
        ) from ve


__all__ = ["FeeConfig", "schema_for", "validate_payload"]
