from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class LedgerError(Exception):
    """Canonical error type for ledger apply and dispatch failures.

    `code` is the stable, machine-readable error kind callers branch on
    (e.g. retry later on PeriodNotEnded, fix the call on InvalidAmount).
    """

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class _KindError(LedgerError):
    CODE = "domain_error"

    def __init__(self, reason: str = "", details: Any | None = None) -> None:
        super().__init__(self.CODE, reason or self.CODE, details)


class WrongPool(_KindError):
    CODE = "WrongPool"


class WrongLockPeriod(_KindError):
    CODE = "WrongLockPeriod"


class WrongDeposit(_KindError):
    CODE = "WrongDeposit"


class InvalidAmount(_KindError):
    CODE = "InvalidAmount"


class InvalidPayload(_KindError):
    CODE = "InvalidPayload"


class PeriodNotEnded(_KindError):
    CODE = "PeriodNotEnded"


class NotAllowed(_KindError):
    CODE = "NotAllowed"


class NotAuthorized(_KindError):
    CODE = "NotAuthorized"


class ArithmeticOverflow(_KindError):
    CODE = "ArithmeticOverflow"


class EnforcedPause(_KindError):
    CODE = "EnforcedPause"


class PoolAlreadyExists(_KindError):
    CODE = "PoolAlreadyExists"


class InvariantViolation(_KindError):
    CODE = "InvariantViolation"


class TxUnimplemented(_KindError):
    CODE = "TxUnimplemented"


__all__ = [
    "LedgerError",
    "WrongPool",
    "WrongLockPeriod",
    "WrongDeposit",
    "InvalidAmount",
    "InvalidPayload",
    "PeriodNotEnded",
    "NotAllowed",
    "NotAuthorized",
    "ArithmeticOverflow",
    "EnforcedPause",
    "PoolAlreadyExists",
    "InvariantViolation",
    "TxUnimplemented",
]
