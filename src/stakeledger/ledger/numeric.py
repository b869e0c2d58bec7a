# src/stakeledger/ledger/numeric.py
from __future__ import annotations

"""Checked uint256 arithmetic.

Python ints never wrap, so the bound has to be enforced explicitly: any
result that leaves [0, UINT256_MAX] raises ArithmeticOverflow instead of
being silently stored.
"""

from typing import Any

from stakeledger.ledger.constants import UINT256_MAX
from stakeledger.runtime.errors import ArithmeticOverflow


def as_uint(v: Any, *, field: str = "value") -> int:
    """Coerce to int and check the uint256 range."""
    if isinstance(v, bool):
        raise ArithmeticOverflow("not_an_integer", {"field": field, "value": v})
    try:
        i = int(v)
    except Exception:
        raise ArithmeticOverflow("not_an_integer", {"field": field, "value": repr(v)})
    if i < 0 or i > UINT256_MAX:
        raise ArithmeticOverflow("out_of_range", {"field": field, "value": i})
    return i


def checked_add(a: int, b: int) -> int:
    out = int(a) + int(b)
    if out > UINT256_MAX:
        raise ArithmeticOverflow("add_overflow", {"a": int(a), "b": int(b)})
    return out


def checked_sub(a: int, b: int) -> int:
    out = int(a) - int(b)
    if out < 0:
        raise ArithmeticOverflow("sub_underflow", {"a": int(a), "b": int(b)})
    return out


def checked_mul(a: int, b: int) -> int:
    out = int(a) * int(b)
    if out > UINT256_MAX:
        raise ArithmeticOverflow("mul_overflow", {"a": int(a), "b": int(b)})
    return out


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator); the intermediate product must fit uint256."""
    d = int(denominator)
    if d <= 0:
        raise ArithmeticOverflow("division_by_zero", {"denominator": d})
    return checked_mul(a, b) // d


def saturating_sub(a: int, b: int) -> int:
    """max(a - b, 0). Used only for read-side pending-reward figures."""
    out = int(a) - int(b)
    return out if out > 0 else 0


__all__ = ["as_uint", "checked_add", "checked_sub", "checked_mul", "mul_div", "saturating_sub"]
