# src/stakeledger/ledger/fees.py
from __future__ import annotations

from typing import Any, Dict, Tuple

from stakeledger.ledger.constants import FEE_DENOMINATOR, MAX_FEE_BPS
from stakeledger.ledger.numeric import as_uint, checked_sub, mul_div
from stakeledger.runtime.errors import InvalidAmount

Json = Dict[str, Any]

FEE_KEYS = ("deposit_fee_bps", "withdraw_fee_bps", "claim_fee_bps")


def compute_fee(amount: int, fee_bps: int) -> int:
    """Basis-point fee, floor-divided. fee <= amount whenever fee_bps <= 10_000."""
    return mul_div(as_uint(amount, field="amount"), as_uint(fee_bps, field="fee_bps"), FEE_DENOMINATOR)


def split_fee(amount: int, fee_bps: int) -> Tuple[int, int]:
    """Return (net, fee) for an amount."""
    fee = compute_fee(amount, fee_bps)
    return checked_sub(amount, fee), fee


def normalize_fee_config(raw: Any) -> Json:
    """Validate a fee config at configuration time.

    Missing keys default to 0. Any value above 10_000 bps is rejected so the
    fee can never exceed the amount it is taken from.
    """
    src = raw if isinstance(raw, dict) else {}
    out: Json = {}
    for k in FEE_KEYS:
        v = as_uint(src.get(k, 0) or 0, field=k)
        if v > MAX_FEE_BPS:
            raise InvalidAmount("fee_bps_above_denominator", {"field": k, "value": v, "max": MAX_FEE_BPS})
        out[k] = v
    return out


__all__ = ["FEE_KEYS", "compute_fee", "split_fee", "normalize_fee_config"]
