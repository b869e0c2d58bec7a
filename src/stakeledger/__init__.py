"""stakeledger: reward-accrual ledger shared by staking, freezing and farming pools."""

from __future__ import annotations

__version__ = "0.1.0"
