# src/stakeledger/ledger/constants.py
from __future__ import annotations

"""Fixed-point and fee constants shared by every pool.

Scales:
- Accumulators (acc_reward_per_share, bonus_acc_reward_per_share): 1e18
- Fees: basis points, denominator 1e4 (10_000 == 100%)
- Lock multipliers: denominator 1e5 (100_000 == 1.0x)
"""

# Accumulator precision (reward per share is stored scaled by 1e18)
ACC_PRECISION: int = 10**18

# Fees
FEE_DENOMINATOR: int = 10**4
MAX_FEE_BPS: int = FEE_DENOMINATOR

# Lock tier multipliers
MULTIPLIER_DENOMINATOR: int = 10**5
DEFAULT_LOCK_MULTIPLIER: int = MULTIPLIER_DENOMINATOR

# Every stored quantity must fit an unsigned 256-bit word
UINT256_MAX: int = 2**256 - 1

# Role names resolved by the authorizer
ROLE_ADMIN: str = "admin"
ROLE_VESTING: str = "vesting"
ROLE_REWARDS_DISTRIBUTOR: str = "rewards_distributor"
ROLES = (ROLE_ADMIN, ROLE_VESTING, ROLE_REWARDS_DISTRIBUTOR)

# Current state layout version
STATE_VERSION: int = 1
