# src/stakeledger/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module claims a subset of tx types and implements their deterministic
state transitions. Appliers receive an already schema-validated envelope and
return a meta dict, or None for tx types they do not own.

NOTE: Keep this package import-safe (no imports that require domain_dispatch).
"""

from __future__ import annotations

__all__ = [
    "admin",
    "pools",
    "staking",
    "bonus",
]
