# src/stakeledger/runtime/__init__.py
"""Runtime: envelopes, dispatch, atomic apply, collaborators and the engine façade.

Keep this package import-safe: ledger modules import runtime.errors, so nothing
here may import ledger modules at package import time.
"""
