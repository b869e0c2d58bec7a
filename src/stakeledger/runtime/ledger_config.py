# src/stakeledger/runtime/ledger_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from stakeledger.ledger.constants import UINT256_MAX

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    if v is None:
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValueError(f"expected an integer; got: {v!r}") from None


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    return str(v).strip()


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"expected a boolean; got: {v!r}")


@dataclass(frozen=True)
class LedgerConfig:
    ledger_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # SQLite file for the snapshot + ops journal; empty keeps the ledger in memory only.
    db_path: str

    # Initial emission schedule, installed on a fresh ledger.
    reward_per_block: int
    update_blocks_interval: int

    strict_lock_ids: bool
    unique_pool_pairs: bool

    # None means "on unless mode == prod".
    check_invariants: Optional[bool]

    log_level: str

    # SystemClock used by from_env: block = (now - genesis_ts) // block_time_s.
    genesis_ts: int
    block_time_s: int

    @property
    def invariants_enabled(self) -> bool:
        if self.check_invariants is None:
            return str(self.mode).strip().lower() != "prod"
        return bool(self.check_invariants)


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_ledger_config(cfg: LedgerConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.ledger_id, str) or not cfg.ledger_id.strip():
        raise ValueError("ledger_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    for name in ("reward_per_block", "update_blocks_interval"):
        v = getattr(cfg, name)
        if isinstance(v, bool) or not isinstance(v, int) or v < 0 or v > UINT256_MAX:
            raise ValueError(f"{name} must be an integer in [0, 2**256-1]; got: {v!r}")

    if str(cfg.log_level or "").strip().upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {_ALLOWED_LOG_LEVELS}; got: {cfg.log_level!r}")

    if not isinstance(cfg.db_path, str):
        raise ValueError("db_path must be a string (empty for in-memory)")

    if isinstance(cfg.genesis_ts, bool) or not isinstance(cfg.genesis_ts, int) or cfg.genesis_ts < 0:
        raise ValueError(f"genesis_ts must be a non-negative integer; got: {cfg.genesis_ts!r}")
    if isinstance(cfg.block_time_s, bool) or not isinstance(cfg.block_time_s, int) or cfg.block_time_s <= 0:
        raise ValueError(f"block_time_s must be a positive integer; got: {cfg.block_time_s!r}")


def default_ledger_config() -> LedgerConfig:
    return LedgerConfig(
        ledger_id="stakeledger-dev",
        # Production-safe default: without an explicit config, SQLite runs with
        # synchronous=FULL and invariant checking is opt-in.
        mode="prod",
        db_path="",
        reward_per_block=0,
        update_blocks_interval=0,
        strict_lock_ids=True,
        unique_pool_pairs=False,
        check_invariants=None,
        log_level="INFO",
        genesis_ts=0,
        block_time_s=12,
    )


def _from_mapping(raw: Json, base: LedgerConfig) -> LedgerConfig:
    ci = raw.get("check_invariants", base.check_invariants)
    return LedgerConfig(
        ledger_id=_as_str(raw.get("ledger_id"), base.ledger_id),
        mode=_as_str(raw.get("mode"), base.mode).lower(),
        db_path=_as_str(raw.get("db_path"), base.db_path),
        reward_per_block=_as_int(raw.get("reward_per_block"), base.reward_per_block),
        update_blocks_interval=_as_int(raw.get("update_blocks_interval"), base.update_blocks_interval),
        strict_lock_ids=_as_bool(raw.get("strict_lock_ids"), base.strict_lock_ids),
        unique_pool_pairs=_as_bool(raw.get("unique_pool_pairs"), base.unique_pool_pairs),
        check_invariants=None if ci is None else _as_bool(ci, True),
        log_level=_as_str(raw.get("log_level"), base.log_level).upper(),
        genesis_ts=_as_int(raw.get("genesis_ts"), base.genesis_ts),
        block_time_s=_as_int(raw.get("block_time_s"), base.block_time_s),
    )


def read_ledger_config_file(path: str) -> LedgerConfig:
    """Read a JSON or YAML config file (by extension; .yaml/.yml are YAML)."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("ledger config must be a mapping")

    unknown = sorted(set(raw.keys()) - {f.name for f in fields(LedgerConfig)})
    if unknown:
        raise ValueError(f"unknown ledger config keys: {unknown}")

    cfg = _from_mapping(raw, default_ledger_config())
    validate_ledger_config(cfg)
    return cfg


def _env_overrides(base: LedgerConfig) -> LedgerConfig:
    raw: Json = {}
    for f in fields(LedgerConfig):
        v = os.environ.get(f"STAKELEDGER_{f.name.upper()}")
        if v is not None and str(v).strip() != "":
            raw[f.name] = v
    if not raw:
        return base
    merged = {f.name: getattr(base, f.name) for f in fields(LedgerConfig)}
    merged.update(raw)
    return _from_mapping(merged, base)


def load_ledger_config(*, config_path: Optional[str] = None) -> LedgerConfig:
    """Defaults, then the config file, then STAKELEDGER_* environment overrides."""
    p = config_path or os.environ.get("STAKELEDGER_CONFIG_PATH")
    cfg = read_ledger_config_file(p) if p else default_ledger_config()
    cfg = _env_overrides(cfg)
    validate_ledger_config(cfg)
    return cfg


def with_overrides(cfg: LedgerConfig, **kw: Any) -> LedgerConfig:
    out = replace(cfg, **kw)
    validate_ledger_config(out)
    return out


__all__ = [
    "LedgerConfig",
    "validate_ledger_config",
    "default_ledger_config",
    "read_ledger_config_file",
    "load_ledger_config",
    "with_overrides",
]
