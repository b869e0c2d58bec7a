from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Dict, List, Optional

from stakeledger.env import load_dotenv_if_present
from stakeledger.ledger import bonus as bonus_ledger
from stakeledger.ledger import deposits as deposit_ledger
from stakeledger.ledger import lock_periods as lock_table
from stakeledger.ledger import pools as pool_registry
from stakeledger.ledger.constants import ROLE_ADMIN, ROLE_REWARDS_DISTRIBUTOR, ROLE_VESTING
from stakeledger.ledger.state import LedgerView
from stakeledger.runtime import metrics
from stakeledger.runtime.clock import Clock, ManualClock, SystemClock
from stakeledger.runtime.domain_apply import apply_tx_atomic
from stakeledger.runtime.errors import LedgerError
from stakeledger.runtime.gates import Authorizer, RoleAuthorizer
from stakeledger.runtime.ledger_config import LedgerConfig, default_ledger_config, load_ledger_config
from stakeledger.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from stakeledger.runtime.state_invariants import ensure_state
from stakeledger.runtime.structured_logging import configure_structured_logging, log_event
from stakeledger.runtime.tokens import InMemoryTokenGateway, TokenGateway, Transfer
from stakeledger.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]

log = logging.getLogger("stakeledger.engine")


def _now_ms() -> int:
    return int(time.time() * 1000)


class EngineError(RuntimeError):
    pass


class StakeLedger:
    """Serialized façade over the ledger state.

    Every mutating call becomes a TxEnvelope applied with fail-atomic
    semantics; token transfers run before the commit and a refused batch
    rejects the whole call. One re-entrant lock serializes writers and
    readers alike.
    """

    def __init__(
        self,
        *,
        admin: Optional[str] = None,
        clock: Optional[Clock] = None,
        gateway: Optional[TokenGateway] = None,
        authorizer: Optional[Authorizer] = None,
        config: Optional[LedgerConfig] = None,
        store: Optional[SqliteLedgerStore] = None,
        vesting: Optional[str] = None,
        rewards_distributor: Optional[str] = None,
    ) -> None:
        self.config = config if config is not None else default_ledger_config()
        self.clock: Clock = clock if clock is not None else ManualClock()
        self.gateway: TokenGateway = gateway if gateway is not None else InMemoryTokenGateway()
        self.authorizer: Authorizer = authorizer if authorizer is not None else RoleAuthorizer()
        self._lock = threading.RLock()

        if store is None and self.config.db_path:
            store = SqliteLedgerStore(db=SqliteDB(path=self.config.db_path))
        self._store = store

        if self._store is not None and self._store.exists():
            self.state = ensure_state(self._store.read())
            st_id = str(self.state.get("ledger_id") or "").strip()
            if st_id and st_id != self.config.ledger_id:
                raise EngineError(
                    f"ledger_id mismatch: db={st_id!r} config={self.config.ledger_id!r}. Refuse to start."
                )
            self._check_clock(int(self.clock.block_number()), int(self.clock.timestamp()))
            log_event(log, "ledger_restored", ledger_id=self.config.ledger_id, last_nonce=self.state.get("last_nonce"))
        else:
            if not str(admin or "").strip():
                raise EngineError("a fresh ledger needs an admin address")
            self.state = self._initial_state(str(admin).strip(), vesting=vesting, rewards_distributor=rewards_distributor)
            if self._store is not None:
                self._store.write(self.state)
            log_event(log, "ledger_created", ledger_id=self.config.ledger_id, admin=str(admin).strip())

        metrics.set_gauge("pools", pool_registry.pool_count(self.state))

    def _initial_state(self, admin: str, *, vesting: Optional[str], rewards_distributor: Optional[str]) -> Json:
        st: Json = ensure_state({})
        st["ledger_id"] = self.config.ledger_id
        st["created_ms"] = _now_ms()
        st["params"]["strict_lock_ids"] = bool(self.config.strict_lock_ids)
        st["params"]["unique_pool_pairs"] = bool(self.config.unique_pool_pairs)
        st["roles"][ROLE_ADMIN] = admin
        if vesting:
            st["roles"][ROLE_VESTING] = str(vesting).strip()
        if rewards_distributor:
            st["roles"][ROLE_REWARDS_DISTRIBUTOR] = str(rewards_distributor).strip()
        st["rewards_config"]["reward_per_block"] = int(self.config.reward_per_block)
        st["rewards_config"]["update_blocks_interval"] = int(self.config.update_blocks_interval)
        st["height"] = int(self.clock.block_number())
        st["time"] = int(self.clock.timestamp())
        st["rewards_config"]["last_update_block_num"] = st["height"]
        return st

    def _check_clock(self, block: int, now: int) -> None:
        """Block height and timestamp never move backwards relative to the state."""
        height = int(self.state.get("height", 0) or 0)
        ts = int(self.state.get("time", 0) or 0)
        if block < height or now < ts:
            log_event(
                log,
                "ledger_clock_behind",
                level=logging.ERROR,
                clock_block=block,
                clock_ts=now,
                height=height,
                time=ts,
            )
            raise EngineError(f"clock is behind the ledger: clock=({block}, {now}) state=({height}, {ts})")

    @classmethod
    def from_env(cls, **kw: Any) -> "StakeLedger":
        """Build a ledger from .env, the config file and STAKELEDGER_* overrides.

        Without an explicit `clock`, a SystemClock anchored at the configured
        genesis_ts/block_time_s is used.
        """
        load_dotenv_if_present()
        cfg = load_ledger_config()
        configure_structured_logging(cfg.log_level)
        if kw.get("clock") is None:
            kw["clock"] = SystemClock(genesis_ts=cfg.genesis_ts, block_time_s=cfg.block_time_s)
        return cls(config=cfg, **kw)

    # ----------------------------
    # Submission
    # ----------------------------

    def submit(self, tx_type: str, signer: str, payload: Optional[Json] = None) -> Json:
        """Apply one call atomically and return its meta dict."""
        with self._lock:
            nonce = int(self.state.get("last_nonce", 0) or 0) + 1
            env = TxEnvelope(tx_type=str(tx_type).strip().upper(), signer=str(signer or "").strip(), nonce=nonce, payload=dict(payload or {}))
            block = int(self.clock.block_number())
            now = int(self.clock.timestamp())
            self._check_clock(block, now)

            def _before_commit(snapshot: Json, meta: Json) -> None:
                snapshot["last_nonce"] = nonce
                transfers = [Transfer.from_json(t) for t in meta.get("transfers") or []]
                if transfers:
                    self.gateway.execute(transfers)

            try:
                meta = apply_tx_atomic(
                    self.state,
                    env,
                    authorizer=self.authorizer,
                    block=block,
                    now=now,
                    check_invariants=self.config.invariants_enabled,
                    before_commit=_before_commit,
                )
            except LedgerError as e:
                metrics.inc_counter("ops_rejected")
                metrics.inc_counter(f"ops_rejected_{e.code}")
                log_event(
                    log,
                    "ledger_op_rejected",
                    level=logging.WARNING,
                    tx_type=env.tx_type,
                    signer=env.signer,
                    code=e.code,
                    reason=e.reason,
                    details=e.details,
                    height=block,
                )
                raise
            except Exception as e:
                metrics.inc_counter("ops_rejected")
                metrics.inc_counter("ops_rejected_internal")
                log_event(
                    log,
                    "ledger_op_rejected",
                    level=logging.ERROR,
                    tx_type=env.tx_type,
                    signer=env.signer,
                    code="internal",
                    reason=type(e).__name__,
                    details=str(e),
                    height=block,
                )
                raise

            if self._store is not None:
                try:
                    self._store.commit(self.state, env.to_json(), meta)
                except Exception as e:
                    log_event(log, "ledger_persist_failed", level=logging.ERROR, nonce=nonce, tx_type=env.tx_type, error=str(e))
                    raise

            metrics.inc_counter("ops_applied")
            metrics.set_gauge("pools", pool_registry.pool_count(self.state))
            log_event(
                log,
                "ledger_op",
                tx_type=env.tx_type,
                signer=env.signer,
                nonce=nonce,
                height=block,
                ts=now,
                transfers=len(meta.get("transfers") or []),
            )
            return meta

    # ----------------------------
    # Admin
    # ----------------------------

    def add_pool(
        self,
        caller: str,
        *,
        base_token: str,
        reward_token: str,
        last_reward_block: int = 0,
        acc_reward_per_share: int = 0,
        fee: Optional[Json] = None,
        min_stake_amount: int = 0,
    ) -> int:
        meta = self.submit(
            "POOL_ADD",
            caller,
            {
                "base_token": base_token,
                "reward_token": reward_token,
                "last_reward_block": last_reward_block,
                "acc_reward_per_share": acc_reward_per_share,
                "fee": dict(fee or {}),
                "min_stake_amount": min_stake_amount,
            },
        )
        return int(meta["pool_id"])

    def set_pool_info(self, caller: str, pool_id: int, *, last_reward_block: int, acc_reward_per_share: int) -> Json:
        return self.submit(
            "POOL_INFO_SET",
            caller,
            {"pool_id": pool_id, "last_reward_block": last_reward_block, "acc_reward_per_share": acc_reward_per_share},
        )

    def set_pool_fee(self, caller: str, pool_id: int, fee: Json) -> Json:
        return self.submit("POOL_FEE_SET", caller, {"pool_id": pool_id, "fee": dict(fee)})

    def set_reward_configuration(self, caller: str, reward_per_block: int, update_blocks_interval: int = 0) -> Json:
        return self.submit(
            "REWARD_CONFIG_SET",
            caller,
            {"reward_per_block": reward_per_block, "update_blocks_interval": update_blocks_interval},
        )

    def set_lock_period(self, caller: str, lock_id: int, duration: int) -> Json:
        return self.submit("LOCK_PERIOD_SET", caller, {"lock_id": lock_id, "duration": duration})

    def set_lock_period_multiplier(self, caller: str, lock_id: int, multiplier: int) -> Json:
        return self.submit("LOCK_PERIOD_MULTIPLIER_SET", caller, {"lock_id": lock_id, "multiplier": multiplier})

    def set_role(self, caller: str, role: str, address: str) -> Json:
        return self.submit("ROLE_SET", caller, {"role": role, "address": address})

    def pause(self, caller: str) -> Json:
        return self.submit("LEDGER_PAUSE", caller)

    def unpause(self, caller: str) -> Json:
        return self.submit("LEDGER_UNPAUSE", caller)

    # ----------------------------
    # Deposits
    # ----------------------------

    def deposit(self, user: str, pool_id: int, lock_id: int, amount: int) -> Json:
        return self.submit("DEPOSIT", user, {"pool_id": pool_id, "lock_id": lock_id, "amount": amount})

    def deposit_from_external(
        self,
        caller: str,
        *,
        user: str,
        pool_id: int,
        amount: int,
        deposit_timestamp: int,
        withdrawal_timestamp: int,
        lock_id: int = 0,
    ) -> Json:
        return self.submit(
            "DEPOSIT_EXTERNAL",
            caller,
            {
                "pool_id": pool_id,
                "user": user,
                "lock_id": lock_id,
                "amount": amount,
                "deposit_timestamp": deposit_timestamp,
                "withdrawal_timestamp": withdrawal_timestamp,
            },
        )

    def claim(self, user: str, pool_id: int, deposit_index: int) -> Json:
        return self.submit("CLAIM", user, {"pool_id": pool_id, "deposit_index": deposit_index})

    def claim_all(self, user: str, pool_id: int) -> Json:
        return self.submit("CLAIM_ALL", user, {"pool_id": pool_id})

    def claim_all_by_lock(self, user: str, pool_id: int, lock_id: int) -> Json:
        return self.submit("CLAIM_ALL_BY_LOCK", user, {"pool_id": pool_id, "lock_id": lock_id})

    def withdraw(self, user: str, pool_id: int, deposit_index: int) -> Json:
        return self.submit("WITHDRAW", user, {"pool_id": pool_id, "deposit_index": deposit_index})

    def withdraw_partial(self, caller: str, *, user: str, pool_id: int, deposit_index: int, amount: int) -> Json:
        return self.submit(
            "WITHDRAW_PARTIAL",
            caller,
            {"pool_id": pool_id, "user": user, "deposit_index": deposit_index, "amount": amount},
        )

    def add_rewards(self, caller: str, pool_id: int, amount: int) -> Json:
        return self.submit("REWARDS_ADD", caller, {"pool_id": pool_id, "amount": amount})

    # ----------------------------
    # Views (never mutate state)
    # ----------------------------

    def pending_reward(self, pool_id: int, user: str, deposit_index: int) -> int:
        with self._lock:
            return deposit_ledger.pending_reward(self.state, pool_id, user, deposit_index, self.clock.block_number())

    def pending_reward_breakdown(self, pool_id: int, user: str, deposit_index: int) -> Json:
        with self._lock:
            block_part, bonus_part = deposit_ledger.pending_reward_breakdown(
                self.state, pool_id, user, deposit_index, self.clock.block_number()
            )
            return {"block": block_part, "bonus": bonus_part, "total": block_part + bonus_part}

    def pending_reward_total(self, pool_id: int, user: str) -> int:
        with self._lock:
            return deposit_ledger.pending_reward_total(self.state, pool_id, user, self.clock.block_number())

    def pending_reward_by_lock(self, pool_id: int, lock_id: int, user: str) -> int:
        with self._lock:
            return deposit_ledger.pending_reward_by_lock(self.state, pool_id, user, self.clock.block_number(), lock_id)

    def pool_info(self, pool_id: int) -> Json:
        with self._lock:
            return copy.deepcopy(pool_registry.get_pool(self.state, pool_id))

    def get_pool_length(self) -> int:
        with self._lock:
            return pool_registry.pool_count(self.state)

    def user_info(self, user: str, pool_id: int) -> Json:
        with self._lock:
            return deposit_ledger.user_info(self.state, user, pool_id)

    def user_deposit(self, user: str, pool_id: int, deposit_index: int) -> Json:
        with self._lock:
            return dict(deposit_ledger.get_deposit(self.state, user, pool_id, deposit_index))

    def user_deposits(self, user: str, pool_id: int) -> List[Json]:
        with self._lock:
            return deposit_ledger.user_deposits(self.state, user, pool_id)

    def get_user_last_deposit_id(self, user: str, pool_id: int) -> int:
        with self._lock:
            return deposit_ledger.get_user_last_deposit_id(self.state, user, pool_id)

    def tvl(self, pool_id: int, lock_id: int) -> int:
        with self._lock:
            return pool_registry.tvl(self.state, pool_id, lock_id)

    def get_rewards_configuration(self) -> Json:
        with self._lock:
            return pool_registry.get_rewards_configuration(self.state)

    def products_rewards_info(self, pool_id: int) -> Json:
        with self._lock:
            return bonus_ledger.products_rewards_info(self.state, pool_id)

    def lock_period(self, lock_id: int) -> Json:
        with self._lock:
            return {
                "lock_id": int(lock_id),
                "duration": lock_table.lock_duration(self.state, lock_id),
                "multiplier": lock_table.lock_multiplier(self.state, lock_id),
                "configured": lock_table.is_configured(self.state, lock_id),
            }

    def is_paused(self) -> bool:
        with self._lock:
            return bool(self.state.get("params", {}).get("paused", False))

    def view(self) -> LedgerView:
        with self._lock:
            return LedgerView.from_ledger(self.state)

    def ops(self, *, signer: Optional[str] = None, limit: int = 1000) -> List[Json]:
        if self._store is None:
            return []
        return self._store.ops(signer=signer, limit=limit)


__all__ = ["EngineError", "StakeLedger"]
