# src/stakeledger/runtime/sqlite_db.py
from __future__ import annotations

import os
import json
import sqlite3
import time
import random
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Do not silently coerce unknown types (e.g. default=str): a non-JSON value
    leaking into ledger state must fail the write rather than be persisted
    in a form that cannot be read back.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the ledger snapshot and ops journal.

    Design goals:
      - single durable DB file
      - cross-process safe (SQLite locks)
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time. BEGIN IMMEDIATE can transiently
    fail with "database is locked", so write_tx() retries within a deadline.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """Return a safe PRAGMA synchronous value.

        Defaults:
          - prod        -> FULL
          - dev/testnet -> NORMAL

        Override with STAKELEDGER_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("STAKELEDGER_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("STAKELEDGER_SQLITE_SYNCHRONOUS") or default).strip().upper()

        allowed = {"OFF", "NORMAL", "FULL", "EXTRA"}
        if raw not in allowed:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        p = Path(self.path)
        p.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("STAKELEDGER_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        # Fail closed if WAL cannot be enabled unless explicitly allowed.
        allow_non_wal = (os.environ.get("STAKELEDGER_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true", "yes"}
        try:
            row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
            mode = str(row[0]).strip().lower() if row is not None else ""
            if mode and mode != "wal" and not allow_non_wal:
                raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")
        except Exception:
            con.close()
            if not allow_non_wal:
                raise
            con = sqlite3.connect(self.path, timeout=connect_timeout_s, isolation_level=None, check_same_thread=False)
            con.row_factory = sqlite3.Row

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA temp_store=MEMORY;")

        wal_ckpt = max(1, _env_int("STAKELEDGER_SQLITE_WAL_AUTOCHECKPOINT", 1000))
        con.execute(f"PRAGMA wal_autocheckpoint={wal_ckpt};")

        busy_ms = max(0, _env_int("STAKELEDGER_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  height INTEGER NOT NULL,
                  last_nonce INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ops (
                  nonce INTEGER PRIMARY KEY,
                  tx_type TEXT NOT NULL,
                  signer TEXT NOT NULL,
                  envelope_json TEXT NOT NULL,
                  meta_json TEXT NOT NULL,
                  height INTEGER NOT NULL,
                  ts INTEGER NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_ops_signer ON ops(signer);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            try:
                con.close()
            except Exception:
                pass

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg) or ("locked" in msg and "database" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - then raise (fail closed) if we cannot acquire within deadline
        """
        deadline_ms = max(250, _env_int("STAKELEDGER_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("STAKELEDGER_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("STAKELEDGER_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        def _retry(stmt: str, con: sqlite3.Connection) -> None:
            attempt = 0
            while True:
                try:
                    con.execute(stmt)
                    return
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e):
                        raise
                    if _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    time.sleep(sleep_s * (0.5 + random.random()))
                    attempt += 1

        with self.connection() as con:
            _retry("BEGIN IMMEDIATE;", con)
            try:
                yield con
                _retry("COMMIT;", con)
            except Exception:
                try:
                    con.execute("ROLLBACK;")
                except Exception:
                    pass
                raise


class SqliteLedgerStore:
    """Ledger snapshot store persisted in SQLite.

    This provides:
      - read(): load latest ledger snapshot
      - write(st): overwrite the snapshot atomically
      - commit(st, env, meta): snapshot plus one ops journal row, in one transaction
      - ops(): the applied-call journal, oldest first

    The authoritative snapshot is a single row; the journal is an audit trail
    and is never replayed on start.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite ledger_state is missing")
            st = json.loads(str(row["state_json"]))
            if not isinstance(st, dict):
                raise ValueError("ledger_state is not a JSON object")
            return st

    @staticmethod
    def _upsert_state(con: sqlite3.Connection, st: Json) -> None:
        con.execute(
            """
            INSERT INTO ledger_state(id, height, last_nonce, state_json, updated_ts_ms)
            VALUES(1, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              height=excluded.height,
              last_nonce=excluded.last_nonce,
              state_json=excluded.state_json,
              updated_ts_ms=excluded.updated_ts_ms;
            """,
            (int(st.get("height", 0)), int(st.get("last_nonce", 0)), _canon_json(st), _now_ms()),
        )

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        with self._db.write_tx() as con:
            self._upsert_state(con, st)

    def commit(self, st: Json, env: Json, meta: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger commit expects dict")
        with self._db.write_tx() as con:
            self._upsert_state(con, st)
            con.execute(
                """
                INSERT INTO ops(nonce, tx_type, signer, envelope_json, meta_json, height, ts, created_ts_ms)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    int(env.get("nonce", 0)),
                    str(env.get("tx_type", "")),
                    str(env.get("signer", "")),
                    _canon_json(env),
                    _canon_json(meta),
                    int(st.get("height", 0)),
                    int(st.get("time", 0)),
                    _now_ms(),
                ),
            )

    def ops(self, *, signer: Optional[str] = None, limit: int = 1000) -> List[Json]:
        lim = max(1, int(limit))
        with self._db.connection() as con:
            if signer is None:
                rows = con.execute("SELECT * FROM ops ORDER BY nonce ASC LIMIT ?;", (lim,)).fetchall()
            else:
                rows = con.execute(
                    "SELECT * FROM ops WHERE signer=? ORDER BY nonce ASC LIMIT ?;", (str(signer), lim)
                ).fetchall()
        return [
            {
                "nonce": int(r["nonce"]),
                "tx_type": str(r["tx_type"]),
                "signer": str(r["signer"]),
                "envelope": json.loads(str(r["envelope_json"])),
                "meta": json.loads(str(r["meta_json"])),
                "height": int(r["height"]),
                "ts": int(r["ts"]),
            }
            for r in rows
        ]
