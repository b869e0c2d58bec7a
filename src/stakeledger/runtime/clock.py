from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Two independent time bases: block height drives accrual, wall-clock seconds drive lock expiry."""

    def block_number(self) -> int: ...

    def timestamp(self) -> int: ...


class ManualClock:
    """Deterministic clock for tests and simulation."""

    def __init__(self, block: int = 0, ts: int = 0) -> None:
        self._lock = threading.Lock()
        self._block = int(block)
        self._ts = int(ts)

    def block_number(self) -> int:
        with self._lock:
            return self._block

    def timestamp(self) -> int:
        with self._lock:
            return self._ts

    def mine(self, n: int = 1) -> int:
        if int(n) < 0:
            raise ValueError("cannot mine a negative number of blocks")
        with self._lock:
            self._block += int(n)
            return self._block

    def advance(self, seconds: int) -> int:
        if int(seconds) < 0:
            raise ValueError("cannot move time backwards")
        with self._lock:
            self._ts += int(seconds)
            return self._ts

    def set(self, *, block: int | None = None, ts: int | None = None) -> None:
        with self._lock:
            if block is not None:
                if int(block) < self._block:
                    raise ValueError("block height is monotonic")
                self._block = int(block)
            if ts is not None:
                if int(ts) < self._ts:
                    raise ValueError("timestamp is monotonic")
                self._ts = int(ts)


class SystemClock:
    """Wall-clock seconds with a block height derived from a fixed block time."""

    def __init__(self, *, genesis_ts: int | None = None, block_time_s: int = 12) -> None:
        if int(block_time_s) <= 0:
            raise ValueError("block_time_s must be > 0")
        self._genesis = int(time.time()) if genesis_ts is None else int(genesis_ts)
        self._block_time = int(block_time_s)

    def timestamp(self) -> int:
        return int(time.time())

    def block_number(self) -> int:
        return max(0, (self.timestamp() - self._genesis) // self._block_time)


__all__ = ["Clock", "ManualClock", "SystemClock"]
