"""
RecomputeCoordinator -- one in-flight recomputation per key.

Contract:
    ``submit(key, fn)`` runs ``fn`` unless a recomputation of ``key`` is
    already running.  In that case the trigger is coalesced: the running
    call re-runs ``fn`` exactly once more after it finishes, however many
    triggers arrived meanwhile, so the last write always reflects a read
    made after the latest trigger.

Architecture: spend_batch/services.  Stdlib only.

Invariants enforced:
    - Reads and writes of two recomputations of the same key never
      interleave.
    - Distinct keys never wait for each other.

Failure modes:
    - An exception from ``fn`` propagates to the caller that is running
      the key; a coalesced re-run still pending at that point is dropped
      and logged (``coalesced_rerun_dropped``).
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

from spend_kernel.logging_config import get_logger

logger = get_logger("batch.coordinator")


@dataclass(frozen=True)
class RecomputeOutcome:
    key: Hashable
    coalesced: bool  # True: handed to the in-flight run, nothing executed here
    runs: int = 0
    result: Any = None


class RecomputeCoordinator:
    """Per-key serialization with coalescing of concurrent triggers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: set[Hashable] = set()
        self._pending: set[Hashable] = set()

    def submit(self, key: Hashable, fn: Callable[[], Any]) -> RecomputeOutcome:
        with self._lock:
            if key in self._in_flight:
                self._pending.add(key)
                logger.debug("recompute_coalesced", extra={"key": str(key)})
                return RecomputeOutcome(key=key, coalesced=True)
            self._in_flight.add(key)

        runs = 0
        try:
            while True:
                result = fn()
                runs += 1
                with self._lock:
                    if key not in self._pending:
                        self._in_flight.discard(key)
                        return RecomputeOutcome(key=key, coalesced=False, runs=runs, result=result)
                    self._pending.discard(key)
        except Exception:
            with self._lock:
                self._in_flight.discard(key)
                dropped = key in self._pending
                self._pending.discard(key)
            if dropped:
                logger.warning("coalesced_rerun_dropped", extra={"key": str(key)})
            raise

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._in_flight
