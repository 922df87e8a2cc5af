"""
spend_batch.domain.types -- Pure frozen dataclasses for the batch system.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - All DTOs are frozen (immutable).
    - A BatchRunResult's counters agree with its item results.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class BatchJobStatus(str, Enum):
    """Run-level outcome."""

    COMPLETED = "completed"  # All items succeeded
    FAILED = "failed"  # No item succeeded
    PARTIALLY_COMPLETED = "partially_completed"  # Some items failed or were skipped


class BatchItemStatus(str, Enum):
    """Per-item outcome within a batch run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # e.g. coalesced into an in-flight recomputation


# =============================================================================
# Result DTOs
# =============================================================================


@dataclass(frozen=True)
class BatchItemResult:
    """Immutable result of processing a single batch item.

    A failed item never aborts its siblings.
    """

    item_index: int  # 0-indexed position in the batch
    item_key: str  # Business identifier (e.g. "sup-1_2025", a contract id)
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """Immutable result of executing a complete batch run.

    Returned by ``BatchExecutor.run()``.  ``item_results`` are ordered by
    ``item_index`` regardless of completion order.
    """

    job_id: UUID
    task_type: str
    status: BatchJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def failed_items(self) -> tuple[BatchItemResult, ...]:
        return tuple(r for r in self.item_results if r.status == BatchItemStatus.FAILED)
