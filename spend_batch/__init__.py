"""
spend_batch -- Batch fan-out and per-key recompute coordination.

Usage:
    from spend_batch import RecomputeOrchestrator

    orchestrator = RecomputeOrchestrator(source, store, settings, clock)
    result = orchestrator.backfill_all()
"""

from spend_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJobStatus,
    BatchRunResult,
)
from spend_batch.orchestrator import ChangeOutcome, RecomputeOrchestrator
from spend_batch.services.coordinator import RecomputeCoordinator, RecomputeOutcome
from spend_batch.services.executor import BatchExecutor
from spend_batch.tasks.base import BatchItemInput, BatchTask, BatchTaskResult, TaskRegistry

__all__ = [
    "BatchExecutor",
    "BatchItemInput",
    "BatchItemResult",
    "BatchItemStatus",
    "BatchJobStatus",
    "BatchRunResult",
    "BatchTask",
    "BatchTaskResult",
    "ChangeOutcome",
    "RecomputeCoordinator",
    "RecomputeOrchestrator",
    "RecomputeOutcome",
    "TaskRegistry",
]
