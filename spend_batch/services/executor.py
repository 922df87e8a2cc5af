"""
BatchExecutor -- fan-out batch execution with per-item failure isolation.

Contract:
    ``run()`` enumerates a task's items and executes them on a thread
    pool, collecting one ``BatchItemResult`` per item whatever happens to
    its siblings.

Architecture: spend_batch/services.  Imports from spend_batch.domain,
    spend_batch.tasks and the kernel.

Invariants enforced:
    - Collect-errors: an exception from one item is recorded on that item
      (error code from ``SpendEngineError.code``, else
      ``UNHANDLED_EXCEPTION``) and never cancels other items.
    - All timestamps come from the injected Clock.
    - Results are reported in item order, not completion order.

Failure modes:
    - ``TaskNotRegisteredError`` for an unknown task type.
    - A failing ``prepare_items`` fails the whole run (status FAILED, no
      items).
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from spend_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJobStatus,
    BatchRunResult,
)
from spend_batch.tasks.base import BatchItemInput, BatchTask, TaskRegistry
from spend_kernel.domain.clock import Clock, SystemClock
from spend_kernel.exceptions import SpendEngineError
from spend_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.executor")


class BatchExecutor:
    """Runs batch tasks over a thread pool.

    Non-goals:
        - Does NOT persist run history; results are returned to the caller.
        - Does NOT retry failed items.
    """

    def __init__(
        self,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        max_workers: int = 4,
    ) -> None:
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._max_workers = max_workers

    def run(
        self,
        task: BatchTask | str,
        parameters: dict[str, Any] | None = None,
        max_workers: int | None = None,
    ) -> BatchRunResult:
        if isinstance(task, str):
            task = self._task_registry.get(task)
        parameters = parameters or {}
        workers = max_workers or self._max_workers
        job_id = uuid4()
        start_time = time.monotonic()
        started_at = self._clock.now()

        with LogContext.bind(job_id=job_id):
            logger.info("batch_run_started", extra={
                "task_type": task.task_type,
                "max_workers": workers,
            })
            try:
                items = task.prepare_items(parameters=parameters, as_of=started_at)
            except Exception as exc:
                logger.error("batch_prepare_failed", extra={
                    "task_type": task.task_type,
                    "error": str(exc),
                }, exc_info=True)
                return self._result(job_id, task, (), started_at, start_time, prepare_failed=True)

            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="spend-batch") as pool:
                futures = [
                    pool.submit(self._execute_item, task, item, parameters, started_at, job_id)
                    for item in items
                ]
                item_results = tuple(f.result() for f in futures)

            result = self._result(job_id, task, item_results, started_at, start_time)
            logger.info("batch_run_completed", extra={
                "task_type": task.task_type,
                "status": result.status.value,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "skipped": result.skipped,
                "duration_ms": result.duration_ms,
            })
            return result

    def _execute_item(
        self,
        task: BatchTask,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of: datetime,
        job_id: UUID,
    ) -> BatchItemResult:
        # Context variables do not follow work onto pool threads.
        with LogContext.bind(job_id=job_id):
            item_start = time.monotonic()
            item_started_at = self._clock.now()
            try:
                outcome = task.execute_item(item=item, parameters=parameters, as_of=as_of)
                status = outcome.status
                error_code = outcome.error_code
                error_message = outcome.error_message
                result_data = outcome.result_data
            except SpendEngineError as exc:
                status, error_code, error_message, result_data = (
                    BatchItemStatus.FAILED, exc.code, str(exc), None,
                )
            except Exception as exc:
                status, error_code, error_message, result_data = (
                    BatchItemStatus.FAILED, "UNHANDLED_EXCEPTION", str(exc), None,
                )
                logger.error("batch_item_unhandled_exception", extra={
                    "item_key": item.item_key,
                }, exc_info=True)

            if status == BatchItemStatus.FAILED:
                logger.warning("batch_item_failed", extra={
                    "item_key": item.item_key,
                    "error_code": error_code,
                    "error_message": error_message,
                })
            return BatchItemResult(
                item_index=item.item_index,
                item_key=item.item_key,
                status=status,
                error_code=error_code,
                error_message=error_message,
                result_data=result_data,
                duration_ms=int((time.monotonic() - item_start) * 1000),
                started_at=item_started_at,
                completed_at=self._clock.now(),
            )

    def _result(
        self,
        job_id: UUID,
        task: BatchTask,
        item_results: tuple[BatchItemResult, ...],
        started_at: datetime,
        start_time: float,
        prepare_failed: bool = False,
    ) -> BatchRunResult:
        item_results = tuple(sorted(item_results, key=lambda r: r.item_index))
        succeeded = sum(1 for r in item_results if r.status == BatchItemStatus.SUCCEEDED)
        failed = sum(1 for r in item_results if r.status == BatchItemStatus.FAILED)
        skipped = sum(1 for r in item_results if r.status == BatchItemStatus.SKIPPED)

        if prepare_failed:
            status = BatchJobStatus.FAILED
        elif failed == 0 and skipped == 0:
            status = BatchJobStatus.COMPLETED
        elif succeeded == 0 and skipped == 0:
            status = BatchJobStatus.FAILED
        else:
            status = BatchJobStatus.PARTIALLY_COMPLETED

        return BatchRunResult(
            job_id=job_id,
            task_type=task.task_type,
            status=status,
            total_items=len(item_results),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            item_results=item_results,
            started_at=started_at,
            completed_at=self._clock.now(),
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
