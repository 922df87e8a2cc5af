"""
Batch task interface and registry.

A task turns run parameters into a fixed tuple of items
(``prepare_items``) and recomputes one item at a time
(``execute_item``).  The executor owns threading, timing and failure
isolation; tasks only compute.

Architecture:
    spend_batch/tasks.  Depends on spend_batch.domain and the kernel
    exceptions only.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from spend_batch.domain.types import BatchItemStatus
from spend_kernel.exceptions import TaskNotRegisteredError


@dataclass(frozen=True)
class BatchItemInput:
    """One unit of work, e.g. a (supplier, year) summary or a contract."""

    item_index: int
    item_key: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchTaskResult:
    """What ``execute_item`` reports back; the executor adds timing."""

    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None


@runtime_checkable
class BatchTask(Protocol):
    """A recomputation the executor can fan out.

    ``execute_item`` may run on any worker thread, concurrently with
    other items of the same run, so implementations keep no per-item
    state on ``self``.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def prepare_items(
        self,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]: ...

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> BatchTaskResult: ...


class TaskRegistry:
    """Tasks by ``task_type``; a type can be registered once."""

    def __init__(self, tasks: Iterable[BatchTask] = ()) -> None:
        self._tasks: dict[str, BatchTask] = {}
        for task in tasks:
            self.register(task)

    def register(self, task: BatchTask) -> None:
        if task.task_type in self._tasks:
            raise ValueError(f"Task type '{task.task_type}' is already registered")
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        task = self._tasks.get(task_type)
        if task is None:
            raise TaskNotRegisteredError(task_type, self.list_tasks())
        return task

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._tasks
