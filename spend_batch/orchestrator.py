"""
RecomputeOrchestrator -- DI container and entry point for recomputation.

Contract:
    Wires the snapshot source, store, settings and Clock into the
    services, the RecomputeCoordinator, the TaskRegistry and the
    BatchExecutor.  Exposes:
      - ``backfill_all()``: every known supplier x (run year + each
        configured offset, default {-1, 0, +1}), collect-errors;
      - ``recompute_all_overdue()``: every contract, collect-errors;
      - ``on_expense_changed`` / ``on_contract_changed`` /
        ``on_budget_changed``: recompute the summaries (and contract
        overdue figures) a document change affects.

Architecture: spend_batch (top-level).  Single place where the batch
    dependencies are composed.

Invariants enforced:
    - Clock injection: all services receive the same Clock.
    - Every recomputation, batch or triggered, goes through the same
      coordinator, so one key is never recomputed concurrently.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from spend_batch.domain.types import BatchRunResult
from spend_batch.services.coordinator import RecomputeCoordinator, RecomputeOutcome
from spend_batch.services.executor import BatchExecutor
from spend_batch.tasks.base import TaskRegistry
from spend_batch.tasks.summary_tasks import (
    BudgetSummaryBackfillTask,
    ContractOverdueTask,
    overdue_coordinator_key,
    summary_coordinator_key,
)
from spend_config.schema import SpendSettings
from spend_engines.line_items import coerce_text, resolve_field
from spend_kernel.domain.clock import Clock, SystemClock
from spend_kernel.exceptions import SpendEngineError
from spend_kernel.logging_config import get_logger
from spend_services.overdue_service import ContractOverdueService
from spend_services.snapshot import SnapshotSource
from spend_services.summary_service import BudgetSummaryService
from spend_services.summary_store import SqlAlchemySummaryStore, SummaryStore
from spend_services.triggers import ChangeKind, affected_summary_keys

logger = get_logger("batch.orchestrator")


@dataclass(frozen=True)
class ChangeOutcome:
    """What a single document change recomputed."""

    summary_keys: tuple[tuple[str, int], ...] = ()
    contract_ids: tuple[str, ...] = ()
    outcomes: tuple[RecomputeOutcome, ...] = ()
    # coordinator key -> error code, for recomputations that raised
    failures: Mapping[Any, str] = field(default_factory=dict)


def _referenced_contracts(document: Mapping[str, Any] | None) -> list[str]:
    if not document:
        return []
    ids = [coerce_text(resolve_field(document, "contract_id"))]
    for line_item in resolve_field(document, "expense_line_items", ()) or ():
        if isinstance(line_item, Mapping):
            ids.append(coerce_text(resolve_field(line_item, "contract_id")))
    return [i for i in ids if i]


class RecomputeOrchestrator:
    """DI container for recomputation.

    Non-goals:
        - Does NOT watch for changes; the triggering collaborator calls
          the ``on_*_changed`` methods.
    """

    def __init__(
        self,
        source: SnapshotSource,
        store: SummaryStore,
        settings: SpendSettings,
        clock: Clock | None = None,
        coordinator: RecomputeCoordinator | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._settings = settings
        self._clock = clock or SystemClock()
        self._coordinator = coordinator or RecomputeCoordinator()

        self.summary_service = BudgetSummaryService(source, store, settings, self._clock)
        self.overdue_service = ContractOverdueService(source, store, settings, self._clock)

        self._task_registry = TaskRegistry()
        self._task_registry.register(BudgetSummaryBackfillTask(
            source=source,
            service=self.summary_service,
            coordinator=self._coordinator,
            year_offsets=settings.batch.year_offsets,
            timezone=settings.engine.timezone,
        ))
        self._task_registry.register(ContractOverdueTask(
            source=source,
            service=self.overdue_service,
            coordinator=self._coordinator,
        ))
        self._executor = BatchExecutor(
            self._task_registry,
            clock=self._clock,
            max_workers=settings.batch.max_workers,
        )

    @classmethod
    def from_session_factory(
        cls,
        source: SnapshotSource,
        session_factory: sessionmaker[Session],
        settings: SpendSettings,
        clock: Clock | None = None,
    ) -> RecomputeOrchestrator:
        """Orchestrator writing to the database behind ``session_factory``."""
        return cls(source, SqlAlchemySummaryStore(session_factory), settings, clock)

    # -------------------------------------------------------------------------
    # Batch entry points
    # -------------------------------------------------------------------------

    def backfill_all(
        self,
        supplier_ids: list[str] | None = None,
        max_workers: int | None = None,
    ) -> BatchRunResult:
        parameters = {"supplier_ids": supplier_ids} if supplier_ids else {}
        return self._executor.run("summaries.backfill", parameters, max_workers)

    def recompute_all_overdue(
        self,
        supplier_ids: list[str] | None = None,
        max_workers: int | None = None,
    ) -> BatchRunResult:
        parameters = {"supplier_ids": supplier_ids} if supplier_ids else {}
        return self._executor.run("contracts.overdue", parameters, max_workers)

    # -------------------------------------------------------------------------
    # Change triggers
    # -------------------------------------------------------------------------

    def on_expense_changed(
        self,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
    ) -> ChangeOutcome:
        contract_ids = tuple(dict.fromkeys(
            _referenced_contracts(before) + _referenced_contracts(after)
        ))
        return self._on_change(ChangeKind.EXPENSE, before, after, contract_ids)

    def on_contract_changed(
        self,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
    ) -> ChangeOutcome:
        # A deleted contract has no overdue figures to refresh.
        contract_id = coerce_text(resolve_field(after, "id")) if after else None
        return self._on_change(ChangeKind.CONTRACT, before, after, (contract_id,) if contract_id else ())

    def on_budget_changed(
        self,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
    ) -> ChangeOutcome:
        return self._on_change(ChangeKind.BUDGET, before, after, ())

    def _on_change(
        self,
        kind: ChangeKind,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
        contract_ids: tuple[str, ...],
    ) -> ChangeOutcome:
        keys = affected_summary_keys(kind, before, after, tz=self._settings.engine.timezone)
        jobs = [
            (
                summary_coordinator_key(supplier_id, year),
                lambda s=supplier_id, y=year: self.summary_service.recompute(s, y),
            )
            for supplier_id, year in keys
        ] + [
            (
                overdue_coordinator_key(contract_id),
                lambda c=contract_id: self.overdue_service.recompute_contract(c),
            )
            for contract_id in contract_ids
        ]

        outcomes: list[RecomputeOutcome] = []
        failures: dict[Any, str] = {}
        for key, fn in jobs:
            try:
                outcomes.append(self._coordinator.submit(key, fn))
            except SpendEngineError as exc:
                failures[key] = exc.code
                logger.warning("change_recompute_failed", extra={
                    "key": str(key),
                    "error_code": exc.code,
                    "error_message": str(exc),
                })
            except Exception as exc:
                failures[key] = "UNHANDLED_EXCEPTION"
                logger.error("change_recompute_unhandled_exception", extra={
                    "key": str(key),
                    "error_message": str(exc),
                }, exc_info=True)

        logger.info("change_processed", extra={
            "kind": kind.value,
            "summary_keys": [f"{s}_{y}" for s, y in keys],
            "contract_ids": list(contract_ids),
            "failures": len(failures),
        })
        return ChangeOutcome(
            summary_keys=keys,
            contract_ids=contract_ids,
            outcomes=tuple(outcomes),
            failures=failures,
        )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def coordinator(self) -> RecomputeCoordinator:
        return self._coordinator

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry

    @property
    def executor(self) -> BatchExecutor:
        return self._executor
