"""
Batch tasks: budget summary backfill and contract overdue recompute.

Both route every item through the RecomputeCoordinator so a backfill
never interleaves with a change-triggered recomputation of the same key.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from spend_batch.domain.types import BatchItemStatus
from spend_batch.services.coordinator import RecomputeCoordinator
from spend_batch.tasks.base import BatchItemInput, BatchTaskResult
from spend_engines.daycount import local_date
from spend_services.overdue_service import ContractOverdueService
from spend_services.snapshot import SnapshotSource
from spend_services.summary_service import BudgetSummaryService
from spend_services.summary_store import summary_key


def summary_coordinator_key(supplier_id: str, year: int) -> tuple[str, str, int]:
    return ("summary", supplier_id, year)


def overdue_coordinator_key(contract_id: str) -> tuple[str, str]:
    return ("overdue", contract_id)


def _coalesced() -> BatchTaskResult:
    return BatchTaskResult(
        status=BatchItemStatus.SKIPPED,
        result_data={"coalesced": True},
    )


class BudgetSummaryBackfillTask:
    """Recompute every supplier's summary for the years around the run year.

    Parameters (all optional):
        ``supplier_ids``: restrict to these suppliers.
        ``years``: explicit years instead of run year + offsets.
    """

    def __init__(
        self,
        source: SnapshotSource,
        service: BudgetSummaryService,
        coordinator: RecomputeCoordinator,
        year_offsets: Sequence[int] = (-1, 0, 1),
        timezone: str | None = None,
    ) -> None:
        self._source = source
        self._service = service
        self._coordinator = coordinator
        self._year_offsets = tuple(year_offsets)
        self._timezone = timezone

    @property
    def task_type(self) -> str:
        return "summaries.backfill"

    @property
    def description(self) -> str:
        return "Budget summary recomputation for all suppliers over adjacent years"

    def years(self, as_of: datetime) -> tuple[int, ...]:
        current = local_date(as_of, self._timezone).year
        return tuple(dict.fromkeys(current + offset for offset in self._year_offsets))

    def prepare_items(
        self,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        supplier_ids = parameters.get("supplier_ids") or self._source.supplier_ids()
        years = tuple(parameters.get("years") or self.years(as_of))
        pairs = [(supplier_id, year) for supplier_id in supplier_ids for year in years]
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=summary_key(supplier_id, year),
                payload={"supplier_id": supplier_id, "year": year},
            )
            for i, (supplier_id, year) in enumerate(pairs)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> BatchTaskResult:
        supplier_id = item.payload["supplier_id"]
        year = item.payload["year"]
        outcome = self._coordinator.submit(
            summary_coordinator_key(supplier_id, year),
            lambda: self._service.recompute(supplier_id, year),
        )
        if outcome.coalesced:
            return _coalesced()
        summary = outcome.result
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={
                "total_budget": str(summary.total_budget),
                "total_spend": str(summary.total_spend),
                "unattributed_spend": str(summary.unattributed_spend),
            },
        )


class ContractOverdueTask:
    """Recompute the overdue figures of every contract (one item per contract).

    Parameters (all optional):
        ``supplier_ids``: restrict to contracts of these suppliers.
    """

    def __init__(
        self,
        source: SnapshotSource,
        service: ContractOverdueService,
        coordinator: RecomputeCoordinator,
    ) -> None:
        self._source = source
        self._service = service
        self._coordinator = coordinator

    @property
    def task_type(self) -> str:
        return "contracts.overdue"

    @property
    def description(self) -> str:
        return "Overdue recomputation for every contract"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        supplier_ids = parameters.get("supplier_ids") or self._source.supplier_ids()
        contract_ids = [
            contract.contract_id
            for supplier_id in supplier_ids
            for contract in self._source.contracts_for_supplier(supplier_id)
        ]
        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=contract_id,
                payload={"contract_id": contract_id},
            )
            for i, contract_id in enumerate(contract_ids)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of: datetime,
    ) -> BatchTaskResult:
        contract_id = item.payload["contract_id"]
        outcome = self._coordinator.submit(
            overdue_coordinator_key(contract_id),
            lambda: self._service.recompute_contract(contract_id),
        )
        if outcome.coalesced:
            return _coalesced()
        result = outcome.result
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={
                "total_overdue": str(result.total_overdue),
                "faulted_items": result.faulted_count,
            },
        )
