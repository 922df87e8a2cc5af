"""
spend_services.overdue_service -- Contract overdue recomputation.

Responsibility:
    For one contract, or every contract of a supplier: read the contract
    and the expenses posted against it, run ContractAllocationMatcher and
    OverdueCalculator for "today" (from the injected Clock, in the
    configured timezone), and upsert the result by contract id.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - The variant of the calculation (unmatched strategy, day rounding,
      start gate) comes from ``SpendSettings`` only.
    - Each contract is written in its own store call.

Failure modes:
    - ``ContractNotFoundError`` / ``SupplierNotFoundError`` from the source.
    - ``SummaryWriteError`` from the store.
"""

from __future__ import annotations

from datetime import date

from spend_config.schema import SpendSettings
from spend_engines.contract_matching import ContractAllocation, ContractAllocationMatcher
from spend_engines.daycount import local_date
from spend_engines.overdue import ContractOverdue, OverdueCalculator
from spend_kernel.domain.clock import Clock
from spend_kernel.domain.records import Contract
from spend_kernel.logging_config import LogContext, get_logger
from spend_services.snapshot import SnapshotSource
from spend_services.summary_store import SummaryStore

logger = get_logger("services.overdue")


class ContractOverdueService:
    """Recomputes and stores per-contract overdue figures."""

    def __init__(
        self,
        source: SnapshotSource,
        store: SummaryStore,
        settings: SpendSettings,
        clock: Clock,
    ) -> None:
        self._source = source
        self._store = store
        self._settings = settings
        self._clock = clock
        engine = settings.engine
        self._matcher = ContractAllocationMatcher(
            unmatched=engine.unmatched_allocation,
            description_linking=engine.description_linking,
            tz=engine.timezone,
        )
        self._calculator = OverdueCalculator(
            rounding=engine.day_rounding,
            start_gate=engine.start_gate,
            tz=engine.timezone,
        )

    def today(self) -> date:
        return local_date(self._clock.now(), self._settings.engine.timezone)

    def allocate(self, contract: Contract, today: date) -> ContractAllocation:
        return self._matcher.allocate(
            contract=contract,
            expenses=self._source.expenses_for_contract(contract.contract_id),
            today=today,
        )

    def compute(self, contract: Contract, today: date | None = None) -> ContractOverdue:
        today = today or self.today()
        allocation = self.allocate(contract, today)
        if allocation.unallocated_count:
            logger.warning("contract_postings_unallocated", extra={
                "contract_id": contract.contract_id,
                "unallocated_total": allocation.unallocated_total,
                "unallocated_count": allocation.unallocated_count,
            })
        return self._calculator.overdue(contract=contract, allocation=allocation, today=today)

    def recompute_contract(self, contract_id: str) -> ContractOverdue:
        with LogContext.bind(contract_id=contract_id):
            result = self.compute(self._source.contract(contract_id))
            self._store.upsert_overdue(result, self._clock.now_utc(), self._settings.checksum or None)
            if result.faulted_count:
                logger.warning("overdue_items_faulted", extra={"faulted": result.faulted_count})
            logger.info("contract_overdue_recomputed", extra={
                "total_overdue": result.total_overdue,
            })
            return result

    def recompute_supplier(self, supplier_id: str) -> list[ContractOverdue]:
        """Recompute every contract of ``supplier_id``."""
        with LogContext.bind(supplier_id=supplier_id):
            return [
                self.recompute_contract(contract.contract_id)
                for contract in self._source.contracts_for_supplier(supplier_id)
            ]
