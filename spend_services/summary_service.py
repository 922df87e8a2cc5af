"""
spend_services.summary_service -- Budget summary recomputation.

Responsibility:
    Recompute the ``BudgetSummary`` of one (supplier, year): read the
    snapshot, run SpendAttributor and BudgetSummaryBuilder, and hand the
    fully formed result to the store.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  Supplies
    the engines with settings and with "now" from the injected Clock.

Invariants enforced:
    - The summary is completely computed before the store is touched.
    - Engines are configured only from ``SpendSettings``.

Failure modes:
    - ``SupplierNotFoundError`` from the snapshot source.
    - ``SummaryWriteError`` from the store.

Usage:
    service = BudgetSummaryService(source, store, settings, clock)
    summary = service.recompute("sup-1", 2025)
"""

from __future__ import annotations

from spend_config.schema import SpendSettings
from spend_engines.accrual import AccrualProrator
from spend_engines.attribution import SpendAttribution, SpendAttributor
from spend_engines.budget_summary import BudgetSummaryBuilder
from spend_kernel.domain.clock import Clock
from spend_kernel.domain.records import BudgetSummary
from spend_kernel.logging_config import LogContext, get_logger
from spend_services.snapshot import SnapshotSource
from spend_services.summary_store import SummaryStore

logger = get_logger("services.summary")


class BudgetSummaryService:
    """
    Recomputes and stores budget summaries.

    Contract:
        Receives the snapshot source, store, settings and clock via
        constructor injection.
    Non-goals:
        - Does not serialize concurrent recomputations of the same key;
          ``spend_batch.services.coordinator`` does.
    """

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
        self._attributor = SpendAttributor(
            generic_branch_name=settings.master_data.generic_branch_name,
            umbrella_sector_name=settings.master_data.umbrella_sector_name,
            unattributed_policy=settings.engine.unattributed_policy,
            unclassified_id=settings.master_data.unclassified_id,
            prorator=AccrualProrator(tz=settings.engine.timezone),
        )
        self._builder = BudgetSummaryBuilder()

    def attribute(self, supplier_id: str, year: int) -> SpendAttribution:
        return self._attributor.attribute(
            expenses=self._source.expenses_for_supplier(supplier_id),
            branches=self._source.branches(),
            sectors=self._source.sectors(),
            year=year,
        )

    def compute(self, supplier_id: str, year: int) -> BudgetSummary:
        """The summary for (supplier_id, year), without storing it."""
        attribution = self.attribute(supplier_id, year)
        summary = self._builder.build(
            supplier_id=supplier_id,
            year=year,
            budget=self._source.budget(supplier_id, year),
            attribution=attribution,
            last_updated=self._clock.now_utc(),
        )
        if attribution.unattributed.count:
            logger.warning("unattributed_spend", extra={
                "supplier_id": supplier_id,
                "year": year,
                "total": attribution.unattributed.total,
                "missing_dimension_total": attribution.unattributed.missing_dimension_total,
                "no_fanout_target_total": attribution.unattributed.no_fanout_target_total,
                "faulted_total": attribution.unattributed.faulted_total,
            })
        return summary

    def recompute(self, supplier_id: str, year: int) -> BudgetSummary:
        """Compute the summary for (supplier_id, year) and upsert it."""
        with LogContext.bind(supplier_id=supplier_id, year=year):
            summary = self.compute(supplier_id, year)
            self._store.upsert_summary(summary, self._settings.checksum or None)
            logger.info("budget_summary_recomputed", extra={
                "total_budget": summary.total_budget,
                "total_spend": summary.total_spend,
                "details": len(summary.details),
            })
            return summary
