"""
Module: spend_engines.budget_summary
Responsibility:
    Join a supplier's budget allocations for a year with the attributed
    spend of that year into one fully-formed ``BudgetSummary``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``last_updated`` is
    passed in by the caller (engines never read the clock).

Invariants enforced:
    - One detail row per distinct (sector, channel, branch) key; budget
      allocations repeating a key are merged by summing their amounts.
    - Spend for a key without an allocation creates a row with budget 0.
    - total_budget = sum of allocation amounts; total_spend = sum of
      detailed spend over all rows.
    - ``is_unexpected`` is copied from the budget record, never computed.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from spend_engines.attribution import SpendAttribution
from spend_engines.tracer import traced_engine
from spend_kernel.domain.records import Budget, BudgetAllocation, BudgetSummary, BudgetSummaryDetail

ZERO = Decimal("0")


class BudgetSummaryBuilder:
    """Budget vs. attributed spend for one (supplier, year)."""

    @traced_engine("budget_summary", "1.0", fingerprint_fields=("supplier_id", "year"))
    def build(
        self,
        supplier_id: str,
        year: int,
        budget: Budget | None,
        attribution: SpendAttribution,
        last_updated: datetime,
    ) -> BudgetSummary:
        allocations: Iterable[BudgetAllocation] = budget.allocations if budget else ()

        # key -> [budget_amount, detailed_spend]; insertion order is row order
        rows: dict[tuple, list[Decimal]] = {}
        total_budget = ZERO
        for allocation in allocations:
            total_budget += allocation.budget_amount
            row = rows.setdefault(allocation.key, [ZERO, ZERO])
            row[0] += allocation.budget_amount

        for key, amount in attribution.spend.items():
            row = rows.setdefault(tuple(key), [ZERO, ZERO])
            row[1] += amount

        details = tuple(
            BudgetSummaryDetail(
                sector_id=sector_id,
                marketing_channel_id=channel_id,
                branch_id=branch_id,
                budget_amount=budget_amount,
                detailed_spend=spend,
            )
            for (sector_id, channel_id, branch_id), (budget_amount, spend) in rows.items()
        )
        return BudgetSummary(
            supplier_id=supplier_id,
            year=year,
            total_budget=total_budget,
            total_spend=sum((d.detailed_spend for d in details), ZERO),
            details=details,
            is_unexpected=budget.is_unexpected if budget else False,
            last_updated=last_updated,
            unattributed_spend=attribution.unattributed.total,
        )
