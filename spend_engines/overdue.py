"""
Module: spend_engines.overdue
Responsibility:
    Compute, per contract line item, how much of the spend expected by
    today (straight-line over the item's window) has not been recorded,
    capped by what is left of the item's budget.  Also derives the
    contract-level listing figures (residual, progress).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - 0 <= overdue <= remaining = max(0, total - spent_total) per item,
      hence contract total overdue <= sum of line item totals.
    - Items with total <= 0 or a missing/invalid bound never go overdue.
    - With the start gate on, an item whose start lies after today has
      overdue 0 whatever the day-count convention yields.

Failure modes:
    - None raised.  A fault while computing one item (e.g. a date of an
      unexpected type) marks that item ``faulted`` with overdue 0; the
      contract total is still the sum over all items.

Usage:
    from spend_engines.overdue import OverdueCalculator

    calculator = OverdueCalculator(rounding=DayRounding.NEAREST, start_gate=True)
    result = calculator.overdue(contract=contract, allocation=allocation, today=today)
    result.total_overdue
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from decimal import Decimal

from spend_engines.contract_matching import ContractAllocation
from spend_engines.daycount import DayRounding, day_count, local_date, resolve_zone
from spend_engines.tracer import traced_engine
from spend_kernel.domain.records import Contract, ContractLineItem
from spend_kernel.logging_config import get_logger

logger = get_logger("engines.overdue")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LineItemOverdue:
    line_item_id: str
    total_amount: Decimal
    spent_total: Decimal
    spent_to_date: Decimal
    remaining: Decimal
    expected_to_date: Decimal
    overdue: Decimal
    not_started: bool = False
    faulted: bool = False


@dataclass(frozen=True)
class ContractOverdue:
    """
    Overdue result for one contract.

    Guarantees:
        - ``total_overdue`` is the sum of ``line_items[*].overdue``.
        - Percentages are None when ``total_amount`` is 0.
    """

    contract_id: str
    supplier_id: str | None
    line_items: tuple[LineItemOverdue, ...]
    total_overdue: Decimal
    total_amount: Decimal
    spent_amount: Decimal
    residual_amount: Decimal
    progress_percent: Decimal | None
    actual_progress_percent: Decimal | None

    @property
    def faulted_count(self) -> int:
        return sum(1 for item in self.line_items if item.faulted)


class OverdueCalculator:
    """
    Straight-line shortfall of recorded spend against planned spend.

    Contract:
        ``rounding`` and ``start_gate`` select between the historical
        variants of the formula; both must be chosen explicitly.
    Non-goals:
        - Does not allocate spend; takes a ``ContractAllocation``.
    """

    def __init__(
        self,
        *,
        rounding: DayRounding | str,
        start_gate: bool,
        tz: str | tzinfo | None = None,
    ) -> None:
        self.rounding = DayRounding(rounding)
        self.start_gate = start_gate
        self._tz = resolve_zone(tz)

    @traced_engine("overdue", "1.0", fingerprint_fields=("contract", "allocation", "today"))
    def overdue(
        self,
        contract: Contract,
        allocation: ContractAllocation,
        today: date | datetime,
    ) -> ContractOverdue:
        today_day = local_date(today, self._tz)
        per_item = tuple(
            self._line_item(item, allocation, today_day)
            for item in contract.line_items
        )

        total_overdue = sum((i.overdue for i in per_item), ZERO)
        spent_amount = sum((i.spent_total for i in per_item), ZERO)
        lines_total = sum((i.total_amount for i in per_item), ZERO)
        total_amount = lines_total if lines_total != 0 else contract.total_amount

        if total_amount > 0:
            progress = (spent_amount + total_overdue) / total_amount * HUNDRED
            actual_progress = spent_amount / total_amount * HUNDRED
        else:
            progress = actual_progress = None

        return ContractOverdue(
            contract_id=contract.contract_id,
            supplier_id=contract.supplier_id,
            line_items=per_item,
            total_overdue=total_overdue,
            total_amount=total_amount,
            spent_amount=spent_amount,
            residual_amount=total_amount - (spent_amount + total_overdue),
            progress_percent=progress,
            actual_progress_percent=actual_progress,
        )

    def _line_item(
        self,
        item: ContractLineItem,
        allocation: ContractAllocation,
        today: date,
    ) -> LineItemOverdue:
        spend = allocation.for_item(item.line_item_id)
        total = item.total_amount
        remaining = max(ZERO, total - spend.spent_total)
        result = dict(
            line_item_id=item.line_item_id,
            total_amount=total,
            spent_total=spend.spent_total,
            spent_to_date=spend.spent_to_date,
            remaining=remaining,
            expected_to_date=ZERO,
            overdue=ZERO,
        )

        if total <= 0 or item.start_date is None or item.end_date is None:
            return LineItemOverdue(**result)

        try:
            start = local_date(item.start_date, self._tz)
            end = local_date(item.end_date, self._tz)
            not_started = today < start
            result["not_started"] = not_started
            if self.start_gate and not_started:
                return LineItemOverdue(**result)

            total_days = max(1, day_count(start, end, self.rounding, self._tz) + 1)
            effective_end = min(today, end)
            elapsed_days = day_count(start, effective_end, self.rounding, self._tz) + 1
            elapsed_days = max(0, min(total_days, elapsed_days))

            expected = total / Decimal(total_days) * Decimal(elapsed_days)
            shortfall = expected - min(spend.spent_to_date, expected)
            result["expected_to_date"] = expected
            result["overdue"] = max(ZERO, min(remaining, shortfall))
        except (TypeError, ValueError, ArithmeticError) as exc:
            logger.warning("overdue_item_faulted", extra={
                "line_item_id": item.line_item_id,
                "reason": str(exc),
            })
            result["expected_to_date"] = ZERO
            result["overdue"] = ZERO
            result["faulted"] = True
        return LineItemOverdue(**result)
