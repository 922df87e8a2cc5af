"""
Module: spend_engines.accrual
Responsibility:
    Decide how much of a dated, possibly multi-month expense falls inside
    an arbitrary reporting window (typically a calendar year).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Non-amortized items contribute all-or-nothing: the full amount when
      their date lies in the window (both bounds inclusive), else 0.
    - Amortized items accrue a constant daily cost over their inclusive
      day range; the portions over disjoint windows that tile the range
      sum back to the item amount.
    - Purity: identical inputs always produce identical outputs.

Failure modes:
    - None raised.  A missing/invalid date or a non-positive duration
      yields 0 and a ``accrual_item_degraded`` warning.

Usage:
    from spend_engines.accrual import AccrualProrator

    prorator = AccrualProrator()
    prorator.prorate(item=expense, window_start=date(2025, 1, 1), window_end=date(2025, 12, 31))
"""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from decimal import Decimal
from typing import Protocol

from spend_engines.daycount import local_date, resolve_zone
from spend_engines.tracer import traced_engine
from spend_kernel.logging_config import get_logger

logger = get_logger("engines.accrual")

ZERO = Decimal("0")


class Accruable(Protocol):
    """Anything with an amount and either a single date or an accrual range."""

    @property
    def amount(self) -> Decimal: ...

    date: date | datetime | None
    is_amortized: bool
    amortization_start: date | datetime | None
    amortization_end: date | datetime | None


class AccrualProrator:
    """
    Temporal proration of amounts into calendar windows.

    Contract:
        Pure function of (item, window).  Day counts are whole calendar
        days in the configured zone; the ``+1`` makes both endpoints of a
        range inclusive.
    Non-goals:
        - Does not round; the caller decides presentation precision.
    """

    def __init__(self, tz: str | tzinfo | None = None) -> None:
        self._tz = resolve_zone(tz)

    @traced_engine("accrual", "1.0", fingerprint_fields=("window_start", "window_end"))
    def prorate(
        self,
        item: Accruable,
        window_start: date | datetime,
        window_end: date | datetime,
    ) -> Decimal:
        """Portion of ``item.amount`` that falls inside ``[window_start, window_end]``."""
        try:
            first_day = local_date(window_start, self._tz)
            last_day = local_date(window_end, self._tz)

            if not item.is_amortized:
                if item.date is None:
                    return ZERO
                day = local_date(item.date, self._tz)
                return item.amount if first_day <= day <= last_day else ZERO

            if item.amortization_start is None or item.amortization_end is None:
                return ZERO
            start = local_date(item.amortization_start, self._tz)
            end = local_date(item.amortization_end, self._tz)

            duration_days = (end - start).days + 1
            if duration_days <= 0:
                return ZERO
            daily_cost = item.amount / Decimal(duration_days)

            overlap_start = max(start, first_day)
            overlap_end = min(end, last_day)
            if overlap_start > overlap_end:
                return ZERO
            overlap_days = (overlap_end - overlap_start).days + 1
            return daily_cost * Decimal(overlap_days)
        except (TypeError, ValueError, ArithmeticError) as exc:
            logger.warning("accrual_item_degraded", extra={
                "item": getattr(item, "expense_id", None),
                "reason": str(exc),
            })
            return ZERO

    def prorate_year(self, item: Accruable, year: int) -> Decimal:
        """Portion of ``item.amount`` accrued in calendar ``year``."""
        return self.prorate(
            item=item,
            window_start=date(year, 1, 1),
            window_end=date(year, 12, 31),
        )
