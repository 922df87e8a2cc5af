"""
Module: spend_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for higher
    layers (spend_services, spend_batch).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import spend_kernel (domain records, logging) and sibling
    engine modules.  MUST NOT import spend_services or spend_batch.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      "Today" and timestamps are explicit parameters supplied by services.
    - Decimal-only arithmetic: all monetary amounts use ``Decimal``.
    - Determinism: identical inputs always produce identical outputs.
    - Bad data degrades to a zero contribution and is reported on the
      result; engines do not raise for it.

Audit relevance:
    Every engine entry point is traced via ``@traced_engine`` (see
    ``spend_engines.tracer``), emitting SPEND_ENGINE_TRACE log records.

Usage:
    from spend_engines import ContractAllocationMatcher, OverdueCalculator
    from spend_engines import SpendAttributor, BudgetSummaryBuilder
"""

from spend_kernel.logging_config import get_logger

logger = get_logger("engines")

from spend_engines.accrual import AccrualProrator
from spend_engines.attribution import (
    SpendAttribution,
    SpendAttributor,
    UnattributedPolicy,
    UnattributedSpend,
)
from spend_engines.budget_summary import BudgetSummaryBuilder
from spend_engines.contract_matching import (
    ContractAllocation,
    ContractAllocationMatcher,
    LineItemSpend,
    UnmatchedAllocation,
    split_by_totals,
)
from spend_engines.daycount import (
    DEFAULT_TIMEZONE,
    DayRounding,
    day_count,
    day_span,
    local_date,
)
from spend_engines.line_items import FIELD_ALIASES, LineItemNormalizer
from spend_engines.overdue import ContractOverdue, LineItemOverdue, OverdueCalculator
from spend_engines.tracer import traced_engine

__all__ = [
    "AccrualProrator",
    "BudgetSummaryBuilder",
    "ContractAllocation",
    "ContractAllocationMatcher",
    "ContractOverdue",
    "DEFAULT_TIMEZONE",
    "DayRounding",
    "FIELD_ALIASES",
    "LineItemNormalizer",
    "LineItemOverdue",
    "LineItemSpend",
    "OverdueCalculator",
    "SpendAttribution",
    "SpendAttributor",
    "UnattributedPolicy",
    "UnattributedSpend",
    "UnmatchedAllocation",
    "day_count",
    "day_span",
    "local_date",
    "split_by_totals",
    "traced_engine",
]
