"""
Pure domain layer.

Immutable records and the clock abstraction, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O
"""

from spend_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from spend_kernel.domain.records import (
    Branch,
    Budget,
    BudgetAllocation,
    BudgetSummary,
    BudgetSummaryDetail,
    Contract,
    ContractLineItem,
    Expense,
    ExpenseLineItem,
    NormalizedLineItems,
    Sector,
    SpendKey,
    Temporal,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Branch",
    "Budget",
    "BudgetAllocation",
    "BudgetSummary",
    "BudgetSummaryDetail",
    "Contract",
    "ContractLineItem",
    "Expense",
    "ExpenseLineItem",
    "NormalizedLineItems",
    "Sector",
    "SpendKey",
    "Temporal",
]
