"""ORM models for persisted computation results."""

from spend_kernel.models.summary import BudgetSummaryModel, ContractOverdueModel

__all__ = [
    "BudgetSummaryModel",
    "ContractOverdueModel",
]
