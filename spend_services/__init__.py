"""
spend_services -- Recomputation services over snapshots and stores.

Usage:
    from spend_services import BudgetSummaryService, ContractOverdueService
    from spend_services import InMemorySnapshotSource, SqlAlchemySummaryStore
"""

from spend_services.overdue_service import ContractOverdueService
from spend_services.snapshot import InMemorySnapshotSource, SnapshotSource
from spend_services.summary_service import BudgetSummaryService
from spend_services.summary_store import (
    InMemorySummaryStore,
    SqlAlchemySummaryStore,
    StoredOverdue,
    SummaryStore,
    summary_key,
)
from spend_services.triggers import ChangeKind, affected_summary_keys

__all__ = [
    "BudgetSummaryService",
    "ChangeKind",
    "ContractOverdueService",
    "InMemorySnapshotSource",
    "InMemorySummaryStore",
    "SnapshotSource",
    "SqlAlchemySummaryStore",
    "StoredOverdue",
    "SummaryStore",
    "affected_summary_keys",
    "summary_key",
]
