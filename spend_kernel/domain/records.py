"""
Records -- Immutable domain records read from, and handed back to, the
persistence collaborators.

Responsibility:
    Typed, frozen representations of the snapshot the engines consume
    (expenses, contracts, budgets, branches, sectors) and of the records
    they produce (budget summaries).  Raw, legacy-shaped documents are
    turned into these records exclusively by
    ``spend_engines.line_items`` (the normalization boundary).

Architecture position:
    Kernel > Domain -- pure data, zero I/O.  MUST NOT import engines,
    services or batch.

Invariants enforced:
    - Monetary amounts are ``Decimal``.
    - An ExpenseLineItem's amount is independent of its parent
      Expense.total_amount (no enforced equality).
    - ContractLineItem identity (``line_item_id``) is computed once at
      normalization and never recomputed from sorted order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import NamedTuple

# A calendar day or an instant; naive values are local to the configured zone.
Temporal = date | datetime


class SpendKey(NamedTuple):
    """Attribution bucket: (sector, marketing channel, branch)."""

    sector_id: str
    marketing_channel_id: str
    branch_id: str

    def as_legacy_key(self) -> str:
        """The ``"sector-channel-branch"`` string form used by stored summaries."""
        return f"{self.sector_id}-{self.marketing_channel_id}-{self.branch_id}"


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpenseLineItem:
    """One posting line of an expense."""

    amount: Decimal
    description: str = ""
    sector_id: str | None = None
    marketing_channel_id: str | None = None
    branch_id: str | None = None
    contract_id: str | None = None
    contract_line_item_id: str | None = None


@dataclass(frozen=True)
class Expense:
    """
    A dated, possibly amortized expense.

    Contract:
        Frozen record.  Expense-level dimension and contract fields are
        the fallback for line items that do not carry their own.
    Guarantees:
        - ``resolved_line_items()`` never returns an empty tuple.
    Non-goals:
        - Does not reconcile ``total_amount`` with the line items.
    """

    expense_id: str
    supplier_id: str | None
    date: Temporal | None
    total_amount: Decimal
    cost_domain: str | None = None
    is_amortized: bool = False
    amortization_start: Temporal | None = None
    amortization_end: Temporal | None = None
    description: str = ""
    sector_id: str | None = None
    marketing_channel_id: str | None = None
    branch_id: str | None = None
    contract_id: str | None = None
    line_items: tuple[ExpenseLineItem, ...] = ()

    @property
    def amount(self) -> Decimal:
        return self.total_amount

    def synthetic_line_item(self) -> ExpenseLineItem:
        """Single line item derived from the expense's own fields."""
        return ExpenseLineItem(
            amount=self.total_amount,
            description=self.description,
            sector_id=self.sector_id,
            marketing_channel_id=self.marketing_channel_id,
            branch_id=self.branch_id,
            contract_id=self.contract_id,
        )

    def resolved_line_items(self) -> tuple[ExpenseLineItem, ...]:
        if self.line_items:
            return self.line_items
        return (self.synthetic_line_item(),)


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContractLineItem:
    """
    A planned spend line of a contract, with its stable identity.

    ``line_item_id`` is the explicit id, else the legacy key, else
    ``"{contract_id}-line-{position}"`` where ``position`` is the index in
    the contract's input order.
    """

    line_item_id: str
    position: int
    total_amount: Decimal
    start_date: Temporal | None = None
    end_date: Temporal | None = None
    description: str = ""
    explicit_id: str | None = None
    legacy_key: str | None = None
    sector_id: str | None = None
    marketing_channel_id: str | None = None
    branch_id: str | None = None

    def answers_to(self, reference: str) -> bool:
        """True if ``reference`` names this line item by any of its identities."""
        return reference in (self.explicit_id, self.legacy_key, self.line_item_id)


@dataclass(frozen=True)
class NormalizedLineItems:
    """Canonical line items in input order plus a start-date-sorted view."""

    items: tuple[ContractLineItem, ...] = ()
    by_start_date: tuple[ContractLineItem, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def resolve(self, reference: str | None) -> ContractLineItem | None:
        """Resolve a posting's line-item reference to a normalized line item."""
        if not reference:
            return None
        for item in self.items:
            if item.answers_to(reference):
                return item
        return None


@dataclass(frozen=True)
class Contract:
    """A supplier contract with its normalized line items."""

    contract_id: str
    supplier_id: str | None
    signing_date: Temporal | None = None
    description: str = ""
    total_amount: Decimal = Decimal("0")
    line_items: NormalizedLineItems = field(default_factory=NormalizedLineItems)


# ---------------------------------------------------------------------------
# Budgets & master data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetAllocation:
    sector_id: str | None
    marketing_channel_id: str | None
    branch_id: str | None
    budget_amount: Decimal = Decimal("0")

    @property
    def key(self) -> tuple[str | None, str | None, str | None]:
        return (self.sector_id, self.marketing_channel_id, self.branch_id)


@dataclass(frozen=True)
class Budget:
    supplier_id: str
    year: int
    allocations: tuple[BudgetAllocation, ...] = ()
    is_unexpected: bool = False


@dataclass(frozen=True)
class Branch:
    branch_id: str
    name: str
    associated_sector_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Sector:
    sector_id: str
    name: str


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetSummaryDetail:
    """One (sector, channel, branch) row of a budget summary."""

    sector_id: str | None
    marketing_channel_id: str | None
    branch_id: str | None
    budget_amount: Decimal
    detailed_spend: Decimal

    def to_record(self) -> dict:
        return {
            "sectorId": self.sector_id,
            "marketingChannelId": self.marketing_channel_id,
            "branchId": self.branch_id,
            "budgetAmount": str(self.budget_amount),
            "detailedSpend": str(self.detailed_spend),
        }


@dataclass(frozen=True)
class BudgetSummary:
    """
    Budget vs. spend for one (supplier, year).

    Guarantees:
        - ``total_spend`` equals the sum of ``detailed_spend`` over ``details``.
        - ``unattributed_spend`` is the spend that reached no detail row.
    """

    supplier_id: str
    year: int
    total_budget: Decimal
    total_spend: Decimal
    details: tuple[BudgetSummaryDetail, ...]
    is_unexpected: bool
    last_updated: datetime
    unattributed_spend: Decimal = Decimal("0")

    @property
    def key(self) -> tuple[str, int]:
        return (self.supplier_id, self.year)
