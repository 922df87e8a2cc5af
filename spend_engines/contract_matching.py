"""
Module: spend_engines.contract_matching
Responsibility:
    Place expense postings on the line items of ONE contract, producing
    per-line-item ``spent_total`` and ``spent_to_date`` figures for the
    overdue calculation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumes records
    produced by ``spend_engines.line_items``; never looks at raw fields.

Matching order per posting (a posting is an expense line item whose
contract reference is this contract, or the synthetic whole-expense item
of an expense whose own contract reference matches and that has no
line items):
    1. Direct link -- the posting's line item reference resolves to one
       of the contract's line items (explicit id, legacy key, or
       normalized id).  Optionally, a description match counts as a
       direct link.  Not available to synthetic postings.
    2. Active split -- line items whose day-truncated window contains the
       expense date share the amount proportionally to their totals
       (equally when the active total is <= 0).  Not available to
       synthetic postings.
    3. Unmatched strategy -- ``UnmatchedAllocation.FIRST`` credits the
       chronologically first line item; ``PROPORTIONAL_ALL`` splits over
       every line item by total (equally when all totals are <= 0).

Invariants enforced:
    - Every share is >= 0 for a non-negative posting and the shares of a
      posting sum to its amount.
    - ``spent_to_date`` only includes postings dated on or before today.
    - Zero-amount postings and contracts without line items are no-ops.

Failure modes:
    - None raised.  A posting without a usable expense date cannot be
      placed in time; it contributes nothing and is reported through
      ``ContractAllocation.unallocated_total``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from decimal import Decimal
from enum import Enum

from spend_engines.daycount import local_date, resolve_zone
from spend_engines.tracer import traced_engine
from spend_kernel.domain.records import Contract, ContractLineItem, Expense, ExpenseLineItem
from spend_kernel.logging_config import get_logger

logger = get_logger("engines.contract_matching")

ZERO = Decimal("0")


class UnmatchedAllocation(str, Enum):
    """Distribution of a posting that neither links to nor falls inside a line item."""

    FIRST = "first"
    PROPORTIONAL_ALL = "proportional-all"


@dataclass(frozen=True)
class LineItemSpend:
    spent_total: Decimal = ZERO
    spent_to_date: Decimal = ZERO


@dataclass(frozen=True)
class ContractAllocation:
    """
    Spend placed on each line item of a contract.

    Guarantees:
        - ``spend`` has an entry for every normalized line item id.
        - ``unallocated_total`` is the posting amount that could not be
          placed (missing expense date).
    """

    contract_id: str
    spend: Mapping[str, LineItemSpend] = field(default_factory=dict)
    unallocated_total: Decimal = ZERO
    unallocated_count: int = 0

    def for_item(self, line_item_id: str) -> LineItemSpend:
        return self.spend.get(line_item_id, LineItemSpend())

    @property
    def spent_total(self) -> Decimal:
        return sum((s.spent_total for s in self.spend.values()), ZERO)

    @property
    def spent_to_date(self) -> Decimal:
        return sum((s.spent_to_date for s in self.spend.values()), ZERO)


class _Ledger:
    """Mutable accumulator used while a single allocation runs."""

    def __init__(self, items: Iterable[ContractLineItem]) -> None:
        self.totals = {item.line_item_id: ZERO for item in items}
        self.to_date = dict(self.totals)

    def credit(self, item: ContractLineItem, amount: Decimal, up_to_today: bool) -> None:
        self.totals[item.line_item_id] += amount
        if up_to_today:
            self.to_date[item.line_item_id] += amount


def split_by_totals(
    items: tuple[ContractLineItem, ...],
    amount: Decimal,
) -> list[tuple[ContractLineItem, Decimal]]:
    """Split ``amount`` over ``items`` proportionally to their totals.

    Falls back to an equal split when the totals sum to <= 0.  The last
    share absorbs the division remainder so the shares sum exactly.
    """
    if not items:
        return []
    weight_sum = sum((item.total_amount for item in items), ZERO)
    if weight_sum <= 0:
        weights = [Decimal(1)] * len(items)
        weight_sum = Decimal(len(items))
    else:
        # Negative totals inside a positive sum would produce negative shares.
        weights = [max(item.total_amount, ZERO) for item in items]
        weight_sum = sum(weights, ZERO)

    shares: list[tuple[ContractLineItem, Decimal]] = []
    allocated = ZERO
    for index, (item, weight) in enumerate(zip(items, weights)):
        if index == len(items) - 1:
            share = amount - allocated
        else:
            share = amount * weight / weight_sum
            allocated += share
        shares.append((item, share))
    return shares


def _describes(line_item: ContractLineItem, description: str) -> bool:
    wanted = description.strip().lower()
    have = line_item.description.strip().lower()
    if not wanted or not have:
        return False
    return wanted in have or have in wanted


class ContractAllocationMatcher:
    """
    Places expense postings on a contract's line items.

    Contract:
        ``allocate(contract=..., expenses=..., today=...)`` is a pure
        function of its arguments and the constructor settings.
    Non-goals:
        - Does not check that postings add up to the expense total.
    """

    def __init__(
        self,
        *,
        unmatched: UnmatchedAllocation | str,
        description_linking: bool = False,
        tz: str | tzinfo | None = None,
    ) -> None:
        self.unmatched = UnmatchedAllocation(unmatched)
        self.description_linking = description_linking
        self._tz = resolve_zone(tz)

    @traced_engine("contract_matching", "1.0", fingerprint_fields=("contract", "today"))
    def allocate(
        self,
        contract: Contract,
        expenses: Iterable[Expense],
        today: date | datetime,
    ) -> ContractAllocation:
        line_items = contract.line_items
        if not len(line_items):
            return ContractAllocation(contract_id=contract.contract_id)

        today_day = local_date(today, self._tz)
        ledger = _Ledger(line_items.items)
        unallocated_total = ZERO
        unallocated_count = 0

        for expense in expenses:
            postings = [
                li for li in expense.line_items
                if li.contract_id == contract.contract_id
            ]
            synthetic = False
            if not expense.line_items and expense.contract_id == contract.contract_id:
                postings = [expense.synthetic_line_item()]
                synthetic = True

            for posting in postings:
                if posting.amount == 0:
                    continue
                expense_day = self._expense_day(expense)
                if expense_day is None:
                    unallocated_total += posting.amount
                    unallocated_count += 1
                    logger.warning("posting_without_date", extra={
                        "contract_id": contract.contract_id,
                        "expense_id": expense.expense_id,
                        "amount": posting.amount,
                    })
                    continue
                up_to_today = expense_day <= today_day
                for item, share in self._place(contract, posting, expense_day, synthetic):
                    ledger.credit(item, share, up_to_today)

        spend = {
            item.line_item_id: LineItemSpend(
                spent_total=ledger.totals[item.line_item_id],
                spent_to_date=ledger.to_date[item.line_item_id],
            )
            for item in line_items
        }
        return ContractAllocation(
            contract_id=contract.contract_id,
            spend=spend,
            unallocated_total=unallocated_total,
            unallocated_count=unallocated_count,
        )

    def _expense_day(self, expense: Expense) -> date | None:
        if expense.date is None:
            return None
        try:
            return local_date(expense.date, self._tz)
        except TypeError:
            return None

    def _place(
        self,
        contract: Contract,
        posting: ExpenseLineItem,
        expense_day: date,
        synthetic: bool,
    ) -> list[tuple[ContractLineItem, Decimal]]:
        line_items = contract.line_items
        if not synthetic:
            linked = self._direct_link(contract, posting)
            if linked is not None:
                return [(linked, posting.amount)]

            active = self._active_items(line_items.by_start_date, expense_day)
            if active:
                return split_by_totals(active, posting.amount)

        match self.unmatched:
            case UnmatchedAllocation.FIRST:
                return [(line_items.by_start_date[0], posting.amount)]
            case UnmatchedAllocation.PROPORTIONAL_ALL:
                return split_by_totals(line_items.items, posting.amount)

    def _direct_link(self, contract: Contract, posting: ExpenseLineItem) -> ContractLineItem | None:
        linked = contract.line_items.resolve(posting.contract_line_item_id)
        if linked is not None:
            return linked
        if posting.contract_line_item_id:
            logger.info("line_item_reference_unresolved", extra={
                "contract_id": contract.contract_id,
                "reference": posting.contract_line_item_id,
            })
        if self.description_linking and posting.description:
            for item in contract.line_items:
                if _describes(item, posting.description):
                    return item
        return None

    def _active_items(
        self,
        items: tuple[ContractLineItem, ...],
        expense_day: date,
    ) -> tuple[ContractLineItem, ...]:
        active: list[ContractLineItem] = []
        for item in items:
            if item.start_date is None or item.end_date is None:
                continue
            try:
                start = local_date(item.start_date, self._tz)
                end = local_date(item.end_date, self._tz)
            except TypeError:
                continue
            if start <= expense_day <= end:
                active.append(item)
        return tuple(active)
