"""
Module: spend_engines.attribution
Responsibility:
    Attribute the in-year portion of every expense of a supplier to
    (sector, marketing channel, branch) buckets, fanning out spend booked
    on the generic branch to the real branches associated with its sector.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Uses AccrualProrator for
    the temporal part.

Invariants enforced:
    - Line items of an expense share its in-year amount by their own
      amounts (equally when those sum to 0).
    - A generic-branch amount A fanned out to N branches gives A/N to each
      (the shares sum to A up to Decimal precision).
    - Spend that reaches no bucket is never silently discarded: it is
      totalled on ``SpendAttribution.unattributed`` by reason.

Failure modes:
    - None raised.  Faults while attributing a single line item are
      isolated to that item and counted as ``faulted``.

Usage:
    attributor = SpendAttributor(
        generic_branch_name="generico",
        umbrella_sector_name="Frattin Group",
        unattributed_policy=UnattributedPolicy.DROP,
    )
    result = attributor.attribute(expenses=expenses, branches=branches, sectors=sectors, year=2025)
    result.spend[SpendKey("s1", "c1", "b1")]
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, tzinfo
from decimal import Decimal
from enum import Enum

from spend_engines.accrual import AccrualProrator
from spend_engines.tracer import traced_engine
from spend_kernel.domain.records import Branch, Expense, Sector, SpendKey
from spend_kernel.logging_config import get_logger

logger = get_logger("engines.attribution")

ZERO = Decimal("0")


class UnattributedPolicy(str, Enum):
    """What happens to a line item that lacks a sector, channel or branch."""

    DROP = "drop"  # Excluded from the spend map, counted only
    UNCLASSIFIED = "unclassified"  # Missing dimensions become the unclassified id


@dataclass(frozen=True)
class UnattributedSpend:
    """Spend that reached no bucket, by reason."""

    missing_dimension_total: Decimal = ZERO
    missing_dimension_count: int = 0
    no_fanout_target_total: Decimal = ZERO
    no_fanout_target_count: int = 0
    faulted_total: Decimal = ZERO
    faulted_count: int = 0

    @property
    def total(self) -> Decimal:
        return self.missing_dimension_total + self.no_fanout_target_total + self.faulted_total

    @property
    def count(self) -> int:
        return self.missing_dimension_count + self.no_fanout_target_count + self.faulted_count


@dataclass(frozen=True)
class SpendAttribution:
    year: int
    spend: Mapping[SpendKey, Decimal] = field(default_factory=dict)
    unattributed: UnattributedSpend = field(default_factory=UnattributedSpend)

    @property
    def total(self) -> Decimal:
        return sum(self.spend.values(), ZERO)

    def as_legacy_keys(self) -> dict[str, Decimal]:
        return {key.as_legacy_key(): amount for key, amount in self.spend.items()}


class _Tally:
    def __init__(self) -> None:
        self.totals = {"missing_dimension": ZERO, "no_fanout_target": ZERO, "faulted": ZERO}
        self.counts = {"missing_dimension": 0, "no_fanout_target": 0, "faulted": 0}

    def add(self, reason: str, amount: Decimal) -> None:
        self.totals[reason] += amount
        self.counts[reason] += 1

    def freeze(self) -> UnattributedSpend:
        return UnattributedSpend(
            missing_dimension_total=self.totals["missing_dimension"],
            missing_dimension_count=self.counts["missing_dimension"],
            no_fanout_target_total=self.totals["no_fanout_target"],
            no_fanout_target_count=self.counts["no_fanout_target"],
            faulted_total=self.totals["faulted"],
            faulted_count=self.counts["faulted"],
        )


class SpendAttributor:
    """
    Multi-branch spend attribution for one reporting year.

    Contract:
        The generic branch and the umbrella sector are recognised by name
        (case-insensitive for the branch, exact for the sector), as the
        master data stores them.
    Non-goals:
        - Does not filter expenses by supplier; callers pass the
          supplier's expenses.
    """

    def __init__(
        self,
        *,
        generic_branch_name: str,
        umbrella_sector_name: str,
        unattributed_policy: UnattributedPolicy | str = UnattributedPolicy.DROP,
        unclassified_id: str = "unclassified",
        prorator: AccrualProrator | None = None,
        tz: str | tzinfo | None = None,
    ) -> None:
        self.generic_branch_name = generic_branch_name
        self.umbrella_sector_name = umbrella_sector_name
        self.unattributed_policy = UnattributedPolicy(unattributed_policy)
        self.unclassified_id = unclassified_id
        self._prorator = prorator or AccrualProrator(tz=tz)

    @traced_engine("attribution", "1.0", fingerprint_fields=("expenses", "year"))
    def attribute(
        self,
        expenses: Iterable[Expense],
        branches: Iterable[Branch],
        sectors: Iterable[Sector],
        year: int,
    ) -> SpendAttribution:
        branches = tuple(branches)
        sectors = tuple(sectors)
        generic = self._generic_branch(branches)
        real_branches = tuple(b for b in branches if generic is None or b.branch_id != generic.branch_id)
        umbrella_ids = {s.sector_id for s in sectors if s.name == self.umbrella_sector_name}

        spend: dict[SpendKey, Decimal] = defaultdict(lambda: ZERO)
        tally = _Tally()
        window_start, window_end = date(year, 1, 1), date(year, 12, 31)

        for expense in expenses:
            amount_in_year = self._prorator.prorate(
                item=expense, window_start=window_start, window_end=window_end,
            )
            if amount_in_year <= 0:
                continue

            line_items = expense.resolved_line_items()
            line_total = sum((li.amount for li in line_items), ZERO)
            for line_item in line_items:
                item_amount = ZERO
                try:
                    if line_total > 0:
                        ratio = line_item.amount / line_total
                    else:
                        ratio = Decimal(1) / Decimal(len(line_items))
                    item_amount = amount_in_year * ratio

                    sector_id = line_item.sector_id or expense.sector_id
                    channel_id = line_item.marketing_channel_id or expense.marketing_channel_id
                    branch_id = line_item.branch_id or expense.branch_id

                    if not (sector_id and channel_id and branch_id):
                        if self.unattributed_policy is UnattributedPolicy.DROP:
                            tally.add("missing_dimension", item_amount)
                            logger.info("attribution_missing_dimension", extra={
                                "expense_id": expense.expense_id,
                                "amount": item_amount,
                            })
                            continue
                        sector_id = sector_id or self.unclassified_id
                        channel_id = channel_id or self.unclassified_id
                        branch_id = branch_id or self.unclassified_id

                    if generic is None or branch_id != generic.branch_id:
                        spend[SpendKey(sector_id, channel_id, branch_id)] += item_amount
                        continue

                    if sector_id in umbrella_ids:
                        targets = real_branches
                    else:
                        targets = tuple(
                            b for b in real_branches if sector_id in b.associated_sector_ids
                        )
                    if not targets:
                        tally.add("no_fanout_target", item_amount)
                        logger.info("attribution_no_fanout_target", extra={
                            "expense_id": expense.expense_id,
                            "sector_id": sector_id,
                            "amount": item_amount,
                        })
                        continue

                    share = item_amount / Decimal(len(targets))
                    for target in targets:
                        spend[SpendKey(sector_id, channel_id, target.branch_id)] += share
                except (TypeError, ArithmeticError) as exc:
                    tally.add("faulted", item_amount)
                    logger.warning("attribution_item_faulted", extra={
                        "expense_id": expense.expense_id,
                        "reason": str(exc),
                    })

        return SpendAttribution(year=year, spend=dict(spend), unattributed=tally.freeze())

    def _generic_branch(self, branches: tuple[Branch, ...]) -> Branch | None:
        wanted = self.generic_branch_name.lower()
        for branch in branches:
            if branch.name.lower() == wanted:
                return branch
        return None
