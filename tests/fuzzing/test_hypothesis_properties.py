"""
Property-based tests for the calculation engines.

Properties:
- Accrual: the portions of an amortized amount over the calendar years
  its range touches add back up to the amount.
- Splits: shares are non-negative and sum exactly to the posting.
- Overdue: 0 <= overdue <= remaining for every line item, under every
  variant.
- Normalization: identity never depends on sort order; the sorted view
  is a permutation of the input.
- Fan-out: generic-branch spend is conserved across target branches.
"""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from spend_engines.accrual import AccrualProrator
from spend_engines.attribution import SpendAttributor
from spend_engines.contract_matching import (
    ContractAllocationMatcher,
    UnmatchedAllocation,
    split_by_totals,
)
from spend_engines.daycount import DayRounding
from spend_engines.line_items import LineItemNormalizer
from spend_engines.overdue import OverdueCalculator
from spend_kernel.domain.records import Branch, Expense, ExpenseLineItem, Sector

amounts = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=2,
    allow_nan=False, allow_infinity=False,
)
days = st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31))
TOLERANCE = Decimal("0.000001")


@st.composite
def ranges(draw):
    start = draw(days)
    length = draw(st.integers(min_value=0, max_value=900))
    return start, start + timedelta(days=length)


@st.composite
def raw_line_items(draw):
    count = draw(st.integers(min_value=1, max_value=6))
    items = []
    for _ in range(count):
        start, end = draw(ranges())
        item = {"totalAmount": str(draw(st.decimals(
            min_value=Decimal("-100"), max_value=Decimal("10000"), places=2,
        )))}
        if draw(st.booleans()):
            item["startDate"] = start.isoformat()
            item["endDate"] = end.isoformat()
        items.append(item)
    return items


class TestAccrualProperties:
    @given(amount=amounts, span=ranges())
    @settings(max_examples=200, deadline=None)
    def test_years_tile_the_range(self, amount, span):
        start, end = span
        expense = Expense(
            expense_id="e", supplier_id="s", date=start, total_amount=amount,
            is_amortized=True, amortization_start=start, amortization_end=end,
        )
        prorator = AccrualProrator()
        total = sum(
            (prorator.prorate_year(expense, year) for year in range(start.year, end.year + 1)),
            Decimal("0"),
        )
        assert abs(total - amount) <= TOLERANCE

    @given(amount=amounts, when=days, year=st.integers(min_value=2019, max_value=2031))
    def test_single_date_all_or_nothing(self, amount, when, year):
        expense = Expense(expense_id="e", supplier_id="s", date=when, total_amount=amount)
        portion = AccrualProrator().prorate_year(expense, year)
        assert portion == (amount if when.year == year else Decimal("0"))


class TestSplitProperties:
    @given(raw=raw_line_items(), amount=amounts)
    def test_shares_non_negative_and_exact(self, raw, amount):
        items = LineItemNormalizer().normalize("c", raw).items
        shares = split_by_totals(items, amount)
        assert len(shares) == len(items)
        assert all(share >= -TOLERANCE for _, share in shares)
        assert sum((share for _, share in shares), Decimal("0")) == amount


class TestOverdueProperties:
    @given(
        raw=raw_line_items(),
        postings=st.lists(st.tuples(amounts, days), max_size=5),
        today=days,
        unmatched=st.sampled_from(list(UnmatchedAllocation)),
        rounding=st.sampled_from(list(DayRounding)),
        start_gate=st.booleans(),
    )
    @settings(max_examples=150, deadline=None)
    def test_overdue_bounded_by_remaining(self, raw, postings, today, unmatched, rounding, start_gate):
        contract = LineItemNormalizer().contract({"id": "c", "lineItems": raw})
        expenses = [
            Expense(
                expense_id=f"e{i}", supplier_id="s", date=when, total_amount=amount,
                line_items=(ExpenseLineItem(amount=amount, contract_id="c"),),
            )
            for i, (amount, when) in enumerate(postings)
        ]
        allocation = ContractAllocationMatcher(unmatched=unmatched).allocate(
            contract=contract, expenses=expenses, today=today,
        )
        result = OverdueCalculator(rounding=rounding, start_gate=start_gate).overdue(
            contract=contract, allocation=allocation, today=today,
        )

        for item in result.line_items:
            assert Decimal("0") <= item.overdue <= item.remaining
            assert not item.faulted
        assert result.total_overdue == sum((i.overdue for i in result.line_items), Decimal("0"))
        positive_total = sum((max(i.total_amount, Decimal("0")) for i in result.line_items), Decimal("0"))
        assert result.total_overdue <= positive_total
        # Every dated posting lands on some line item.
        placed = sum((amount for amount, _ in postings), Decimal("0"))
        assert abs(allocation.spent_total - placed) <= TOLERANCE


class TestNormalizationProperties:
    @given(raw=raw_line_items())
    def test_sorted_view_is_permutation_with_same_ids(self, raw):
        normalized = LineItemNormalizer().normalize("c", raw)
        assert sorted(i.line_item_id for i in normalized.by_start_date) == sorted(
            i.line_item_id for i in normalized.items
        )
        assert [i.line_item_id for i in normalized.items] == [f"c-line-{n}" for n in range(len(raw))]

    @given(raw=raw_line_items())
    def test_identity_ignores_other_items_dates(self, raw):
        """Changing start dates reorders the sorted view, never the ids."""
        shifted = [{**item, "startDate": "2031-01-01"} for item in raw]
        first = LineItemNormalizer().normalize("c", raw)
        second = LineItemNormalizer().normalize("c", shifted)
        assert [i.line_item_id for i in first.items] == [i.line_item_id for i in second.items]


class TestFanOutProperties:
    @given(amount=amounts, branch_count=st.integers(min_value=1, max_value=12))
    def test_generic_spend_conserved(self, amount, branch_count):
        branches = [Branch("g", "generico")] + [
            Branch(f"b{n}", f"Branch {n}", frozenset({"s"})) for n in range(branch_count)
        ]
        expense = Expense(
            expense_id="e", supplier_id="s", date=date(2025, 5, 1), total_amount=amount,
            sector_id="s", marketing_channel_id="c", branch_id="g",
        )
        result = SpendAttributor(
            generic_branch_name="generico", umbrella_sector_name="Umbrella",
        ).attribute(expenses=[expense], branches=branches, sectors=[Sector("s", "S")], year=2025)

        assert len(result.spend) == branch_count
        assert abs(result.total - amount) <= TOLERANCE
        assert result.unattributed.count == 0
