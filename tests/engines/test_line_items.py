"""
Tests for LineItemNormalizer and the raw-field helpers.

Covers:
- Stable line item identity (explicit id, legacy key, positional)
- Start-date sorting that never changes identity
- Field-name variants resolved through the alias table
- Coercion of amounts and temporal values
- Malformed budget years and list fields rejected without aborting
"""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from spend_engines.line_items import (
    FIELD_ALIASES,
    LineItemNormalizer,
    coerce_amount,
    coerce_bool,
    coerce_temporal,
    resolve_field,
    resolve_flag,
)


class TestIdentity:
    """Line item ids are computed once, from input position as a last resort."""

    def setup_method(self):
        self.normalizer = LineItemNormalizer()

    def test_explicit_id_wins(self):
        items = self.normalizer.normalize("c-1", [{"id": "x", "_key": "k", "totalAmount": 1}])
        assert items.items[0].line_item_id == "x"

    def test_legacy_key_second(self):
        items = self.normalizer.normalize("c-1", [{"_key": "k", "totalAmount": 1}])
        assert items.items[0].line_item_id == "k"

    def test_positional_fallback_uses_input_order(self):
        raw = [
            {"totalAmount": 100, "startDate": "2025-06-01"},
            {"totalAmount": 200, "startDate": "2025-01-01"},
        ]
        items = self.normalizer.normalize("c-1", raw)
        assert [i.line_item_id for i in items.items] == ["c-1-line-0", "c-1-line-1"]
        # Sorting does not renumber.
        assert [i.line_item_id for i in items.by_start_date] == ["c-1-line-1", "c-1-line-0"]

    def test_skipped_entry_still_consumes_position(self, captured_logs):
        items = self.normalizer.normalize("c-1", ["garbage", {"totalAmount": 5}])
        assert len(items) == 1
        assert items.items[0].line_item_id == "c-1-line-1"
        assert any(r["message"] == "normalization_value_rejected" for r in captured_logs())

    def test_resolve_by_any_identity(self):
        items = self.normalizer.normalize("c-1", [
            {"id": "x", "_key": "k", "totalAmount": 1},
            {"totalAmount": 2},
        ])
        assert items.resolve("x").position == 0
        assert items.resolve("k").position == 0
        assert items.resolve("c-1-line-1").position == 1
        assert items.resolve("nope") is None
        assert items.resolve(None) is None

    def test_same_input_same_identity(self):
        raw = [{"totalAmount": 1}, {"_key": "k"}, {"totalAmount": 3}]
        first = self.normalizer.normalize("c-9", raw)
        second = self.normalizer.normalize("c-9", raw)
        assert first == second


class TestStartDateSorting:
    def setup_method(self):
        self.normalizer = LineItemNormalizer()

    def test_undated_items_last_and_stable(self):
        raw = [
            {"id": "u1"},
            {"id": "late", "startDate": "2025-09-01"},
            {"id": "u2"},
            {"id": "early", "startDate": "2025-02-01"},
        ]
        items = self.normalizer.normalize("c-1", raw)
        assert [i.line_item_id for i in items.by_start_date] == ["early", "late", "u1", "u2"]

    def test_mixed_date_shapes_compare_by_local_day(self):
        raw = [
            {"id": "b", "startDate": "2025-03-02"},
            # 2025-03-01 23:30 UTC is March 2 in Rome, same day as "b"
            {"id": "a", "startDate": {"_seconds": datetime(2025, 3, 1, 23, 30, tzinfo=UTC).timestamp()}},
            {"id": "c", "startDate": "2025-03-01"},
        ]
        items = self.normalizer.normalize("c-1", raw)
        assert [i.line_item_id for i in items.by_start_date] == ["c", "b", "a"]


class TestFieldAliases:
    def test_first_present_alias_wins(self):
        raw = {"contractId": "", "relatedContractId": "c-2"}
        assert resolve_field(raw, "contract_id") == "c-2"

    def test_default_when_absent(self):
        assert resolve_field({}, "contract_id", "none") == "none"

    def test_flag_true_if_any_alias_truthy(self):
        assert resolve_flag({"isAmortized": False, "isProjection": True}, "amortized_flags")
        assert not resolve_flag({}, "amortized_flags")

    def test_every_line_item_reference_spelling(self):
        normalizer = LineItemNormalizer()
        for key in FIELD_ALIASES["contract_line_item_id"]:
            (item,) = normalizer.expense_line_items([{key: "li-1", "amount": 1}])
            assert item.contract_line_item_id == "li-1"

    def test_expense_line_item_variants(self):
        (item,) = LineItemNormalizer().expense_line_items([{
            "totalAmount": "12.50",
            "channelId": "ch",
            "assignmentId": "b",
            "relatedContractId": "c",
            "relatedLineItemID": "li",
        }])
        assert item.amount == Decimal("12.50")
        assert item.marketing_channel_id == "ch"
        assert item.branch_id == "b"
        assert item.contract_id == "c"
        assert item.contract_line_item_id == "li"


class TestRecordNormalization:
    def setup_method(self):
        self.normalizer = LineItemNormalizer()

    def test_expense(self):
        expense = self.normalizer.expense({
            "id": "e-1",
            "supplierId": "sup-1",
            "date": "2025-02-01",
            "amount": "99.90",
            "isProjection": "true",
            "startDate": "2025-01-01",
            "endDate": "2025-03-31",
        })
        assert expense.expense_id == "e-1"
        assert expense.total_amount == Decimal("99.90")
        assert expense.is_amortized
        assert expense.amortization_start == date(2025, 1, 1)
        assert expense.amortization_end == date(2025, 3, 31)

    def test_contract_planned_line_items(self):
        contract = self.normalizer.contract({
            "id": "c-1",
            "supplierId": "sup-1",
            "totalAmount": 100,
            "plannedLineItems": [{"amount": 100}],
        })
        assert contract.line_items.items[0].line_item_id == "c-1-line-0"
        assert contract.line_items.items[0].total_amount == Decimal("100")

    def test_budget(self):
        budget = self.normalizer.budget({
            "supplierId": "sup-1",
            "year": "2025",
            "isUnexpected": True,
            "allocations": [
                {"sectorId": "s", "marketingChannelId": "c", "branchId": "b", "budgetAmount": 10},
                "not-a-mapping",
            ],
        })
        assert budget.year == 2025
        assert budget.is_unexpected
        assert len(budget.allocations) == 1
        assert budget.allocations[0].key == ("s", "c", "b")

    def test_branch_sector_ids(self):
        branch = self.normalizer.branch({"id": "b", "name": "Treviso", "sectorIds": ["s1", "", "s2"]})
        assert branch.associated_sector_ids == frozenset({"s1", "s2"})

    @pytest.mark.parametrize("year", ["2025/26", "", None, True, 2025.5, {"y": 2025}])
    def test_budget_without_usable_year_skipped(self, year, captured_logs):
        budget = self.normalizer.budget({"supplierId": "sup-1", "year": year})
        assert budget is None
        assert any(
            r["message"] == "budget_skipped" and r["supplier_id"] == "sup-1"
            for r in captured_logs()
        )

    @pytest.mark.parametrize("year", [2025, "2025", " 2025 ", 2025.0, Decimal("2025")])
    def test_budget_year_shapes(self, year):
        assert self.normalizer.budget({"supplierId": "sup-1", "year": year}).year == 2025

    def test_budget_allocations_not_a_list(self, captured_logs):
        budget = self.normalizer.budget({"supplierId": "sup-1", "year": 2025, "allocations": 12})
        assert budget.allocations == ()
        assert any(
            r["message"] == "normalization_value_rejected" and r["kind"] == "allocations"
            for r in captured_logs()
        )

    @pytest.mark.parametrize("sectors", [7, "s-retail", {"id": "s-retail"}])
    def test_branch_sectors_not_a_list(self, sectors, captured_logs):
        branch = self.normalizer.branch({"id": "b", "name": "Treviso", "associatedSectors": sectors})
        assert branch.associated_sector_ids == frozenset()
        assert any(
            r["message"] == "normalization_value_rejected" and r["kind"] == "associated_sectors"
            for r in captured_logs()
        )

    def test_line_items_not_a_list(self):
        contract = self.normalizer.contract({"id": "c-1", "lineItems": 5})
        assert contract.line_items.items == ()
        expense = self.normalizer.expense({"id": "e-1", "lineItems": "li-a"})
        assert expense.line_items == ()


class TestCoercion:
    @pytest.mark.parametrize("raw,expected", [
        (10, Decimal("10")),
        ("10.5", Decimal("10.5")),
        (" 7 ", Decimal("7")),
        (Decimal("1.25"), Decimal("1.25")),
        (None, Decimal("0")),
        ("", Decimal("0")),
        ("abc", Decimal("0")),
        (float("nan"), Decimal("0")),
        (float("inf"), Decimal("0")),
        ("NaN", Decimal("0")),
        (True, Decimal("0")),
    ])
    def test_amount(self, raw, expected):
        assert coerce_amount(raw) == expected

    def test_temporal_shapes(self):
        assert coerce_temporal("2025-01-02") == date(2025, 1, 2)
        assert coerce_temporal("2025-01-02T10:00:00+00:00") == datetime(2025, 1, 2, 10, tzinfo=UTC)
        assert coerce_temporal({"seconds": 0}) == datetime(1970, 1, 1, tzinfo=UTC)
        assert coerce_temporal(86_400_000) == datetime(1970, 1, 2, tzinfo=UTC)
        assert coerce_temporal(date(2025, 1, 1)) == date(2025, 1, 1)

    @pytest.mark.parametrize("raw", [None, "", "not a date", {"nanos": 1}, [1, 2]])
    def test_temporal_rejected(self, raw):
        assert coerce_temporal(raw) is None

    @pytest.mark.parametrize("raw,expected", [
        (True, True), ("true", True), ("Yes", True), ("0", False), (None, False), (0, False),
    ])
    def test_bool(self, raw, expected):
        assert coerce_bool(raw) is expected
