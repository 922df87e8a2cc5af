"""
Module: spend_engines.line_items
Responsibility:
    The normalization boundary.  Turns heterogeneous, legacy-shaped raw
    documents (expenses, contracts, budgets, branches, sectors) into the
    immutable records of ``spend_kernel.domain.records``:
      - stable contract line item identity (explicit id, else legacy key,
        else ``"{contract_id}-line-{index}"`` by INPUT position);
      - a start-date-sorted view that never touches identity;
      - field-name variants resolved through ONE enumerated alias table.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The only module that
    knows raw field names; no other engine re-guesses them.

Invariants enforced:
    - Identity is deterministic for a given input snapshot.
    - Sorting is stable: two items without a start date keep their
      relative input order, and undated items sort last.
    - Unparseable amounts become 0, unparseable dates become None;
      downstream engines turn None dates into zero contributions.

Failure modes:
    - None raised for malformed values; a ``normalization_value_rejected``
      warning is logged instead.  Non-mapping line items are skipped
      (their position is still consumed).

Usage:
    from spend_engines.line_items import LineItemNormalizer

    normalizer = LineItemNormalizer()
    contract = normalizer.contract(raw_contract_document)
    contract.line_items.by_start_date[0]
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any

from spend_engines.daycount import local_midnight, resolve_zone
from spend_kernel.domain.records import (
    Branch,
    Budget,
    BudgetAllocation,
    Contract,
    ContractLineItem,
    Expense,
    ExpenseLineItem,
    NormalizedLineItems,
    Sector,
    Temporal,
)
from spend_kernel.logging_config import get_logger

logger = get_logger("engines.line_items")

# Canonical field -> raw keys, in precedence order.  The first key whose
# value is present (not None, not "") wins.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "legacy_key": ("_key",),
    "supplier_id": ("supplierId",),
    "description": ("description",),
    "name": ("name",),
    "date": ("date",),
    "sector_id": ("sectorId",),
    "marketing_channel_id": ("marketingChannelId", "channelId"),
    "branch_id": ("branchId", "assignmentId"),
    "contract_id": ("contractId", "relatedContractId"),
    "contract_line_item_id": (
        "contractLineItemId",
        "relatedLineItemId",
        "relatedLineItemID",
        "lineItemId",
    ),
    "line_item_amount": ("amount", "totalAmount"),
    "expense_amount": ("totalAmount", "amount"),
    "planned_amount": ("totalAmount", "amount"),
    "start_date": ("startDate",),
    "end_date": ("endDate",),
    "amortization_start": ("amortizationStartDate", "amortizationStart", "startDate"),
    "amortization_end": ("amortizationEndDate", "amortizationEnd", "endDate"),
    "amortized_flags": ("isAmortized", "isProjection"),
    "cost_domain": ("costDomain",),
    "signing_date": ("signingDate",),
    "expense_line_items": ("lineItems",),
    "contract_line_items": ("lineItems", "plannedLineItems"),
    "allocations": ("allocations",),
    "budget_amount": ("budgetAmount",),
    "year": ("year",),
    "is_unexpected": ("isUnexpected",),
    "associated_sectors": ("associatedSectors", "sectorIds"),
}

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Field resolution & coercion
# ---------------------------------------------------------------------------


def _present(value: Any) -> bool:
    return value is not None and value != ""


def resolve_field(raw: Mapping[str, Any], field: str, default: Any = None) -> Any:
    """Value of canonical ``field`` in ``raw`` via the alias table."""
    for key in FIELD_ALIASES[field]:
        value = raw.get(key)
        if _present(value):
            return value
    return default


def resolve_flag(raw: Mapping[str, Any], field: str) -> bool:
    """True if ANY alias of ``field`` carries a truthy value."""
    return any(coerce_bool(raw.get(key)) for key in FIELD_ALIASES[field])


def coerce_text(value: Any) -> str | None:
    if not _present(value):
        return None
    return str(value)


def coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y")
    return bool(value)


def coerce_amount(value: Any) -> Decimal:
    """Decimal amount from a raw number/string; unparseable values become 0."""
    if not _present(value) or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        if isinstance(value, float) and not math.isfinite(value):
            _reject("amount", value)
            return ZERO
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            _reject("amount", value)
            return ZERO
    if not result.is_finite():
        _reject("amount", value)
        return ZERO
    return result


def coerce_year(value: Any) -> int | None:
    """Calendar year from an int, an integral number or a digit string."""
    if not _present(value):
        return None
    if isinstance(value, bool):
        _reject("year", value)
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    if isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    _reject("year", value)
    return None


def _collection(value: Any, kind: str) -> tuple[Any, ...]:
    """Entries of a list-like field; absent is empty, anything else is rejected."""
    if not _present(value):
        return ()
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(value)
    _reject(kind, value)
    return ()


def coerce_temporal(value: Any) -> Temporal | None:
    """A ``date``/``datetime`` from the raw shapes seen in stored documents.

    Accepts dates, datetimes, ISO-8601 strings, exported timestamps
    (``{"_seconds": ...}`` / ``{"seconds": ...}``) and epoch milliseconds.
    """
    if not _present(value):
        return None
    if isinstance(value, (date, datetime)):
        return value
    if isinstance(value, Mapping):
        seconds = value.get("_seconds", value.get("seconds"))
        if seconds is None:
            _reject("date", value)
            return None
        try:
            return datetime.fromtimestamp(float(seconds), tz=UTC)
        except (TypeError, ValueError, OverflowError, OSError):
            _reject("date", value)
            return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (ValueError, OverflowError, OSError):
            _reject("date", value)
            return None
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text)
        except ValueError:
            _reject("date", value)
            return None
    _reject("date", value)
    return None


def _reject(kind: str, value: Any) -> None:
    logger.warning("normalization_value_rejected", extra={
        "kind": kind,
        "value": repr(value),
    })


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------


class LineItemNormalizer:
    """
    Canonicalize raw documents into domain records.

    Contract:
        ``normalize()`` is the contract-line-item entry point; the other
        methods apply the same alias table to the remaining record types.
    Guarantees:
        - Line item identity depends on input position only as a last
          resort and never on sorted position.
    Non-goals:
        - Does not validate business consistency (e.g. line totals vs.
          expense total).
    """

    def __init__(self, tz: str | tzinfo | None = None) -> None:
        self._tz = resolve_zone(tz)

    def normalize(self, parent_id: str, raw_items: Iterable[Any] | None) -> NormalizedLineItems:
        """Normalized contract line items plus their start-date-sorted view."""
        items: list[ContractLineItem] = []
        for index, raw in enumerate(_collection(raw_items, "line_items")):
            if not isinstance(raw, Mapping):
                _reject("line_item", raw)
                continue
            explicit_id = coerce_text(resolve_field(raw, "id"))
            legacy_key = coerce_text(resolve_field(raw, "legacy_key"))
            items.append(ContractLineItem(
                line_item_id=explicit_id or legacy_key or f"{parent_id}-line-{index}",
                position=index,
                total_amount=coerce_amount(resolve_field(raw, "planned_amount")),
                start_date=coerce_temporal(resolve_field(raw, "start_date")),
                end_date=coerce_temporal(resolve_field(raw, "end_date")),
                description=coerce_text(resolve_field(raw, "description")) or "",
                explicit_id=explicit_id,
                legacy_key=legacy_key,
                sector_id=coerce_text(resolve_field(raw, "sector_id")),
                marketing_channel_id=coerce_text(resolve_field(raw, "marketing_channel_id")),
                branch_id=coerce_text(resolve_field(raw, "branch_id")),
            ))
        return NormalizedLineItems(
            items=tuple(items),
            by_start_date=tuple(sorted(items, key=self._start_sort_key)),
        )

    def _start_sort_key(self, item: ContractLineItem) -> tuple[int, datetime | None]:
        if item.start_date is None:
            return (1, None)
        return (0, local_midnight(item.start_date, self._tz))

    def expense_line_items(self, raw_items: Iterable[Any] | None) -> tuple[ExpenseLineItem, ...]:
        items: list[ExpenseLineItem] = []
        for raw in _collection(raw_items, "line_items"):
            if not isinstance(raw, Mapping):
                _reject("line_item", raw)
                continue
            items.append(ExpenseLineItem(
                amount=coerce_amount(resolve_field(raw, "line_item_amount")),
                description=coerce_text(resolve_field(raw, "description")) or "",
                sector_id=coerce_text(resolve_field(raw, "sector_id")),
                marketing_channel_id=coerce_text(resolve_field(raw, "marketing_channel_id")),
                branch_id=coerce_text(resolve_field(raw, "branch_id")),
                contract_id=coerce_text(resolve_field(raw, "contract_id")),
                contract_line_item_id=coerce_text(resolve_field(raw, "contract_line_item_id")),
            ))
        return tuple(items)

    def expense(self, raw: Mapping[str, Any]) -> Expense:
        return Expense(
            expense_id=coerce_text(resolve_field(raw, "id")) or "",
            supplier_id=coerce_text(resolve_field(raw, "supplier_id")),
            date=coerce_temporal(resolve_field(raw, "date")),
            total_amount=coerce_amount(resolve_field(raw, "expense_amount")),
            cost_domain=coerce_text(resolve_field(raw, "cost_domain")),
            is_amortized=resolve_flag(raw, "amortized_flags"),
            amortization_start=coerce_temporal(resolve_field(raw, "amortization_start")),
            amortization_end=coerce_temporal(resolve_field(raw, "amortization_end")),
            description=coerce_text(resolve_field(raw, "description")) or "",
            sector_id=coerce_text(resolve_field(raw, "sector_id")),
            marketing_channel_id=coerce_text(resolve_field(raw, "marketing_channel_id")),
            branch_id=coerce_text(resolve_field(raw, "branch_id")),
            contract_id=coerce_text(resolve_field(raw, "contract_id")),
            line_items=self.expense_line_items(resolve_field(raw, "expense_line_items")),
        )

    def contract(self, raw: Mapping[str, Any]) -> Contract:
        contract_id = coerce_text(resolve_field(raw, "id")) or ""
        return Contract(
            contract_id=contract_id,
            supplier_id=coerce_text(resolve_field(raw, "supplier_id")),
            signing_date=coerce_temporal(resolve_field(raw, "signing_date")),
            description=coerce_text(resolve_field(raw, "description")) or "",
            total_amount=coerce_amount(resolve_field(raw, "planned_amount")),
            line_items=self.normalize(contract_id, resolve_field(raw, "contract_line_items")),
        )

    def budget(self, raw: Mapping[str, Any]) -> Budget | None:
        """A Budget, or None when the record has no usable year."""
        supplier_id = coerce_text(resolve_field(raw, "supplier_id")) or ""
        year = coerce_year(resolve_field(raw, "year"))
        if year is None:
            logger.warning("budget_skipped", extra={
                "supplier_id": supplier_id,
                "reason": "year",
            })
            return None
        allocations = tuple(
            BudgetAllocation(
                sector_id=coerce_text(resolve_field(alloc, "sector_id")),
                marketing_channel_id=coerce_text(resolve_field(alloc, "marketing_channel_id")),
                branch_id=coerce_text(resolve_field(alloc, "branch_id")),
                budget_amount=coerce_amount(resolve_field(alloc, "budget_amount")),
            )
            for alloc in _collection(resolve_field(raw, "allocations"), "allocations")
            if isinstance(alloc, Mapping)
        )
        return Budget(
            supplier_id=supplier_id,
            year=year,
            allocations=allocations,
            is_unexpected=coerce_bool(resolve_field(raw, "is_unexpected", False)),
        )

    def branch(self, raw: Mapping[str, Any]) -> Branch:
        sectors = _collection(resolve_field(raw, "associated_sectors"), "associated_sectors")
        return Branch(
            branch_id=coerce_text(resolve_field(raw, "id")) or "",
            name=coerce_text(resolve_field(raw, "name")) or "",
            associated_sector_ids=frozenset(str(s) for s in sectors if _present(s)),
        )

    def sector(self, raw: Mapping[str, Any]) -> Sector:
        return Sector(
            sector_id=coerce_text(resolve_field(raw, "id")) or "",
            name=coerce_text(resolve_field(raw, "name")) or "",
        )
