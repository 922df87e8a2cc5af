"""
spend_services.triggers -- Which summaries a document change invalidates.

Responsibility:
    Map a create/update/delete of an expense, contract or budget document
    to the (supplier_id, year) summary keys that must be recomputed.

Rules:
    - expense  -> the year of its date; an amortized expense also every
      year its accrual window overlaps.
    - contract -> the year of its signing date.
    - budget   -> its year.
    Both the before and after images count, so moving a document between
    suppliers or years recomputes the old key as well as the new one.
    A document without a supplier or a usable date/year yields no key.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import tzinfo
from enum import Enum
from typing import Any

from spend_engines.daycount import local_date, resolve_zone
from spend_engines.line_items import coerce_temporal, coerce_text, coerce_year, resolve_field, resolve_flag
from spend_kernel.logging_config import get_logger

logger = get_logger("services.triggers")

SummaryKey = tuple[str, int]


class ChangeKind(str, Enum):
    EXPENSE = "expense"
    CONTRACT = "contract"
    BUDGET = "budget"


def _year_of(value: Any, tz: tzinfo) -> int | None:
    moment = coerce_temporal(value)
    if moment is None:
        return None
    return local_date(moment, tz).year


def _keys_for(kind: ChangeKind, document: Mapping[str, Any], tz: tzinfo) -> list[SummaryKey]:
    supplier_id = coerce_text(resolve_field(document, "supplier_id"))
    if not supplier_id:
        return []

    years: list[int] = []
    match kind:
        case ChangeKind.EXPENSE:
            year = _year_of(resolve_field(document, "date"), tz)
            if year is not None:
                years.append(year)
            if resolve_flag(document, "amortized_flags"):
                first = _year_of(resolve_field(document, "amortization_start"), tz)
                last = _year_of(resolve_field(document, "amortization_end"), tz)
                if first is not None and last is not None and first <= last:
                    years.extend(range(first, last + 1))
        case ChangeKind.CONTRACT:
            year = _year_of(resolve_field(document, "signing_date"), tz)
            if year is not None:
                years.append(year)
        case ChangeKind.BUDGET:
            year = coerce_year(resolve_field(document, "year"))
            if year is not None:
                years.append(year)
    return [(supplier_id, year) for year in years]


def affected_summary_keys(
    kind: ChangeKind | str,
    before: Mapping[str, Any] | None,
    after: Mapping[str, Any] | None,
    tz: str | tzinfo | None = None,
) -> tuple[SummaryKey, ...]:
    """Summary keys to recompute after a change; sorted, without duplicates."""
    kind = ChangeKind(kind)
    zone = resolve_zone(tz)
    keys: set[SummaryKey] = set()
    for document in (before, after):
        if document:
            keys.update(_keys_for(kind, document, zone))
    if not keys:
        logger.info("change_without_summary_key", extra={"kind": kind.value})
    return tuple(sorted(keys))
