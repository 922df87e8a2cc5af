"""
Module: spend_engines.daycount
Responsibility:
    Day-granularity date arithmetic shared by every engine: local-midnight
    truncation in a configured timezone, calendar-day differences, and the
    two whole-day rounding conventions used by overdue computation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Every temporal value is interpreted in ONE IANA timezone.  Naive
      datetimes and plain dates are local to that zone; aware datetimes
      are converted into it before truncation.
    - Span arithmetic is done on UTC instants, so a span that crosses a
      DST transition is a fractional number of days (e.g. 30 days + 1 h).
    - ``DayRounding.NEAREST`` and ``DayRounding.CEILING`` only disagree on
      such fractional spans.

Failure modes:
    - ``ZoneInfoNotFoundError`` for an unknown timezone name.
    - ``TypeError`` for values that are not ``date``/``datetime``; callers
      that must degrade (proration, overdue) catch it per item.

Usage:
    from spend_engines.daycount import DayRounding, day_count

    day_count(date(2025, 10, 1), date(2025, 10, 31), DayRounding.CEILING)  # 31
    day_count(date(2025, 10, 1), date(2025, 10, 31), DayRounding.NEAREST)  # 30
"""

from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from enum import Enum
from functools import lru_cache
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/Rome"

_SECONDS_PER_DAY = Decimal(86400)


class DayRounding(str, Enum):
    """Convention for turning a (possibly fractional) day span into whole days."""

    NEAREST = "nearest"  # Round half up
    CEILING = "ceiling"  # Always up


@lru_cache(maxsize=32)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def resolve_zone(tz: str | tzinfo | None) -> tzinfo:
    """Accept a zone name, a tzinfo, or None (the default zone)."""
    if tz is None:
        return _zone(DEFAULT_TIMEZONE)
    if isinstance(tz, str):
        return _zone(tz)
    return tz


def local_date(value: date | datetime, tz: str | tzinfo | None = None) -> date:
    """Calendar day of ``value`` in the configured zone."""
    if isinstance(value, datetime):
        zone = resolve_zone(tz)
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(zone).date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def local_midnight(value: date | datetime, tz: str | tzinfo | None = None) -> datetime:
    """Start (00:00:00.000) of the local calendar day containing ``value``."""
    day = local_date(value, tz)
    return datetime(day.year, day.month, day.day, tzinfo=resolve_zone(tz))


def calendar_days(start: date | datetime, end: date | datetime, tz: str | tzinfo | None = None) -> int:
    """Whole calendar days from ``start``'s day to ``end``'s day (may be negative)."""
    return (local_date(end, tz) - local_date(start, tz)).days


def day_span(start: date | datetime, end: date | datetime, tz: str | tzinfo | None = None) -> Decimal:
    """Elapsed days between the local midnights of ``start`` and ``end``.

    Fractional when the span crosses a DST transition.
    """
    a = local_midnight(start, tz).astimezone(timezone.utc)
    b = local_midnight(end, tz).astimezone(timezone.utc)
    delta = b - a
    seconds = Decimal(delta.days * 86400 + delta.seconds)
    return seconds / _SECONDS_PER_DAY


def whole_days(span: Decimal, rounding: DayRounding) -> int:
    """Apply a rounding convention to a day span."""
    match DayRounding(rounding):
        case DayRounding.NEAREST:
            return int(span.quantize(Decimal(1), rounding=ROUND_HALF_UP))
        case DayRounding.CEILING:
            return int(span.to_integral_value(rounding=ROUND_CEILING))


def day_count(
    start: date | datetime,
    end: date | datetime,
    rounding: DayRounding = DayRounding.NEAREST,
    tz: str | tzinfo | None = None,
) -> int:
    """Whole days between two day-truncated values under ``rounding``."""
    return whole_days(day_span(start, end, tz), rounding)
