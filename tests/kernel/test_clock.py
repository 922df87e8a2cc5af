"""Tests for the Clock implementations."""

from datetime import UTC, date, datetime, timedelta

from spend_kernel.domain.clock import DeterministicClock, SystemClock
from spend_services.overdue_service import ContractOverdueService
from spend_services.summary_store import InMemorySummaryStore


class TestDeterministicClock:
    def test_fixed(self):
        clock = DeterministicClock(datetime(2025, 3, 1, 9, 0, tzinfo=UTC))
        assert clock.now() == clock.now() == datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

    def test_naive_time_is_utc(self):
        clock = DeterministicClock(datetime(2025, 3, 1, 9, 0))
        assert clock.now_utc().tzinfo is not None

    def test_advance_and_set(self):
        clock = DeterministicClock(datetime(2025, 3, 1, 9, 0, tzinfo=UTC))
        clock.advance(3600)
        assert clock.now() == datetime(2025, 3, 1, 10, 0, tzinfo=UTC)
        clock.set_time(datetime(2025, 6, 1))
        assert clock.now() == datetime(2025, 6, 1, tzinfo=UTC)

    def test_service_today_follows_clock(self, source, settings):
        clock = DeterministicClock(datetime(2025, 10, 27, 10, 0, tzinfo=UTC))
        service = ContractOverdueService(source, InMemorySummaryStore(), settings, clock)
        assert service.today() == date(2025, 10, 27)
        # 23:30 UTC on Oct 31 is already Nov 1 in Rome.
        clock.set_time(datetime(2025, 10, 31, 23, 30, tzinfo=UTC))
        assert service.today() == date(2025, 11, 1)


class TestSystemClock:
    def test_aware_and_current(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert abs(datetime.now(UTC) - now) < timedelta(minutes=1)
