"""
Pytest fixtures for the spend allocation test suite.

Provides:
- Structured logging for the whole session plus a ``captured_logs`` helper
- A deterministic clock and the packaged configuration (default, legacy
  and proportional profiles)
- An in-memory SQLite session factory with the result tables created
- A small, realistic snapshot (one supplier, master data, a budget, four
  expenses and a two-line contract)

No external database is required: SQLite stands in for PostgreSQL.
"""

import json
import logging
from datetime import UTC, datetime
from io import StringIO

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spend_config import get_active_config
from spend_engines.line_items import LineItemNormalizer
from spend_kernel.db.base import Base
from spend_kernel.domain.clock import DeterministicClock
from spend_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from spend_services.snapshot import InMemorySnapshotSource

import spend_kernel.models  # noqa: F401  (registers tables on Base.metadata)

# 2025-10-27 is the first Monday after the end of daylight saving time in Rome.
TODAY_UTC = datetime(2025, 10, 27, 10, 0, 0, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture spend logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "budget_summary_recomputed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("spend")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock & configuration
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(TODAY_UTC)


@pytest.fixture
def settings():
    return get_active_config()


@pytest.fixture
def legacy_settings():
    return get_active_config(profile="legacy")


@pytest.fixture
def proportional_settings():
    return get_active_config(profile="proportional")


@pytest.fixture
def normalizer() -> LineItemNormalizer:
    return LineItemNormalizer(tz="Europe/Rome")


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def sqlite_session_factory():
    """Session factory over a private in-memory SQLite database.

    StaticPool keeps one connection so every session sees the same database.
    """
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


# =============================================================================
# Snapshot data
# =============================================================================


def snapshot_documents() -> dict:
    """Raw documents shaped like the stored records (legacy field names)."""
    return {
        "suppliers": [{"id": "sup-1", "name": "Tipografia Veneta"}],
        "sectors": [
            {"id": "s-retail", "name": "Retail"},
            {"id": "s-group", "name": "Frattin Group"},
        ],
        "branches": [
            {"id": "b-generic", "name": "Generico"},
            {"id": "b-tv", "name": "Treviso", "associatedSectors": ["s-retail"]},
            {"id": "b-pd", "name": "Padova", "associatedSectors": ["s-retail"]},
        ],
        "budgets": [
            {
                "supplierId": "sup-1",
                "year": 2025,
                "isUnexpected": False,
                "allocations": [
                    {"sectorId": "s-retail", "marketingChannelId": "ch-web",
                     "branchId": "b-tv", "budgetAmount": 1000},
                    {"sectorId": "s-retail", "marketingChannelId": "ch-web",
                     "branchId": "b-pd", "budgetAmount": 500},
                ],
            },
        ],
        "expenses": [
            {
                "id": "e-1",
                "supplierId": "sup-1",
                "date": "2025-03-01",
                "totalAmount": 300,
                "sectorId": "s-retail",
                "marketingChannelId": "ch-web",
                "branchId": "b-tv",
            },
            {
                "id": "e-2",
                "supplierId": "sup-1",
                "date": "2025-05-10",
                "totalAmount": 200,
                "lineItems": [
                    {
                        "amount": 200,
                        "description": "Spring flyers",
                        "sectorId": "s-retail",
                        "marketingChannelId": "ch-web",
                        "branchId": "b-generic",
                        "contractId": "c-1",
                        "contractLineItemId": "li-a",
                    },
                ],
            },
            {
                "id": "e-3",
                "supplierId": "sup-1",
                "date": "2024-12-22",
                "totalAmount": 200,
                "isAmortized": True,
                "amortizationStartDate": "2024-12-22",
                "amortizationEndDate": "2025-01-10",
                "sectorId": "s-retail",
                "channelId": "ch-social",
                "assignmentId": "b-pd",
            },
            {
                "id": "e-4",
                "supplierId": "sup-1",
                "date": "2025-02-01",
                "totalAmount": 50,
                "sectorId": "s-retail",
                "branchId": "b-tv",
            },
        ],
        "contracts": [
            {
                "id": "c-1",
                "supplierId": "sup-1",
                "signingDate": "2025-01-15",
                "totalAmount": 1200,
                "lineItems": [
                    {"id": "li-a", "description": "Spring campaign", "totalAmount": 600,
                     "startDate": "2025-03-01", "endDate": "2025-05-31"},
                    {"id": "li-b", "description": "Autumn campaign", "totalAmount": 600,
                     "startDate": "2025-09-01", "endDate": "2025-11-30"},
                ],
            },
        ],
    }


@pytest.fixture
def documents() -> dict:
    return snapshot_documents()


@pytest.fixture
def source(documents, normalizer) -> InMemorySnapshotSource:
    return InMemorySnapshotSource(documents, normalizer)
