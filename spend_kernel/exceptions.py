"""
Typed Exception Hierarchy for the Spend Allocation System.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers must be able to tell a missing snapshot from a rejected
configuration from a failed write without parsing message strings.
Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, log/API-safe)
  3. Structured DATA (not just a message string)

The calculation engines do NOT raise for bad business data: an invalid
date, a missing dimension or an unresolvable branch fan-out degrades the
affected unit to a zero contribution and is reported through the
diagnostics carried on the engine result.  The exceptions below are
raised at the seams around the engines: configuration, snapshot
loading, batch wiring and persistence.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SpendEngineError (base)
    |
    +-- ConfigurationError
    |
    +-- SnapshotError
    |   +-- SupplierNotFoundError
    |   +-- ContractNotFoundError
    |
    +-- BatchError
    |   +-- TaskNotRegisteredError
    |
    +-- PersistenceError
        +-- SummaryWriteError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                   | When Raised
----------------|------------------------|-----------------------------------
Configuration   | INVALID_CONFIGURATION  | Unknown strategy, bad profile, etc.
----------------|------------------------|-----------------------------------
Snapshot        | SUPPLIER_NOT_FOUND     | Supplier id unknown to the source
                | CONTRACT_NOT_FOUND     | Contract id unknown to the source
----------------|------------------------|-----------------------------------
Batch           | TASK_NOT_REGISTERED    | No task for the requested type
----------------|------------------------|-----------------------------------
Persistence     | SUMMARY_WRITE_FAILED   | Upsert of a computed result failed

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        service.recompute(supplier_id, year)
    except SupplierNotFoundError as e:
        log.warning("unknown supplier", extra={"supplier_id": e.supplier_id})
    except SummaryWriteError as e:
        # The computed summary was fully formed; only this key's write failed.
        retry_later(e.key)
"""

from __future__ import annotations


class SpendEngineError(Exception):
    """
    Base exception for all spend allocation errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SPEND_ENGINE_ERROR"


# Configuration


class ConfigurationError(SpendEngineError):
    """Configuration could not be loaded or failed validation."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, errors: list[str] | tuple[str, ...], source: str = ""):
        self.errors = tuple(errors)
        self.source = source
        detail = "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(f"Configuration validation failed{f' ({source})' if source else ''}:\n{detail}")


# Snapshot


class SnapshotError(SpendEngineError):
    """Base exception for snapshot-reading errors."""

    code: str = "SNAPSHOT_ERROR"


class SupplierNotFoundError(SnapshotError):
    """Supplier is unknown to the snapshot source."""

    code: str = "SUPPLIER_NOT_FOUND"

    def __init__(self, supplier_id: str):
        self.supplier_id = supplier_id
        super().__init__(f"Supplier not found: {supplier_id}")


class ContractNotFoundError(SnapshotError):
    """Contract is unknown to the snapshot source."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract not found: {contract_id}")


# Batch


class BatchError(SpendEngineError):
    """Base exception for batch wiring errors."""

    code: str = "BATCH_ERROR"


class TaskNotRegisteredError(BatchError):
    """No batch task registered for the requested type."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str, available: tuple[str, ...] = ()):
        self.task_type = task_type
        self.available = tuple(available)
        super().__init__(
            f"No task registered for type '{task_type}'. "
            f"Available: {list(self.available)}"
        )


# Persistence


class PersistenceError(SpendEngineError):
    """Base exception for persistence errors."""

    code: str = "PERSISTENCE_ERROR"


class SummaryWriteError(PersistenceError):
    """Upsert of a fully computed result failed for one key."""

    code: str = "SUMMARY_WRITE_FAILED"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Failed to write result for {key}: {reason}")
