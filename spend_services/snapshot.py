"""
spend_services.snapshot -- Read-only input snapshots for the engines.

Responsibility:
    Define the ``SnapshotSource`` protocol through which services read
    expenses, contracts, budgets and master data, and provide
    ``InMemorySnapshotSource`` over plain documents (e.g. a JSON export).
    Raw documents are normalized exactly once, here, through
    ``LineItemNormalizer``.

Architecture position:
    Services -- the seam towards the persistence collaborators.  Engines
    receive the records this module returns as explicit parameters; no
    engine holds a database handle.

Failure modes:
    - ``SupplierNotFoundError`` for a supplier id the source does not know.
    - ``ContractNotFoundError`` for an unknown contract id.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

from spend_engines.line_items import LineItemNormalizer
from spend_kernel.domain.records import Branch, Budget, Contract, Expense, Sector
from spend_kernel.exceptions import ContractNotFoundError, SupplierNotFoundError
from spend_kernel.logging_config import get_logger

logger = get_logger("services.snapshot")


class SnapshotSource(Protocol):
    """Read-only access to the records a recomputation needs."""

    def supplier_ids(self) -> tuple[str, ...]: ...

    def expenses_for_supplier(self, supplier_id: str) -> tuple[Expense, ...]: ...

    def expenses_for_contract(self, contract_id: str) -> tuple[Expense, ...]: ...

    def contracts_for_supplier(self, supplier_id: str) -> tuple[Contract, ...]: ...

    def contract(self, contract_id: str) -> Contract: ...

    def budget(self, supplier_id: str, year: int) -> Budget | None: ...

    def branches(self) -> tuple[Branch, ...]: ...

    def sectors(self) -> tuple[Sector, ...]: ...


class InMemorySnapshotSource:
    """
    ``SnapshotSource`` over plain documents.

    Contract:
        ``documents`` maps collection names (``suppliers``, ``expenses``,
        ``contracts``, ``budgets``, ``branches``, ``sectors``) to lists of
        raw documents shaped like the stored records.
    Guarantees:
        - Every document is normalized once, at construction.
        - A budget without a usable year is skipped, not fatal.
        - Known suppliers are the listed suppliers plus every supplier id
          referenced by an expense, contract or budget.
    """

    def __init__(
        self,
        documents: Mapping[str, Iterable[Mapping[str, Any]]],
        normalizer: LineItemNormalizer | None = None,
    ) -> None:
        normalizer = normalizer or LineItemNormalizer()
        self._expenses = tuple(normalizer.expense(d) for d in documents.get("expenses", ()))
        self._contracts = tuple(normalizer.contract(d) for d in documents.get("contracts", ()))
        budgets = (normalizer.budget(d) for d in documents.get("budgets", ()))
        self._budgets = tuple(b for b in budgets if b is not None)
        self._branches = tuple(normalizer.branch(d) for d in documents.get("branches", ()))
        self._sectors = tuple(normalizer.sector(d) for d in documents.get("sectors", ()))

        suppliers = [str(d["id"]) for d in documents.get("suppliers", ()) if d.get("id")]
        for record in (*self._expenses, *self._contracts, *self._budgets):
            if record.supplier_id:
                suppliers.append(record.supplier_id)
        self._supplier_ids = tuple(dict.fromkeys(suppliers))
        self._contracts_by_id = {c.contract_id: c for c in self._contracts}

        logger.info("snapshot_loaded", extra={
            "suppliers": len(self._supplier_ids),
            "expenses": len(self._expenses),
            "contracts": len(self._contracts),
            "budgets": len(self._budgets),
        })

    @classmethod
    def from_json_file(cls, path: Path | str, normalizer: LineItemNormalizer | None = None) -> InMemorySnapshotSource:
        with open(path, encoding="utf-8") as f:
            return cls(json.load(f), normalizer)

    def supplier_ids(self) -> tuple[str, ...]:
        return self._supplier_ids

    def _require_supplier(self, supplier_id: str) -> None:
        if supplier_id not in self._supplier_ids:
            raise SupplierNotFoundError(supplier_id)

    def expenses_for_supplier(self, supplier_id: str) -> tuple[Expense, ...]:
        self._require_supplier(supplier_id)
        return tuple(e for e in self._expenses if e.supplier_id == supplier_id)

    def expenses_for_contract(self, contract_id: str) -> tuple[Expense, ...]:
        return tuple(
            e for e in self._expenses
            if e.contract_id == contract_id
            or any(li.contract_id == contract_id for li in e.line_items)
        )

    def contracts_for_supplier(self, supplier_id: str) -> tuple[Contract, ...]:
        self._require_supplier(supplier_id)
        return tuple(c for c in self._contracts if c.supplier_id == supplier_id)

    def contract(self, contract_id: str) -> Contract:
        try:
            return self._contracts_by_id[contract_id]
        except KeyError:
            raise ContractNotFoundError(contract_id) from None

    def budget(self, supplier_id: str, year: int) -> Budget | None:
        self._require_supplier(supplier_id)
        for budget in self._budgets:
            if budget.supplier_id == supplier_id and budget.year == year:
                return budget
        return None

    def branches(self) -> tuple[Branch, ...]:
        return self._branches

    def sectors(self) -> tuple[Sector, ...]:
        return self._sectors
