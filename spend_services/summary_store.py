"""
spend_services.summary_store -- Idempotent upsert of computed results.

Responsibility:
    Persist fully formed ``BudgetSummary`` and ``ContractOverdue``
    results keyed by (supplier_id, year) and contract_id respectively.

Architecture position:
    Services -- persistence seam.  ``SqlAlchemySummaryStore`` writes each
    key in its own transaction; ``InMemorySummaryStore`` backs tests and
    dry runs.

Invariants enforced:
    - Merge semantics: an upsert overwrites the computed fields only;
      ``annotations`` set by other collaborators are preserved.
    - Writing the same result twice leaves the store unchanged.
    - A result is written only after it is fully computed; a failed write
      rolls back that key's transaction and leaves other keys untouched.

Failure modes:
    - ``SummaryWriteError`` wrapping the underlying ``SQLAlchemyError``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from spend_engines.overdue import ContractOverdue
from spend_kernel.db.engine import session_scope
from spend_kernel.domain.records import BudgetSummary
from spend_kernel.exceptions import SummaryWriteError
from spend_kernel.logging_config import get_logger
from spend_kernel.models.summary import BudgetSummaryModel, ContractOverdueModel

logger = get_logger("services.summary_store")


def summary_key(supplier_id: str, year: int) -> str:
    """Document id of a stored budget summary."""
    return f"{supplier_id}_{year}"


def overdue_line_records(result: ContractOverdue) -> list[dict[str, Any]]:
    return [
        {
            "lineItemId": item.line_item_id,
            "totalAmount": str(item.total_amount),
            "spentTotal": str(item.spent_total),
            "spentToDate": str(item.spent_to_date),
            "remaining": str(item.remaining),
            "expectedToDate": str(item.expected_to_date),
            "overdue": str(item.overdue),
            "notStarted": item.not_started,
            "faulted": item.faulted,
        }
        for item in result.line_items
    ]


@dataclass(frozen=True)
class StoredOverdue:
    """Contract overdue figures as read back from a store."""

    contract_id: str
    supplier_id: str | None
    total_overdue: Decimal
    total_amount: Decimal
    spent_amount: Decimal
    residual_amount: Decimal
    progress_percent: Decimal | None
    line_items: tuple[dict[str, Any], ...]
    computed_at: datetime
    annotations: dict[str, Any] = field(default_factory=dict)


class SummaryStore(Protocol):
    def upsert_summary(self, summary: BudgetSummary, config_checksum: str | None = None) -> None: ...

    def get_summary(self, supplier_id: str, year: int) -> BudgetSummary | None: ...

    def annotate_summary(self, supplier_id: str, year: int, annotations: dict[str, Any]) -> None: ...

    def summary_annotations(self, supplier_id: str, year: int) -> dict[str, Any] | None: ...

    def upsert_overdue(
        self,
        result: ContractOverdue,
        computed_at: datetime,
        config_checksum: str | None = None,
    ) -> None: ...

    def get_overdue(self, contract_id: str) -> StoredOverdue | None: ...


class SqlAlchemySummaryStore:
    """
    ``SummaryStore`` on the ``budget_summaries`` / ``contract_overdue`` tables.

    Contract:
        Receives a session factory; opens one session per write so batch
        workers never share a session.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _summary_row(self, session: Session, supplier_id: str, year: int) -> BudgetSummaryModel | None:
        return session.execute(
            select(BudgetSummaryModel).where(
                BudgetSummaryModel.supplier_id == supplier_id,
                BudgetSummaryModel.year == year,
            )
        ).scalar_one_or_none()

    def _overdue_row(self, session: Session, contract_id: str) -> ContractOverdueModel | None:
        return session.execute(
            select(ContractOverdueModel).where(ContractOverdueModel.contract_id == contract_id)
        ).scalar_one_or_none()

    def upsert_summary(self, summary: BudgetSummary, config_checksum: str | None = None) -> None:
        key = summary_key(summary.supplier_id, summary.year)
        try:
            with session_scope(self._session_factory) as session:
                model = self._summary_row(session, summary.supplier_id, summary.year)
                if model is None:
                    session.add(BudgetSummaryModel.from_dto(summary, config_checksum))
                else:
                    model.apply_summary(summary, config_checksum)
        except SQLAlchemyError as exc:
            raise SummaryWriteError(key, str(exc)) from exc
        logger.info("budget_summary_upserted", extra={
            "supplier_id": summary.supplier_id,
            "year": summary.year,
            "total_spend": summary.total_spend,
        })

    def get_summary(self, supplier_id: str, year: int) -> BudgetSummary | None:
        with session_scope(self._session_factory) as session:
            model = self._summary_row(session, supplier_id, year)
            return model.to_dto() if model is not None else None

    def annotate_summary(self, supplier_id: str, year: int, annotations: dict[str, Any]) -> None:
        try:
            with session_scope(self._session_factory) as session:
                model = self._summary_row(session, supplier_id, year)
                if model is None:
                    raise SummaryWriteError(summary_key(supplier_id, year), "no stored summary")
                model.annotations = {**(model.annotations or {}), **annotations}
        except SQLAlchemyError as exc:
            raise SummaryWriteError(summary_key(supplier_id, year), str(exc)) from exc

    def summary_annotations(self, supplier_id: str, year: int) -> dict[str, Any] | None:
        with session_scope(self._session_factory) as session:
            model = self._summary_row(session, supplier_id, year)
            return dict(model.annotations or {}) if model is not None else None

    def upsert_overdue(
        self,
        result: ContractOverdue,
        computed_at: datetime,
        config_checksum: str | None = None,
    ) -> None:
        figures = dict(
            contract_id=result.contract_id,
            supplier_id=result.supplier_id,
            total_overdue=result.total_overdue,
            total_amount=result.total_amount,
            spent_amount=result.spent_amount,
            residual_amount=result.residual_amount,
            progress_percent=result.progress_percent,
            line_items=overdue_line_records(result),
            computed_at=computed_at,
            config_checksum=config_checksum,
        )
        try:
            with session_scope(self._session_factory) as session:
                model = self._overdue_row(session, result.contract_id)
                if model is None:
                    model = ContractOverdueModel()
                    model.apply_figures(**figures)
                    session.add(model)
                else:
                    model.apply_figures(**figures)
        except SQLAlchemyError as exc:
            raise SummaryWriteError(result.contract_id, str(exc)) from exc
        logger.info("contract_overdue_upserted", extra={
            "contract_id": result.contract_id,
            "total_overdue": result.total_overdue,
        })

    def get_overdue(self, contract_id: str) -> StoredOverdue | None:
        with session_scope(self._session_factory) as session:
            model = self._overdue_row(session, contract_id)
            if model is None:
                return None
            return StoredOverdue(
                contract_id=model.contract_id,
                supplier_id=model.supplier_id,
                total_overdue=Decimal(str(model.total_overdue)),
                total_amount=Decimal(str(model.total_amount)),
                spent_amount=Decimal(str(model.spent_amount)),
                residual_amount=Decimal(str(model.residual_amount)),
                progress_percent=(
                    Decimal(str(model.progress_percent))
                    if model.progress_percent is not None else None
                ),
                line_items=tuple(model.line_items or ()),
                computed_at=model.computed_at_utc,
                annotations=dict(model.annotations or {}),
            )


class InMemorySummaryStore:
    """Thread-safe in-process ``SummaryStore`` with the same merge semantics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._summaries: dict[tuple[str, int], BudgetSummary] = {}
        self._summary_annotations: dict[tuple[str, int], dict[str, Any]] = {}
        self._overdue: dict[str, StoredOverdue] = {}

    def upsert_summary(self, summary: BudgetSummary, config_checksum: str | None = None) -> None:
        with self._lock:
            self._summaries[summary.key] = summary

    def get_summary(self, supplier_id: str, year: int) -> BudgetSummary | None:
        with self._lock:
            return self._summaries.get((supplier_id, year))

    def annotate_summary(self, supplier_id: str, year: int, annotations: dict[str, Any]) -> None:
        with self._lock:
            if (supplier_id, year) not in self._summaries:
                raise SummaryWriteError(summary_key(supplier_id, year), "no stored summary")
            current = self._summary_annotations.setdefault((supplier_id, year), {})
            current.update(annotations)

    def summary_annotations(self, supplier_id: str, year: int) -> dict[str, Any] | None:
        with self._lock:
            if (supplier_id, year) not in self._summaries:
                return None
            return dict(self._summary_annotations.get((supplier_id, year), {}))

    def upsert_overdue(
        self,
        result: ContractOverdue,
        computed_at: datetime,
        config_checksum: str | None = None,
    ) -> None:
        with self._lock:
            previous = self._overdue.get(result.contract_id)
            stored = StoredOverdue(
                contract_id=result.contract_id,
                supplier_id=result.supplier_id,
                total_overdue=result.total_overdue,
                total_amount=result.total_amount,
                spent_amount=result.spent_amount,
                residual_amount=result.residual_amount,
                progress_percent=result.progress_percent,
                line_items=tuple(overdue_line_records(result)),
                computed_at=computed_at,
            )
            if previous is not None:
                stored = replace(stored, annotations=previous.annotations)
            self._overdue[result.contract_id] = stored

    def get_overdue(self, contract_id: str) -> StoredOverdue | None:
        with self._lock:
            return self._overdue.get(contract_id)

    def summary_keys(self) -> tuple[tuple[str, int], ...]:
        with self._lock:
            return tuple(sorted(self._summaries))
