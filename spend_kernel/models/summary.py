"""
ORM models for computed results.

Contract:
    BudgetSummaryModel persists one ``BudgetSummary`` per (supplier, year);
    ContractOverdueModel persists the latest overdue figures per contract.
    Both are written by ``spend_services.summary_store`` with merge
    semantics: ``apply_*`` overwrites the computed columns only, so
    ``annotations`` (owned by other collaborators) survives recomputation.

Architecture: spend_kernel/models.  Imports from spend_kernel.db.base and
spend_kernel.domain only.

Invariants enforced:
    - (supplier_id, year) is UNIQUE on budget_summaries.
    - contract_id is UNIQUE on contract_overdue.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from spend_kernel.db.base import TimestampedBase
from spend_kernel.domain.records import BudgetSummary, BudgetSummaryDetail


def _aware(value: datetime) -> datetime:
    # SQLite drops the offset on the way back.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


class BudgetSummaryModel(TimestampedBase):
    """Budget vs. spend for one (supplier, year)."""

    __tablename__ = "budget_summaries"

    __table_args__ = (
        UniqueConstraint("supplier_id", "year", name="uq_budget_summary_supplier_year"),
        Index("ix_budget_summaries_year", "year"),
    )

    supplier_id: Mapped[str] = mapped_column(String(200), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    total_budget: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    total_spend: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unattributed_spend: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    details: Mapped[list] = mapped_column(JSON, nullable=False)
    is_unexpected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    config_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    annotations: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def apply_summary(self, dto: BudgetSummary, config_checksum: str | None = None) -> None:
        """Overwrite the computed columns from ``dto``."""
        self.supplier_id = dto.supplier_id
        self.year = dto.year
        self.total_budget = dto.total_budget
        self.total_spend = dto.total_spend
        self.unattributed_spend = dto.unattributed_spend
        self.details = [detail.to_record() for detail in dto.details]
        self.is_unexpected = dto.is_unexpected
        self.last_updated = dto.last_updated
        self.config_checksum = config_checksum

    def to_dto(self) -> BudgetSummary:
        return BudgetSummary(
            supplier_id=self.supplier_id,
            year=self.year,
            total_budget=_decimal(self.total_budget),
            total_spend=_decimal(self.total_spend),
            details=tuple(
                BudgetSummaryDetail(
                    sector_id=row.get("sectorId"),
                    marketing_channel_id=row.get("marketingChannelId"),
                    branch_id=row.get("branchId"),
                    budget_amount=_decimal(row.get("budgetAmount")),
                    detailed_spend=_decimal(row.get("detailedSpend")),
                )
                for row in self.details or ()
            ),
            is_unexpected=self.is_unexpected,
            last_updated=_aware(self.last_updated),
            unattributed_spend=_decimal(self.unattributed_spend),
        )

    @classmethod
    def from_dto(cls, dto: BudgetSummary, config_checksum: str | None = None) -> BudgetSummaryModel:
        model = cls()
        model.apply_summary(dto, config_checksum)
        return model


class ContractOverdueModel(TimestampedBase):
    """Latest overdue figures for one contract."""

    __tablename__ = "contract_overdue"

    __table_args__ = (
        UniqueConstraint("contract_id", name="uq_contract_overdue_contract"),
        Index("ix_contract_overdue_supplier", "supplier_id"),
    )

    contract_id: Mapped[str] = mapped_column(String(200), nullable=False)
    supplier_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    total_overdue: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    spent_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    residual_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    progress_percent: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    line_items: Mapped[list] = mapped_column(JSON, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    config_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    annotations: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def apply_figures(
        self,
        *,
        contract_id: str,
        supplier_id: str | None,
        total_overdue: Decimal,
        total_amount: Decimal,
        spent_amount: Decimal,
        residual_amount: Decimal,
        progress_percent: Decimal | None,
        line_items: list[dict],
        computed_at: datetime,
        config_checksum: str | None = None,
    ) -> None:
        """Overwrite the computed columns."""
        self.contract_id = contract_id
        self.supplier_id = supplier_id
        self.total_overdue = total_overdue
        self.total_amount = total_amount
        self.spent_amount = spent_amount
        self.residual_amount = residual_amount
        self.progress_percent = progress_percent
        self.line_items = line_items
        self.computed_at = computed_at
        self.config_checksum = config_checksum

    @property
    def computed_at_utc(self) -> datetime:
        return _aware(self.computed_at)
