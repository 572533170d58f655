"""
ORM models for depreciation run persistence.

Contract:
    DepreciationExecutionModel, DepreciationExecutionAssetModel and
    DepreciationScheduleModel persist run headers, per-asset run details,
    and recurring schedules.  Each has ``to_dto()`` / ``from_dto()``
    round-trip methods where a DTO exists.

Architecture: asset_batch/models.  Imports from asset_kernel.db.base only.

Invariants enforced:
    - ``schedule_id`` on an execution is nullable with ON DELETE SET NULL:
      deleting a schedule detaches its history, never cascades into it.
    - Category filters are stored as JSON lists of UUID strings.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from asset_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from asset_batch.domain.types import (
        AssetOutcome,
        DepreciationExecution,
        DepreciationSchedule,
    )


def _ids_to_json(ids) -> list[str]:
    return [str(i) for i in ids]


def _ids_from_json(values: list[str] | None) -> tuple[UUID, ...]:
    return tuple(UUID(v) for v in values or ())


class DepreciationExecutionModel(TrackedBase):
    """Persistent depreciation run header."""

    __tablename__ = "fa_depreciation_executions"

    __table_args__ = (
        Index("ix_fa_depreciation_executions_bu_date", "business_unit_id", "calculation_date"),
        Index("ix_fa_depreciation_executions_status", "status"),
        Index("ix_fa_depreciation_executions_schedule", "schedule_id"),
    )

    business_unit_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    calculation_date: Mapped[date] = mapped_column(nullable=False)
    granularity: Mapped[str] = mapped_column(String(20), nullable=False)
    include_categories: Mapped[list | None] = mapped_column(JSON, nullable=True)
    exclude_categories: Mapped[list | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    total_assets_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_calculations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_calculations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_calculations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_depreciation_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    schedule_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("fa_depreciation_schedules.id", ondelete="SET NULL"),
        nullable=True,
    )
    triggered_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    assets: Mapped[list["DepreciationExecutionAssetModel"]] = relationship(
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="DepreciationExecutionAssetModel.item_code",
    )

    def to_dto(self) -> DepreciationExecution:
        from asset_batch.domain.types import (
            DepreciationExecution,
            ExecutionStatus,
            PeriodGranularity,
        )

        return DepreciationExecution(
            execution_id=self.id,
            business_unit_id=self.business_unit_id,
            calculation_date=self.calculation_date,
            granularity=PeriodGranularity(self.granularity),
            status=ExecutionStatus(self.status),
            include_categories=_ids_from_json(self.include_categories),
            exclude_categories=_ids_from_json(self.exclude_categories),
            total_assets_processed=self.total_assets_processed,
            successful_calculations=self.successful_calculations,
            failed_calculations=self.failed_calculations,
            skipped_calculations=self.skipped_calculations,
            total_depreciation_amount=self.total_depreciation_amount,
            started_at=self.started_at,
            completed_at=self.completed_at,
            duration_ms=self.duration_ms,
            error_message=self.error_message,
            schedule_id=self.schedule_id,
            triggered_by_id=self.triggered_by_id,
            summary=self.summary or {},
        )

    @classmethod
    def from_dto(cls, dto: DepreciationExecution, created_by_id: UUID) -> DepreciationExecutionModel:
        return cls(
            id=dto.execution_id,
            business_unit_id=dto.business_unit_id,
            calculation_date=dto.calculation_date,
            granularity=dto.granularity.value,
            include_categories=_ids_to_json(dto.include_categories),
            exclude_categories=_ids_to_json(dto.exclude_categories),
            status=dto.status.value,
            total_assets_processed=dto.total_assets_processed,
            successful_calculations=dto.successful_calculations,
            failed_calculations=dto.failed_calculations,
            skipped_calculations=dto.skipped_calculations,
            total_depreciation_amount=dto.total_depreciation_amount,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            duration_ms=dto.duration_ms,
            error_message=dto.error_message,
            schedule_id=dto.schedule_id,
            triggered_by_id=dto.triggered_by_id,
            summary=dto.summary or None,
            created_by_id=created_by_id,
        )


class DepreciationExecutionAssetModel(TrackedBase):
    """Per-asset outcome within a persisted run."""

    __tablename__ = "fa_depreciation_execution_assets"

    __table_args__ = (
        Index("ix_fa_depreciation_execution_assets_execution", "execution_id", "status"),
        Index("ix_fa_depreciation_execution_assets_asset", "asset_id"),
    )

    execution_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fa_depreciation_executions.id", ondelete="CASCADE"),
        nullable=False,
    )
    asset_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    item_code: Mapped[str] = mapped_column(String(100), nullable=False)
    category_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    depreciation_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    book_value_before: Mapped[Decimal | None]
    book_value_after: Mapped[Decimal | None]
    period_start: Mapped[date | None]
    period_end: Mapped[date | None]
    is_fully_depreciated: Mapped[bool] = mapped_column(Boolean, default=False)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    depreciation_record_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    execution: Mapped["DepreciationExecutionModel"] = relationship(back_populates="assets")

    def to_dto(self) -> AssetOutcome:
        from asset_batch.domain.types import AssetOutcome, AssetOutcomeStatus

        return AssetOutcome(
            asset_id=self.asset_id,
            item_code=self.item_code,
            status=AssetOutcomeStatus(self.status),
            category_id=self.category_id,
            method=self.method,
            depreciation_amount=self.depreciation_amount,
            book_value_before=self.book_value_before,
            book_value_after=self.book_value_after,
            period_start=self.period_start,
            period_end=self.period_end,
            is_fully_depreciated=self.is_fully_depreciated,
            error_code=self.error_code,
            error_message=self.error_message,
            depreciation_record_id=self.depreciation_record_id,
        )

    @classmethod
    def from_dto(
        cls, dto: AssetOutcome, execution_id: UUID, created_by_id: UUID,
    ) -> DepreciationExecutionAssetModel:
        return cls(
            execution_id=execution_id,
            asset_id=dto.asset_id,
            item_code=dto.item_code,
            category_id=dto.category_id,
            method=dto.method,
            status=dto.status.value,
            depreciation_amount=dto.depreciation_amount,
            book_value_before=dto.book_value_before,
            book_value_after=dto.book_value_after,
            period_start=dto.period_start,
            period_end=dto.period_end,
            is_fully_depreciated=dto.is_fully_depreciated,
            error_code=dto.error_code,
            error_message=dto.error_message,
            depreciation_record_id=dto.depreciation_record_id,
            created_by_id=created_by_id,
        )


class DepreciationScheduleModel(TrackedBase):
    """Recurring depreciation schedule."""

    __tablename__ = "fa_depreciation_schedules"

    __table_args__ = (
        Index("ix_fa_depreciation_schedules_bu_active", "business_unit_id", "is_active"),
    )

    business_unit_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cadence: Mapped[str] = mapped_column(String(20), nullable=False)
    execution_day: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    include_categories: Mapped[list | None] = mapped_column(JSON, nullable=True)
    exclude_categories: Mapped[list | None] = mapped_column(JSON, nullable=True)

    def to_dto(self) -> DepreciationSchedule:
        from asset_batch.domain.types import DepreciationSchedule, ScheduleCadence

        return DepreciationSchedule(
            schedule_id=self.id,
            business_unit_id=self.business_unit_id,
            name=self.name,
            cadence=ScheduleCadence(self.cadence),
            execution_day=self.execution_day,
            is_active=self.is_active,
            description=self.description,
            include_categories=_ids_from_json(self.include_categories),
            exclude_categories=_ids_from_json(self.exclude_categories),
            created_by=self.created_by_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_dto(cls, dto: DepreciationSchedule, created_by_id: UUID) -> DepreciationScheduleModel:
        return cls(
            id=dto.schedule_id,
            business_unit_id=dto.business_unit_id,
            name=dto.name,
            description=dto.description,
            cadence=dto.cadence.value,
            execution_day=dto.execution_day,
            is_active=dto.is_active,
            include_categories=_ids_to_json(dto.include_categories),
            exclude_categories=_ids_to_json(dto.exclude_categories),
            created_by_id=created_by_id,
        )
