"""
Execution and schedule repositories (``asset_batch.repositories``).

Responsibility
--------------
SQLAlchemy-backed persistence for depreciation runs (header plus per-asset
details) and recurring schedules.  Each repository wraps a caller-owned
``Session``: repositories flush, callers commit.

Invariants enforced
-------------------
* Every status change goes through ``ExecutionStatus.can_transition_to``;
  terminal runs are never modified.
* Deleting a schedule detaches its executions before the row goes away,
  so run history survives on databases without enforced foreign keys.
* Schedule due-ness is derived from the runs linked to a schedule, never
  from a stored "last run" column.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from asset_kernel.exceptions import (
    ExecutionNotFoundError,
    InvalidExecutionTransitionError,
    ScheduleNotFoundError,
)
from asset_kernel.logging_config import get_logger

from asset_batch.domain.schedule import due_occurrence
from asset_batch.domain.types import (
    AssetOutcome,
    DepreciationExecution,
    DepreciationSchedule,
    ExecutionFilters,
    ExecutionResult,
    ExecutionStatus,
    Page,
)
from asset_batch.models.execution import (
    DepreciationExecutionAssetModel,
    DepreciationExecutionModel,
    DepreciationScheduleModel,
)

logger = get_logger("batch.repositories")


class ExecutionRepository:
    """Run headers and per-asset run details."""

    def __init__(self, session: Session):
        self._session = session

    def _load(self, execution_id: UUID) -> DepreciationExecutionModel:
        model = self._session.get(
            DepreciationExecutionModel, execution_id, populate_existing=True,
        )
        if model is None:
            raise ExecutionNotFoundError(str(execution_id))
        return model

    def create(
        self,
        execution: DepreciationExecution,
        actor_id: UUID,
        created_at: datetime,
    ) -> DepreciationExecution:
        model = DepreciationExecutionModel.from_dto(execution, created_by_id=actor_id)
        model.created_at = created_at
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def get(self, execution_id: UUID) -> DepreciationExecution:
        """Raises ExecutionNotFoundError."""
        return self._load(execution_id).to_dto()

    def status(self, execution_id: UUID) -> ExecutionStatus:
        """Current status, read straight from the row.  Raises ExecutionNotFoundError."""
        value = self._session.execute(
            select(DepreciationExecutionModel.status)
            .where(DepreciationExecutionModel.id == execution_id)
        ).scalar_one_or_none()
        if value is None:
            raise ExecutionNotFoundError(str(execution_id))
        return ExecutionStatus(value)

    def transition(
        self,
        execution_id: UUID,
        target: ExecutionStatus,
        at: datetime,
        error_message: str | None = None,
    ) -> DepreciationExecution:
        """Move a run to ``target``.

        Raises:
            ExecutionNotFoundError: Unknown run.
            InvalidExecutionTransitionError: ``target`` is not reachable
                from the current status.
        """
        model = self._load(execution_id)
        current = ExecutionStatus(model.status)
        if not current.can_transition_to(target):
            raise InvalidExecutionTransitionError(
                str(execution_id), current.value, target.value,
            )
        model.status = target.value
        if target is ExecutionStatus.RUNNING:
            model.started_at = at
        if target.is_terminal:
            model.completed_at = at
        if error_message is not None:
            model.error_message = error_message
        self._session.flush()

        logger.info(
            "depreciation_execution_transitioned",
            extra={
                "execution_id": str(execution_id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return model.to_dto()

    def finalize(
        self,
        execution_id: UUID,
        result: ExecutionResult,
        summary: dict | None = None,
    ) -> DepreciationExecution:
        """Write counters and the terminal status from ``result``.

        A run cancelled from elsewhere while it was running stays
        CANCELLED; its counters are still written, once.
        """
        model = self._load(execution_id)
        current = ExecutionStatus(model.status)
        target = result.status
        if current is ExecutionStatus.CANCELLED and model.summary is None:
            target = ExecutionStatus.CANCELLED
        elif not current.can_transition_to(target):
            raise InvalidExecutionTransitionError(
                str(execution_id), current.value, target.value,
            )
        model.status = target.value
        model.total_assets_processed = result.total_assets_processed
        model.successful_calculations = result.successful_calculations
        model.failed_calculations = result.failed_calculations
        model.skipped_calculations = result.skipped_calculations
        model.total_depreciation_amount = result.total_depreciation_amount
        model.completed_at = result.completed_at
        model.duration_ms = result.duration_ms
        model.error_message = result.error_message or model.error_message
        model.summary = summary
        self._session.flush()
        return model.to_dto()

    def add_details(
        self,
        execution_id: UUID,
        outcomes: Iterable[AssetOutcome],
        actor_id: UUID,
        created_at: datetime,
    ) -> int:
        count = 0
        for outcome in outcomes:
            model = DepreciationExecutionAssetModel.from_dto(
                outcome, execution_id=execution_id, created_by_id=actor_id,
            )
            model.created_at = created_at
            self._session.add(model)
            count += 1
        self._session.flush()
        return count

    def details(self, execution_id: UUID) -> tuple[AssetOutcome, ...]:
        self._load(execution_id)
        models = self._session.execute(
            select(DepreciationExecutionAssetModel)
            .where(DepreciationExecutionAssetModel.execution_id == execution_id)
            .order_by(DepreciationExecutionAssetModel.item_code)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    def list(self, filters: ExecutionFilters) -> Page[DepreciationExecution]:
        """Runs of a business unit, newest calculation date first."""
        stmt = select(DepreciationExecutionModel).where(
            DepreciationExecutionModel.business_unit_id == filters.business_unit_id,
        )
        if filters.status is not None:
            stmt = stmt.where(DepreciationExecutionModel.status == filters.status.value)
        if filters.date_from is not None:
            stmt = stmt.where(DepreciationExecutionModel.calculation_date >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(DepreciationExecutionModel.calculation_date <= filters.date_to)
        if filters.schedule_id is not None:
            stmt = stmt.where(DepreciationExecutionModel.schedule_id == filters.schedule_id)

        total = self._session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        page = max(filters.page, 1)
        models = self._session.execute(
            stmt.order_by(
                DepreciationExecutionModel.calculation_date.desc(),
                DepreciationExecutionModel.created_at.desc(),
            )
            .offset((page - 1) * filters.page_size)
            .limit(filters.page_size)
        ).scalars().all()

        return Page(
            items=tuple(m.to_dto() for m in models),
            total=total,
            page=page,
            page_size=filters.page_size,
        )

    def last_calculation_date_by_schedule(self) -> dict[UUID, date]:
        """Latest calculation date of any non-failed run, per schedule.

        Failed runs are ignored so the scheduler retries the occurrence.
        """
        rows = self._session.execute(
            select(
                DepreciationExecutionModel.schedule_id,
                func.max(DepreciationExecutionModel.calculation_date),
            )
            .where(
                DepreciationExecutionModel.schedule_id.is_not(None),
                DepreciationExecutionModel.status != ExecutionStatus.FAILED.value,
            )
            .group_by(DepreciationExecutionModel.schedule_id)
        ).all()
        return {schedule_id: last for schedule_id, last in rows}


class ScheduleRepository:
    """Recurring schedule persistence."""

    def __init__(self, session: Session):
        self._session = session

    def _load(self, schedule_id: UUID) -> DepreciationScheduleModel:
        model = self._session.get(
            DepreciationScheduleModel, schedule_id, populate_existing=True,
        )
        if model is None:
            raise ScheduleNotFoundError(str(schedule_id))
        return model

    def add(
        self,
        schedule: DepreciationSchedule,
        actor_id: UUID,
        created_at: datetime,
    ) -> DepreciationSchedule:
        model = DepreciationScheduleModel.from_dto(schedule, created_by_id=actor_id)
        model.created_at = created_at
        model.updated_at = created_at
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def get(self, schedule_id: UUID) -> DepreciationSchedule:
        """Raises ScheduleNotFoundError."""
        return self._load(schedule_id).to_dto()

    def update(
        self,
        schedule: DepreciationSchedule,
        actor_id: UUID,
        updated_at: datetime,
    ) -> DepreciationSchedule:
        model = self._load(schedule.schedule_id)
        model.name = schedule.name
        model.description = schedule.description
        model.cadence = schedule.cadence.value
        model.execution_day = schedule.execution_day
        model.is_active = schedule.is_active
        model.include_categories = [str(c) for c in schedule.include_categories]
        model.exclude_categories = [str(c) for c in schedule.exclude_categories]
        model.updated_by_id = actor_id
        model.updated_at = updated_at
        self._session.flush()
        return model.to_dto()

    def delete(self, schedule_id: UUID) -> int:
        """Detach the schedule's runs, then delete it.

        Returns the number of runs detached.
        """
        model = self._load(schedule_id)
        detached = self._session.execute(
            update(DepreciationExecutionModel)
            .where(DepreciationExecutionModel.schedule_id == schedule_id)
            .values(schedule_id=None)
            .execution_options(synchronize_session=False)
        ).rowcount
        self._session.delete(model)
        self._session.flush()
        return detached

    def list_for_business_unit(self, business_unit_id: UUID) -> list[DepreciationSchedule]:
        models = self._session.execute(
            select(DepreciationScheduleModel)
            .where(DepreciationScheduleModel.business_unit_id == business_unit_id)
            .order_by(DepreciationScheduleModel.name)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def list_active(self) -> list[DepreciationSchedule]:
        models = self._session.execute(
            select(DepreciationScheduleModel)
            .where(DepreciationScheduleModel.is_active.is_(True))
            .order_by(DepreciationScheduleModel.name)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def list_due(self, as_of: date) -> list[tuple[DepreciationSchedule, date]]:
        """Active schedules due at ``as_of``, each with the occurrence to run."""
        last_runs = ExecutionRepository(self._session).last_calculation_date_by_schedule()
        due: list[tuple[DepreciationSchedule, date]] = []
        for schedule in self.list_active():
            occurrence = due_occurrence(
                schedule, as_of, last_runs.get(schedule.schedule_id),
            )
            if occurrence is not None:
                due.append((schedule, occurrence))
        return due
