"""
ScheduleManager -- create, edit and query recurring depreciation schedules.

Contract:
    Validates operator input (``ScheduleConfig``) and persists it through
    ``ScheduleRepository``.  Does NOT call ``session.commit()``; the caller
    owns the transaction.

Architecture: asset_batch/services.

Invariants enforced:
    - Names are 1..100 characters, execution days 1..31.
    - A category may not be both included and excluded, and every filter
      category must exist in the category directory.
    - Deactivating a schedule suppresses triggering but keeps history;
      deleting one detaches its executions.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.exceptions import CategoryNotFoundError, InvalidScheduleError
from asset_kernel.logging_config import get_logger
from asset_modules.depreciation.repositories import CategoryDirectory

from asset_batch.domain.schedule import next_execution_date, validate_execution_day
from asset_batch.domain.types import DepreciationSchedule, ScheduleConfig
from asset_batch.repositories import ScheduleRepository

logger = get_logger("batch.schedule_manager")

MAX_NAME_LENGTH = 100


class ScheduleManager:
    """Service for recurring depreciation schedules."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()
        self._schedules = ScheduleRepository(session)
        self._categories = CategoryDirectory(session)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def create(self, config: ScheduleConfig, actor_id: UUID | None = None) -> DepreciationSchedule:
        """Create a schedule from ``config`` (its ``schedule_id`` is ignored).

        Raises:
            InvalidScheduleError: Validation failed.
        """
        name = self._validate(config)
        actor = actor_id or self._actor_id
        schedule = DepreciationSchedule(
            schedule_id=uuid4(),
            business_unit_id=config.business_unit_id,
            name=name,
            cadence=config.cadence,
            execution_day=config.execution_day,
            is_active=config.is_active,
            description=config.description,
            include_categories=tuple(config.include_categories),
            exclude_categories=tuple(config.exclude_categories),
        )
        created = self._schedules.add(schedule, actor_id=actor, created_at=self._clock.now())
        logger.info(
            "schedule_created",
            extra={
                "schedule_id": str(created.schedule_id),
                "schedule_name": created.name,
                "cadence": created.cadence.value,
                "execution_day": created.execution_day,
            },
        )
        return created

    def update(self, config: ScheduleConfig, actor_id: UUID | None = None) -> DepreciationSchedule:
        """Replace the editable fields of an existing schedule.

        Raises:
            InvalidScheduleError: Validation failed or no ``schedule_id``.
            ScheduleNotFoundError: Unknown schedule.
        """
        if config.schedule_id is None:
            raise InvalidScheduleError("schedule_id is required to update", field_name="schedule_id")
        name = self._validate(config)
        existing = self._schedules.get(config.schedule_id)
        updated = self._schedules.update(
            replace(
                existing,
                name=name,
                cadence=config.cadence,
                execution_day=config.execution_day,
                is_active=config.is_active,
                description=config.description,
                include_categories=tuple(config.include_categories),
                exclude_categories=tuple(config.exclude_categories),
            ),
            actor_id=actor_id or self._actor_id,
            updated_at=self._clock.now(),
        )
        logger.info("schedule_updated", extra={"schedule_id": str(updated.schedule_id)})
        return updated

    def upsert_schedule(
        self, config: ScheduleConfig, actor_id: UUID | None = None,
    ) -> DepreciationSchedule:
        if config.schedule_id is None:
            return self.create(config, actor_id=actor_id)
        return self.update(config, actor_id=actor_id)

    def toggle_active(
        self,
        schedule_id: UUID,
        is_active: bool | None = None,
        actor_id: UUID | None = None,
    ) -> DepreciationSchedule:
        """Flip (or set) the active flag.  Past executions are untouched."""
        existing = self._schedules.get(schedule_id)
        target = (not existing.is_active) if is_active is None else is_active
        updated = self._schedules.update(
            replace(existing, is_active=target),
            actor_id=actor_id or self._actor_id,
            updated_at=self._clock.now(),
        )
        logger.info(
            "schedule_toggled",
            extra={"schedule_id": str(schedule_id), "is_active": target},
        )
        return updated

    def delete(self, schedule_id: UUID) -> int:
        """Delete a schedule, keeping its executions as unscheduled runs.

        Returns the number of executions detached.

        Raises:
            ScheduleNotFoundError: Unknown schedule.
        """
        detached = self._schedules.delete(schedule_id)
        logger.info(
            "schedule_deleted",
            extra={"schedule_id": str(schedule_id), "detached_executions": detached},
        )
        return detached

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, schedule_id: UUID) -> DepreciationSchedule:
        return self._schedules.get(schedule_id)

    def list_schedules(self, business_unit_id: UUID) -> tuple[DepreciationSchedule, ...]:
        return tuple(self._schedules.list_for_business_unit(business_unit_id))

    def due_schedules(self, as_of: date | None = None) -> tuple[DepreciationSchedule, ...]:
        """Active schedules whose current occurrence has not run yet."""
        today = as_of or self._clock.today()
        return tuple(schedule for schedule, _ in self._schedules.list_due(today))

    def next_execution(self, schedule_id: UUID) -> date:
        schedule = self._schedules.get(schedule_id)
        return next_execution_date(
            schedule.cadence, schedule.execution_day, self._clock.today(),
        )

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _validate(self, config: ScheduleConfig) -> str:
        name = (config.name or "").strip()
        if not 1 <= len(name) <= MAX_NAME_LENGTH:
            raise InvalidScheduleError(
                f"name must be 1 to {MAX_NAME_LENGTH} characters", field_name="name",
            )
        validate_execution_day(config.execution_day)

        overlap = set(config.include_categories) & set(config.exclude_categories)
        if overlap:
            raise InvalidScheduleError(
                f"categories both included and excluded: {sorted(str(c) for c in overlap)}",
                field_name="include_categories",
            )
        try:
            self._categories.validate(
                [*config.include_categories, *config.exclude_categories],
            )
        except CategoryNotFoundError as exc:
            raise InvalidScheduleError(
                f"unknown category {exc.category_id}", field_name="categories",
            ) from exc
        return name
