"""
DepreciationScheduler -- in-process polling scheduler for recurring runs.

Contract:
    Polls active schedules on a configurable interval, evaluates
    ``due_occurrence()`` (pure), and runs each due schedule through
    ``DepreciationBatchExecutor``.

Architecture: asset_batch/services.  Uses asset_batch.domain.schedule for
    pure evaluation and asset_batch.services.executor for execution.

Invariants enforced:
    - All "today" values come from the injected Clock.
    - A schedule fires at most once per occurrence: the run it creates is
      linked to the schedule and dated on the occurrence, which is what
      due-ness is derived from.
    - Graceful shutdown: the stop signal is honoured between schedules.
"""

from __future__ import annotations

import threading
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.logging_config import LogContext, get_logger

from asset_batch.domain.types import BatchRunConfig, DepreciationSchedule
from asset_batch.repositories import ScheduleRepository
from asset_batch.services.executor import DepreciationBatchExecutor

logger = get_logger("batch.scheduler")


class DepreciationScheduler:
    """Polling scheduler for depreciation schedules.

    Contract:
        - ``tick()`` evaluates all active schedules and fires the due ones.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).  Two schedulers
          firing the same occurrence are safe: the asset-level
          compare-and-swap skips whatever the other already calculated.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        executor: DepreciationBatchExecutor,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        tick_interval_seconds: int = 3600,
    ):
        self._session_factory = session_factory
        self._executor = executor
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Evaluate and fire due schedules (public for testing).

        Returns the number of schedules that were fired.
        """
        today = self._clock.today()
        session = self._session_factory()
        try:
            due = ScheduleRepository(session).list_due(today)
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("scheduler_tick_failed")
            return 0
        finally:
            session.close()

        fired = 0
        for schedule, occurrence in due:
            if self._stop_event.is_set():
                break
            if self._fire(schedule, occurrence):
                fired += 1
        return fired

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="depreciation-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _fire(self, schedule: DepreciationSchedule, occurrence) -> bool:
        config = BatchRunConfig(
            business_unit_id=schedule.business_unit_id,
            calculation_date=occurrence,
            granularity=schedule.cadence.granularity,
            include_categories=schedule.include_categories,
            exclude_categories=schedule.exclude_categories,
            schedule_id=schedule.schedule_id,
        )
        with LogContext.bind(schedule_id=str(schedule.schedule_id)):
            try:
                result = self._executor.execute(config, actor_id=self._actor_id)
            except Exception:
                logger.exception(
                    "schedule_fire_failed",
                    extra={"schedule_name": schedule.name},
                )
                return False

            logger.info(
                "schedule_fired",
                extra={
                    "schedule_name": schedule.name,
                    "occurrence": occurrence.isoformat(),
                    "execution_id": str(result.execution_id),
                    "status": result.status.value,
                },
            )
        return True
