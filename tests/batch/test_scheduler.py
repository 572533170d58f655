"""
Tests for DepreciationScheduler and DepreciationOrchestrator.

The scheduler is driven through ``tick()`` with a DeterministicClock; the
background thread is only started to check start/stop.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from asset_batch.domain.types import (
    ExecutionFilters,
    ExecutionStatus,
    PeriodGranularity,
    ScheduleCadence,
    ScheduleConfig,
)
from asset_batch.orchestrator import DepreciationOrchestrator
from asset_batch.repositories import ScheduleRepository
from asset_batch.services.scheduler import DepreciationScheduler
from asset_modules.depreciation.config import DepreciationConfig
from asset_modules.depreciation.repositories import AssetRepository


@pytest.fixture
def scheduler(session_factory, service, clock, actor_id):
    return DepreciationScheduler(
        session_factory=session_factory,
        executor=service.executor,
        clock=clock,
        actor_id=actor_id,
        tick_interval_seconds=3600,
    )


@pytest.fixture
def month_end(service, business_unit_id):
    return service.upsert_schedule(
        ScheduleConfig(
            business_unit_id=business_unit_id,
            name="Month end",
            cadence=ScheduleCadence.MONTHLY,
            execution_day=31,
        )
    )


def _runs(service, business_unit_id, schedule_id):
    return service.list_executions(
        ExecutionFilters(business_unit_id=business_unit_id, schedule_id=schedule_id),
    ).items


# =============================================================================
# tick()
# =============================================================================


class TestTick:

    def test_fires_due_schedule(self, scheduler, service, make_asset, month_end, business_unit_id):
        asset = make_asset()

        assert scheduler.tick() == 1

        (run,) = _runs(service, business_unit_id, month_end.schedule_id)
        assert run.calculation_date == date(2024, 1, 31)
        assert run.status is ExecutionStatus.COMPLETED
        assert run.granularity is PeriodGranularity.MONTHLY
        assert service.get_asset(asset.id).accumulated_depreciation == Decimal("5000.00")

    def test_fires_once_per_occurrence(self, scheduler, make_asset, month_end):
        make_asset()
        assert scheduler.tick() == 1
        assert scheduler.tick() == 0

    def test_next_month_clamps_execution_day(self, scheduler, service, clock, make_asset, month_end, business_unit_id):
        asset = make_asset()
        scheduler.tick()

        clock.set_date(date(2024, 2, 15))
        assert scheduler.tick() == 0

        clock.set_date(date(2024, 2, 29))
        assert scheduler.tick() == 1

        dates = [r.calculation_date for r in _runs(service, business_unit_id, month_end.schedule_id)]
        assert dates == [date(2024, 2, 29), date(2024, 1, 31)]
        assert service.get_asset(asset.id).accumulated_depreciation == Decimal("10000.00")

    def test_inactive_schedule_does_not_fire(self, scheduler, orchestrator, month_end):
        with orchestrator.session_factory() as session, session.begin():
            orchestrator.create_schedule_manager(session).toggle_active(month_end.schedule_id)

        assert scheduler.tick() == 0

    def test_quarterly_schedule_uses_quarterly_granularity(self, scheduler, service, clock, make_asset, business_unit_id):
        make_asset()
        quarterly = service.upsert_schedule(
            ScheduleConfig(
                business_unit_id=business_unit_id,
                name="Quarter end",
                cadence=ScheduleCadence.QUARTERLY,
                execution_day=31,
            )
        )
        clock.set_date(date(2024, 3, 31))

        assert scheduler.tick() == 1

        (run,) = _runs(service, business_unit_id, quarterly.schedule_id)
        assert run.granularity is PeriodGranularity.QUARTERLY
        assert run.total_depreciation_amount == Decimal("15000.00")

    def test_failed_run_is_retried(self, scheduler, service, make_asset, month_end, business_unit_id, monkeypatch):
        make_asset()

        def _broken(self, computation, calculation_date, actor_id):
            raise OperationalError("UPDATE fa_assets", {}, Exception("database is locked"))

        with monkeypatch.context() as patched:
            patched.setattr(AssetRepository, "apply_period", _broken)
            assert scheduler.tick() == 1

        assert scheduler.tick() == 1

        statuses = [r.status for r in _runs(service, business_unit_id, month_end.schedule_id)]
        assert sorted(s.value for s in statuses) == ["completed", "failed"]

    def test_lookup_failure_is_logged(self, scheduler, month_end, monkeypatch, captured_logs):
        def _broken(self, as_of):
            raise SQLAlchemyError("no such table")

        monkeypatch.setattr(ScheduleRepository, "list_due", _broken)

        assert scheduler.tick() == 0
        assert any(r["message"] == "scheduler_tick_failed" for r in captured_logs())

    def test_execution_error_is_contained(self, scheduler, service, month_end, monkeypatch, captured_logs):
        def _explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(service.executor, "execute", _explode)

        assert scheduler.tick() == 0
        failures = [r for r in captured_logs() if r["message"] == "schedule_fire_failed"]
        assert failures[0]["schedule_id"] == str(month_end.schedule_id)


# =============================================================================
# Thread lifecycle
# =============================================================================


class TestLifecycle:

    def test_start_and_stop(self, scheduler):
        scheduler.start()
        assert scheduler.is_running
        scheduler.start()  # already running: no second thread
        scheduler.stop(timeout=5)
        assert not scheduler.is_running


# =============================================================================
# Orchestrator
# =============================================================================


@pytest.fixture
def orchestrator(session_factory, clock, actor_id):
    return DepreciationOrchestrator(
        session_factory=session_factory,
        clock=clock,
        config=DepreciationConfig(scheduler_tick_seconds=60),
        actor_id=actor_id,
    )


class TestOrchestrator:

    def test_scheduler_shares_executor(self, orchestrator):
        scheduler = orchestrator.create_scheduler()
        assert scheduler._executor is orchestrator.executor
        assert scheduler._tick_interval == 60

    def test_explicit_tick_interval(self, orchestrator):
        assert orchestrator.create_scheduler(tick_interval_seconds=5)._tick_interval == 5

    def test_list_schedules(self, orchestrator, month_end, business_unit_id):
        assert [s.name for s in orchestrator.list_schedules(business_unit_id)] == ["Month end"]

    def test_from_engine(self, db_engine, clock):
        orchestrator = DepreciationOrchestrator.from_engine(clock=clock)
        assert orchestrator.clock is clock
        assert orchestrator.service.executor is orchestrator.executor
