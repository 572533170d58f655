"""
Tests for DepreciationBatchExecutor.

Every run goes through a real SQLite database so the per-asset
transactions, the compare-and-swap on the asset row and the execution
lifecycle are exercised end to end.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from asset_batch.domain.types import (
    AssetOutcomeStatus,
    BatchRunConfig,
    ExecutionFilters,
    ExecutionStatus,
    PeriodGranularity,
)
from asset_batch.repositories import ExecutionRepository
from asset_engines.asset_state import add_months, ledger_reconciles, plan_next_period
from asset_engines.depreciation import DepreciationMethod
from asset_kernel.db.engine import session_scope
from asset_kernel.exceptions import (
    AssetPeriodConflictError,
    ExecutionNotFoundError,
    InvalidExecutionTransitionError,
)
from asset_modules.depreciation.config import DepreciationConfig
from asset_modules.depreciation.models import PreDepreciationAnchor
from asset_modules.depreciation.repositories import (
    AssetRepository,
    CategoryDirectory,
    LedgerRepository,
)
from asset_modules.depreciation.service import DepreciationService


@pytest.fixture
def run_config(business_unit_id):
    def _make(calculation_date=date(2024, 1, 31), **overrides) -> BatchRunConfig:
        return BatchRunConfig(
            business_unit_id=business_unit_id,
            calculation_date=calculation_date,
            **overrides,
        )

    return _make


class _SteadyUsage:
    """Usage provider that optionally trips a cancel event on first use."""

    def __init__(self, units: Decimal, cancel_event: threading.Event | None = None):
        self.units = units
        self.cancel_event = cancel_event
        self.calls = []

    def units_for_period(self, asset_id, period_start, period_end):
        self.calls.append((asset_id, period_start, period_end))
        if self.cancel_event is not None:
            self.cancel_event.set()
        return self.units


class _CancelThroughService(_SteadyUsage):
    """Usage provider that cancels the running execution through another service."""

    def __init__(self, units: Decimal, other: DepreciationService, business_unit_id):
        super().__init__(units)
        self.other = other
        self.business_unit_id = business_unit_id

    def units_for_period(self, asset_id, period_start, period_end):
        if not self.calls:
            (running,) = self.other.list_executions(
                ExecutionFilters(business_unit_id=self.business_unit_id, status=ExecutionStatus.RUNNING),
            ).items
            assert self.other.cancel_execution(running.execution_id) is False
        return super().units_for_period(asset_id, period_start, period_end)


# =============================================================================
# Straight-line lifecycle
# =============================================================================


class TestMonthlyRuns:

    def test_first_period(self, service, make_asset, run_config):
        asset = make_asset()

        result = service.run_batch(run_config())

        assert result.status is ExecutionStatus.COMPLETED
        assert result.total_assets_processed == 1
        assert result.successful_calculations == 1
        assert result.total_depreciation_amount == Decimal("5000.00")

        updated = service.get_asset(asset.id)
        assert updated.accumulated_depreciation == Decimal("5000.00")
        assert updated.current_book_value == Decimal("115000.00")
        assert updated.last_period_end == date(2024, 1, 31)
        assert updated.last_depreciation_date == date(2024, 1, 31)
        assert updated.next_depreciation_date == date(2024, 2, 29)

    def test_full_life_reaches_zero_book_value(self, service, make_asset, run_config):
        asset = make_asset()

        for month in range(24):
            result = service.run_batch(run_config(add_months(date(2024, 1, 31), month)))
            assert result.successful_calculations == 1
            assert result.total_depreciation_amount == Decimal("5000.00")

        final = service.get_asset(asset.id)
        assert final.accumulated_depreciation == Decimal("120000.00")
        assert final.current_book_value == Decimal("0.00")
        assert final.is_fully_depreciated
        assert final.next_depreciation_date is None

        after = service.run_batch(run_config(date(2026, 1, 31)))
        assert after.status is ExecutionStatus.COMPLETED
        assert after.total_assets_processed == 0

    def test_ledger_reconciles_with_asset(self, service, make_asset, run_config):
        asset = make_asset(
            depreciation_method=DepreciationMethod.DECLINING_BALANCE,
            salvage_value=Decimal("6000"),
        )
        execution_ids = [
            service.run_batch(run_config(add_months(date(2024, 1, 31), m))).execution_id
            for m in range(3)
        ]

        ledger = service.asset_ledger(asset.id)
        updated = service.get_asset(asset.id)

        assert len(ledger) == 3
        assert ledger_reconciles((r.depreciation_amount for r in ledger), updated.accumulated_depreciation)
        assert [r.execution_id for r in ledger] == execution_ids
        assert [r.period_key for r in ledger] == ["2024-01", "2024-02", "2024-03"]
        assert ledger[1].book_value_start == ledger[0].book_value_end

    def test_quarterly_run_covers_three_months(self, service, make_asset, run_config):
        asset = make_asset()

        result = service.run_batch(
            run_config(date(2024, 3, 31), granularity=PeriodGranularity.QUARTERLY),
        )

        assert result.total_depreciation_amount == Decimal("15000.00")
        outcome = result.details[0]
        assert outcome.period_start == date(2024, 1, 1)
        assert outcome.period_end == date(2024, 3, 31)
        assert service.get_asset(asset.id).last_period_end == date(2024, 3, 31)
        assert len(service.asset_ledger(asset.id)) == 1

    def test_quarterly_run_mid_quarter_stays_in_step(self, service, make_asset, run_config):
        asset = make_asset()

        first = service.run_batch(
            run_config(date(2024, 1, 31), granularity=PeriodGranularity.QUARTERLY),
        )
        second = service.run_batch(
            run_config(date(2024, 4, 30), granularity=PeriodGranularity.QUARTERLY),
        )

        assert first.details[0].period_end == date(2024, 1, 31)
        assert first.total_depreciation_amount == Decimal("5000.00")
        assert second.details[0].period_start == date(2024, 2, 1)
        assert second.details[0].period_end == date(2024, 4, 30)
        assert second.total_depreciation_amount == Decimal("15000.00")
        assert service.get_asset(asset.id).last_period_end == date(2024, 4, 30)

    def test_migrated_asset_uses_anchor(self, service, make_asset, run_config):
        asset = make_asset(
            purchase_price=None,
            useful_life_months=None,
            depreciation_start_date=None,
            anchor=PreDepreciationAnchor(
                original_purchase_price=Decimal("100000"),
                original_useful_life_months=60,
                prior_depreciation_amount=Decimal("16666.67"),
                prior_depreciation_months=12,
                system_entry_date=date(2023, 12, 31),
                system_entry_book_value=Decimal("83333.33"),
            ),
        )

        result = service.run_batch(run_config())

        assert result.details[0].book_value_before == Decimal("83333.33")
        assert result.total_depreciation_amount == Decimal("1666.67")
        assert service.get_asset(asset.id).current_book_value == Decimal("81666.66")


# =============================================================================
# Per-asset isolation
# =============================================================================


class TestPerAssetOutcomes:

    def test_missing_method_does_not_block_others(self, service, make_asset, run_config):
        for _ in range(8):
            make_asset()
        broken = [make_asset(depreciation_method=None) for _ in range(2)]

        result = service.run_batch(run_config())

        assert result.total_assets_processed == 10
        assert result.successful_calculations == 8
        assert result.failed_calculations == 2
        assert result.assets_without_setup == 2
        assert {e.asset_id for e in result.errors} == {a.id for a in broken}
        for error in result.errors:
            assert error.status is AssetOutcomeStatus.NO_SETUP
            assert error.error_code == "MISSING_DEPRECIATION_FIELD"
            assert "depreciation_method" in error.error_message

    def test_invalid_input_is_failed(self, service, make_asset, run_config):
        asset = make_asset(salvage_value=Decimal("200000"))

        result = service.run_batch(run_config())

        (outcome,) = result.details
        assert outcome.asset_id == asset.id
        assert outcome.status is AssetOutcomeStatus.FAILED
        assert outcome.error_code == "INVALID_DEPRECIATION_INPUT"
        assert result.status is ExecutionStatus.COMPLETED

    def test_units_of_production_without_usage_is_unconfigured(self, service, make_asset, run_config):
        make_asset(
            depreciation_method=DepreciationMethod.UNITS_OF_PRODUCTION,
            total_expected_units=Decimal("10000"),
        )

        result = service.run_batch(run_config())

        assert result.details[0].status is AssetOutcomeStatus.NO_SETUP
        assert result.details[0].error_code == "MISSING_USAGE_UNITS"

    def test_future_start_date_is_skipped(self, service, make_asset, run_config):
        make_asset(depreciation_start_date=date(2024, 6, 1))

        result = service.run_batch(run_config())

        assert result.skipped_calculations == 1
        assert result.failed_calculations == 0
        assert result.details[0].status is AssetOutcomeStatus.SKIPPED

    def test_exhausted_asset_reports_fully_depreciated(self, service, make_asset, run_config):
        make_asset(accumulated_depreciation=Decimal("120000"))

        result = service.run_batch(run_config())

        assert result.fully_depreciated_assets == 1
        assert result.skipped_calculations == 1
        assert result.details[0].status is AssetOutcomeStatus.FULLY_DEPRECIATED

    def test_inactive_assets_are_not_candidates(self, service, make_asset, run_config):
        make_asset(is_active=False)

        result = service.run_batch(run_config())

        assert result.total_assets_processed == 0

    def test_no_eligible_assets_completes(self, service, run_config):
        result = service.run_batch(run_config())

        assert result.status is ExecutionStatus.COMPLETED
        assert result.total_assets_processed == 0
        assert result.total_depreciation_amount == Decimal("0")
        assert service.get_execution(result.execution_id).status is ExecutionStatus.COMPLETED

    def test_subtotals_by_category_and_method(self, service, make_asset, make_category, run_config):
        vehicles = make_category("VEH", "Vehicles")
        make_asset(category_id=vehicles.id)
        make_asset(category_id=vehicles.id, depreciation_method=DepreciationMethod.SUM_OF_YEARS_DIGITS)
        make_asset()
        make_asset(depreciation_method=None)

        result = service.run_batch(run_config())

        by_category = {s.label: (s.asset_count, s.depreciation_amount) for s in result.by_category}
        assert by_category["Vehicles"][0] == 2
        assert by_category["Uncategorized"] == (1, Decimal("5000.00"))
        by_method = {s.key: s.asset_count for s in result.by_method}
        assert by_method == {"straight_line": 2, "sum_of_years_digits": 1}
        assert sum(s.depreciation_amount for s in result.by_method) == result.total_depreciation_amount


# =============================================================================
# Dry run
# =============================================================================


class TestDryRun:

    def test_same_numbers_without_writes(self, service, make_asset, run_config, business_unit_id):
        assets = [make_asset() for _ in range(3)] + [make_asset(depreciation_method=None)]

        dry = service.run_batch(run_config(), dry_run=True)

        assert dry.dry_run
        assert dry.execution_id is None
        assert dry.successful_calculations == 3
        assert dry.failed_calculations == 1
        for asset in assets:
            assert service.get_asset(asset.id).accumulated_depreciation == Decimal("0")
            assert service.asset_ledger(asset.id) == ()
        assert service.list_executions(ExecutionFilters(business_unit_id=business_unit_id)).total == 0

        real = service.run_batch(run_config())

        assert real.total_depreciation_amount == dry.total_depreciation_amount
        assert real.successful_calculations == dry.successful_calculations
        assert [d.depreciation_amount for d in real.details] == [d.depreciation_amount for d in dry.details]


# =============================================================================
# Category filters
# =============================================================================


class TestCategoryFilters:

    @pytest.fixture
    def portfolio(self, make_asset, make_category):
        vehicles = make_category("VEH", "Vehicles")
        buildings = make_category("BLD", "Buildings")
        make_asset(category_id=vehicles.id)
        make_asset(category_id=vehicles.id)
        make_asset(category_id=buildings.id)
        make_asset()
        return vehicles, buildings

    def test_include(self, service, portfolio, run_config):
        vehicles, _ = portfolio
        result = service.run_batch(run_config(include_categories=(vehicles.id,)))
        assert result.total_assets_processed == 2
        assert {d.category_id for d in result.details} == {vehicles.id}

    def test_exclude_keeps_uncategorized(self, service, portfolio, run_config):
        vehicles, buildings = portfolio
        result = service.run_batch(run_config(exclude_categories=(vehicles.id,)))
        assert result.total_assets_processed == 2
        assert {d.category_id for d in result.details} == {buildings.id, None}

    def test_filters_are_persisted(self, service, portfolio, run_config):
        vehicles, buildings = portfolio
        result = service.run_batch(
            run_config(include_categories=(vehicles.id,), exclude_categories=(buildings.id,)),
        )
        execution = service.get_execution(result.execution_id)
        assert execution.include_categories == (vehicles.id,)
        assert execution.exclude_categories == (buildings.id,)


# =============================================================================
# Idempotency and concurrency
# =============================================================================


class TestAlreadyCalculated:

    def test_second_run_for_same_period_skips(self, service, make_asset, run_config):
        asset = make_asset()
        service.run_batch(run_config())

        second = service.run_batch(run_config())

        assert second.successful_calculations == 0
        assert second.skipped_calculations == 1
        assert second.details[0].error_message == "Already calculated for this period"
        assert len(service.asset_ledger(asset.id)) == 1
        assert service.get_asset(asset.id).accumulated_depreciation == Decimal("5000.00")

    def test_stale_computation_loses_compare_and_swap(self, service, session_factory, make_asset, actor_id):
        asset = make_asset()
        computation = plan_next_period(asset=asset.financials, calculation_date=date(2024, 1, 31))

        with session_scope(session_factory) as session:
            AssetRepository(session).apply_period(computation, date(2024, 1, 31), actor_id)

        with pytest.raises(AssetPeriodConflictError):
            with session_scope(session_factory) as session:
                AssetRepository(session).apply_period(computation, date(2024, 1, 31), actor_id)

        assert service.get_asset(asset.id).accumulated_depreciation == Decimal("5000.00")

    def test_overlapping_runs_depreciate_each_period_once(self, service, make_asset, run_config):
        assets = [make_asset() for _ in range(6)]

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(lambda _: service.run_batch(run_config()), range(2)))

        assert sum(r.successful_calculations for r in results) == 6
        assert sum(r.skipped_calculations for r in results) == 6
        for asset in assets:
            assert len(service.asset_ledger(asset.id)) == 1
            assert service.get_asset(asset.id).accumulated_depreciation == Decimal("5000.00")


# =============================================================================
# Fatal errors and cancellation
# =============================================================================


class TestFatalError:

    def test_persistence_failure_fails_the_run(self, service, make_asset, run_config, monkeypatch, captured_logs):
        asset = make_asset()

        def _broken(self, computation, calculation_date, actor_id):
            raise OperationalError("UPDATE fa_assets", {}, Exception("disk I/O error"))

        monkeypatch.setattr(AssetRepository, "apply_period", _broken)

        result = service.run_batch(run_config())

        assert result.status is ExecutionStatus.FAILED
        assert "disk I/O error" in result.error_message
        assert service.get_execution(result.execution_id).status is ExecutionStatus.FAILED
        assert service.asset_ledger(asset.id) == ()
        assert any(r["message"] == "asset_depreciation_persistence_failed" for r in captured_logs())

    def test_unexpected_write_error_fails_only_that_asset(self, service, make_asset, run_config, monkeypatch):
        asset = make_asset()

        def _broken(self, record):
            raise ValueError("unexpected conversion error")

        monkeypatch.setattr(LedgerRepository, "append", _broken)

        result = service.run_batch(run_config())

        assert result.status is ExecutionStatus.COMPLETED
        assert result.failed_calculations == 1
        (outcome,) = result.details
        assert outcome.status is AssetOutcomeStatus.FAILED
        assert outcome.error_code == "ValueError"
        assert service.get_execution(result.execution_id).status is ExecutionStatus.COMPLETED
        # the asset update rolled back with the failed ledger insert
        assert service.get_asset(asset.id).last_period_end is None

    def test_unexpected_error_still_finalizes(self, service, make_asset, run_config, monkeypatch):
        make_asset()

        def _broken(self, business_unit_id):
            raise ValueError("bad category row")

        monkeypatch.setattr(CategoryDirectory, "names_for_business_unit", _broken)

        result = service.run_batch(run_config())

        assert result.status is ExecutionStatus.FAILED
        assert "bad category row" in result.error_message
        assert service.get_execution(result.execution_id).status is ExecutionStatus.FAILED


class TestCancellation:

    def test_cancel_before_start(self, service, make_asset, run_config):
        make_asset()
        event = threading.Event()
        event.set()

        result = service.run_batch(run_config(), cancel_event=event)

        assert result.status is ExecutionStatus.CANCELLED
        assert result.total_assets_processed == 0
        assert result.error_message == "Cancelled"
        assert service.get_execution(result.execution_id).status is ExecutionStatus.CANCELLED

    def test_cancel_mid_run_keeps_committed_assets(self, session_factory, clock, make_asset, run_config, actor_id):
        event = threading.Event()
        usage = _SteadyUsage(Decimal("100"), cancel_event=event)
        single = DepreciationService(
            session_factory=session_factory,
            clock=clock,
            config=DepreciationConfig(max_workers=1),
            usage_provider=usage,
            actor_id=actor_id,
        )
        assets = [
            make_asset(
                depreciation_method=DepreciationMethod.UNITS_OF_PRODUCTION,
                total_expected_units=Decimal("1200"),
            )
            for _ in range(3)
        ]

        result = single.run_batch(run_config(), cancel_event=event)

        assert result.status is ExecutionStatus.CANCELLED
        assert result.successful_calculations == 1
        assert result.total_depreciation_amount == Decimal("10000.00")
        assert len(single.asset_ledger(assets[0].id)) == 1
        assert single.asset_ledger(assets[1].id) == ()
        assert single.execution_details(result.execution_id)[0].asset_id == assets[0].id

    def test_cancel_from_another_service(self, session_factory, clock, make_asset, run_config, actor_id, business_unit_id):
        other = DepreciationService(session_factory=session_factory, clock=clock, actor_id=actor_id)
        usage = _CancelThroughService(Decimal("100"), other, business_unit_id)
        single = DepreciationService(
            session_factory=session_factory,
            clock=clock,
            config=DepreciationConfig(max_workers=1),
            usage_provider=usage,
            actor_id=actor_id,
        )
        assets = [
            make_asset(
                depreciation_method=DepreciationMethod.UNITS_OF_PRODUCTION,
                total_expected_units=Decimal("1200"),
            )
            for _ in range(3)
        ]

        result = single.run_batch(run_config())

        assert result.status is ExecutionStatus.CANCELLED
        assert result.successful_calculations == 1
        assert single.asset_ledger(assets[1].id) == ()
        execution = single.get_execution(result.execution_id)
        assert execution.status is ExecutionStatus.CANCELLED
        assert execution.successful_calculations == 1
        assert execution.total_depreciation_amount == Decimal("10000.00")
        assert len(single.execution_details(result.execution_id)) == 1

    def test_usage_provider_receives_period_bounds(self, session_factory, clock, make_asset, run_config, actor_id):
        usage = _SteadyUsage(Decimal("100"))
        metered = DepreciationService(
            session_factory=session_factory, clock=clock, usage_provider=usage,
            actor_id=actor_id,
        )
        asset = make_asset(
            depreciation_method=DepreciationMethod.UNITS_OF_PRODUCTION,
            total_expected_units=Decimal("1200"),
        )

        metered.run_batch(run_config(date(2024, 3, 31), granularity=PeriodGranularity.QUARTERLY))

        assert usage.calls == [(asset.id, date(2024, 1, 1), date(2024, 3, 31))]

    def test_cancel_unknown_execution(self, service):
        with pytest.raises(ExecutionNotFoundError):
            service.cancel_execution(uuid4())


# =============================================================================
# Execution record
# =============================================================================


class TestExecutionRecord:

    def test_counters_and_details_persisted(self, service, make_asset, run_config, actor_id):
        make_asset()
        make_asset(depreciation_method=None)

        result = service.run_batch(run_config())
        execution = service.get_execution(result.execution_id)

        assert execution.status is ExecutionStatus.COMPLETED
        assert execution.total_assets_processed == 2
        assert execution.successful_calculations == 1
        assert execution.failed_calculations == 1
        assert execution.total_depreciation_amount == Decimal("5000.00")
        assert execution.triggered_by_id == actor_id
        assert execution.started_at is not None and execution.completed_at is not None
        assert execution.summary["assets_without_setup"] == 1

        details = service.execution_details(result.execution_id)
        assert [d.item_code for d in details] == sorted(d.item_code for d in details)
        assert {d.status for d in details} == {AssetOutcomeStatus.SUCCESS, AssetOutcomeStatus.NO_SETUP}

    def test_terminal_execution_cannot_transition(self, service, session_factory, clock, run_config):
        result = service.run_batch(run_config())

        with pytest.raises(InvalidExecutionTransitionError):
            with session_scope(session_factory) as session:
                ExecutionRepository(session).transition(
                    result.execution_id, ExecutionStatus.RUNNING, clock.now(),
                )
        with pytest.raises(InvalidExecutionTransitionError):
            service.cancel_execution(result.execution_id)

    def test_run_logs_carry_execution_id(self, service, make_asset, run_config, captured_logs):
        make_asset()

        result = service.run_batch(run_config())

        logs = captured_logs()
        finalized = [r for r in logs if r["message"] == "depreciation_execution_finalized"]
        assert finalized[0]["execution_id"] == str(result.execution_id)
        assert finalized[0]["status"] == "completed"
        committed = [r for r in logs if r["message"] == "asset_depreciation_committed"]
        assert committed[0]["execution_id"] == str(result.execution_id)
        assert "asset_id" in committed[0]
