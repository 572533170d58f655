"""
DepreciationBatchExecutor -- transaction-per-asset batch depreciation.

Contract:
    ``execute()`` runs one depreciation pass over a business unit's
    candidate assets and always returns an ``ExecutionResult``, even when
    nothing was eligible, the run was cancelled, or persistence failed.
    ``cancel()`` requests cooperative cancellation of a running execution.

Architecture: asset_batch/services.  Imports from asset_batch.domain,
    asset_batch.repositories, asset_modules.depreciation and the pure
    engines.

Invariants enforced:
    - Each asset commits in its own transaction; one asset's failure never
      rolls back another's.
    - The asset row is claimed with a compare-and-swap UPDATE before the
      ledger insert, so two overlapping runs never depreciate the same
      period twice.  The loser reports the asset as SKIPPED.
    - A dry run performs the same computation but writes nothing, not even
      an execution record.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from decimal import Decimal
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from asset_engines.asset_state import (
    IneligibilityReason,
    PeriodComputation,
    check_eligibility,
    period_bounds,
    periods_calculated,
    plan_next_period,
    resolve_basis,
    run_span,
)
from asset_engines.depreciation import ZERO, DepreciationMethod, UsageProvider
from asset_kernel.db.engine import session_scope
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.exceptions import (
    AssetPeriodConflictError,
    DepreciationComputationError,
    DepreciationConfigError,
    ExecutionAbortedError,
    MissingDepreciationFieldError,
)
from asset_kernel.logging_config import LogContext, get_logger
from asset_modules.depreciation.config import DepreciationConfig
from asset_modules.depreciation.models import Asset, DepreciationRecord
from asset_modules.depreciation.repositories import (
    AssetRepository,
    CategoryDirectory,
    LedgerRepository,
)

from asset_batch.domain.types import (
    AssetOutcome,
    AssetOutcomeStatus,
    BatchRunConfig,
    DepreciationExecution,
    ExecutionResult,
    ExecutionStatus,
    Subtotal,
)
from asset_batch.repositories import ExecutionRepository

logger = get_logger("batch.executor")

UNCATEGORIZED_KEY = "uncategorized"
UNCATEGORIZED_LABEL = "Uncategorized"

_FATAL_ERRORS = (OperationalError, InterfaceError)


class _RunState:
    """Signals shared by the workers of one execution."""

    def __init__(self, cancel_event: threading.Event) -> None:
        self.cancel_event = cancel_event
        self.abort_event = threading.Event()

    @property
    def should_stop(self) -> bool:
        return self.cancel_event.is_set() or self.abort_event.is_set()


class DepreciationBatchExecutor:
    """Batch depreciation engine with one transaction per asset.

    Contract:
        - ``execute()`` creates (unless dry run), runs and finalizes an
          execution and returns its summary.
        - ``cancel()`` signals a running execution of this executor to stop
          before its next asset, or cancels a PENDING one outright.

    Non-goals:
        - Does NOT schedule anything -- that is the scheduler's job.
        - Does NOT post journal entries; the ledger here is the
          depreciation ledger only.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        config: DepreciationConfig | None = None,
        usage_provider: UsageProvider | None = None,
        actor_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or DepreciationConfig.with_defaults()
        self._usage_provider = usage_provider
        self._actor_id = actor_id or uuid4()
        self._active: dict[UUID, threading.Event] = {}
        self._active_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute(
        self,
        config: BatchRunConfig,
        dry_run: bool = False,
        actor_id: UUID | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionResult:
        """Run depreciation for every candidate asset of ``config``.

        Per-asset problems are reported in the result, never raised.
        """
        start = time.monotonic()
        actor = actor_id or self._actor_id
        started_at = self._clock.now()
        state = _RunState(cancel_event or threading.Event())

        execution_id: UUID | None = None
        if not dry_run:
            execution_id = self._open_execution(config, actor, started_at)
            with self._active_lock:
                self._active[execution_id] = state.cancel_event

        with LogContext.bind(
            execution_id=str(execution_id) if execution_id else None,
            schedule_id=str(config.schedule_id) if config.schedule_id else None,
            actor_id=str(actor),
        ):
            logger.info(
                "depreciation_execution_started",
                extra={
                    "business_unit_id": str(config.business_unit_id),
                    "calculation_date": config.calculation_date.isoformat(),
                    "granularity": config.granularity.value,
                    "dry_run": dry_run,
                },
            )
            try:
                try:
                    outcomes, category_names, fatal = self._run(
                        config, dry_run, actor, execution_id, state,
                    )
                except Exception as exc:
                    logger.exception("depreciation_execution_crashed")
                    outcomes, category_names, fatal = [], {}, f"Unexpected error: {exc}"
                result = self._build_result(
                    config=config,
                    execution_id=execution_id,
                    dry_run=dry_run,
                    outcomes=outcomes,
                    category_names=category_names,
                    cancelled=state.cancel_event.is_set() and fatal is None,
                    fatal=fatal,
                    started_at=started_at,
                    start=start,
                )
                if execution_id is not None:
                    persisted = self._close_execution(execution_id, result, actor)
                    if persisted.status is not result.status:
                        result = replace(
                            result,
                            status=persisted.status,
                            error_message=persisted.error_message,
                        )
            finally:
                if execution_id is not None:
                    with self._active_lock:
                        self._active.pop(execution_id, None)

            logger.info(
                "depreciation_execution_finalized",
                extra={
                    "status": result.status.value,
                    "dry_run": dry_run,
                    "total_assets_processed": result.total_assets_processed,
                    "successful_calculations": result.successful_calculations,
                    "failed_calculations": result.failed_calculations,
                    "skipped_calculations": result.skipped_calculations,
                    "total_depreciation_amount": str(result.total_depreciation_amount),
                    "duration_ms": result.duration_ms,
                },
            )
        return result

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    def cancel(self, execution_id: UUID) -> bool:
        """Request cancellation of an execution.

        Returns True if a running execution of this executor was signalled.
        Any other non-terminal execution is marked CANCELLED in the database;
        the executor running it stops before its next asset and still
        records its partial counts.

        Raises:
            ExecutionNotFoundError: Unknown execution.
            InvalidExecutionTransitionError: The execution already finished.
        """
        with self._active_lock:
            event = self._active.get(execution_id)
        if event is not None:
            event.set()
            logger.info(
                "depreciation_execution_cancel_requested",
                extra={"execution_id": str(execution_id)},
            )
            return True

        with session_scope(self._session_factory) as session:
            ExecutionRepository(session).transition(
                execution_id, ExecutionStatus.CANCELLED, self._clock.now(),
                error_message="Cancelled by request",
            )
        return False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _open_execution(
        self, config: BatchRunConfig, actor_id: UUID, started_at,
    ) -> UUID:
        execution = DepreciationExecution(
            execution_id=uuid4(),
            business_unit_id=config.business_unit_id,
            calculation_date=config.calculation_date,
            granularity=config.granularity,
            status=ExecutionStatus.PENDING,
            include_categories=config.include_categories,
            exclude_categories=config.exclude_categories,
            schedule_id=config.schedule_id,
            triggered_by_id=actor_id,
        )
        with session_scope(self._session_factory) as session:
            repo = ExecutionRepository(session)
            repo.create(execution, actor_id=actor_id, created_at=started_at)
            repo.transition(execution.execution_id, ExecutionStatus.RUNNING, started_at)
        return execution.execution_id

    def _close_execution(
        self, execution_id: UUID, result: ExecutionResult, actor_id: UUID,
    ) -> DepreciationExecution:
        with session_scope(self._session_factory) as session:
            repo = ExecutionRepository(session)
            repo.add_details(
                execution_id, result.details, actor_id=actor_id,
                created_at=result.completed_at,
            )
            return repo.finalize(execution_id, result, summary=_summary(result))

    def _cancelled_elsewhere(self, execution_id: UUID) -> bool:
        with session_scope(self._session_factory) as session:
            status = ExecutionRepository(session).status(execution_id)
        return status is ExecutionStatus.CANCELLED

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def _run(
        self,
        config: BatchRunConfig,
        dry_run: bool,
        actor_id: UUID,
        execution_id: UUID | None,
        state: _RunState,
    ) -> tuple[list[AssetOutcome], dict[UUID, str], str | None]:
        try:
            with session_scope(self._session_factory) as session:
                candidates = AssetRepository(session).list_candidates(
                    config.business_unit_id,
                    config.include_categories,
                    config.exclude_categories,
                )
                category_names = CategoryDirectory(session).names_for_business_unit(
                    config.business_unit_id,
                )
        except SQLAlchemyError as exc:
            logger.exception("depreciation_candidates_failed")
            return [], {}, f"Failed to resolve candidate assets: {exc}"

        logger.info("depreciation_candidates_resolved", extra={"asset_count": len(candidates)})

        outcomes: list[AssetOutcome] = []
        fatal: str | None = None
        with ThreadPoolExecutor(
            max_workers=self._config.max_workers,
            thread_name_prefix="depreciation",
        ) as pool:
            futures = [
                pool.submit(
                    self._process_asset, asset, config, dry_run, actor_id,
                    execution_id, state,
                )
                for asset in candidates
            ]
            for future in futures:
                try:
                    outcome = future.result()
                except ExecutionAbortedError as exc:
                    state.abort_event.set()
                    if fatal is None:
                        fatal = exc.cause
                    continue
                except Exception as exc:
                    logger.exception("depreciation_worker_crashed")
                    state.abort_event.set()
                    if fatal is None:
                        fatal = f"Unexpected error: {exc}"
                    continue
                if outcome is not None:
                    outcomes.append(outcome)
        return outcomes, category_names, fatal

    def _process_asset(
        self,
        asset: Asset,
        config: BatchRunConfig,
        dry_run: bool,
        actor_id: UUID,
        execution_id: UUID | None,
        state: _RunState,
    ) -> AssetOutcome | None:
        """Depreciate one asset.  Returns None when the run stopped first."""
        if state.should_stop:
            return None
        if execution_id is not None:
            try:
                if self._cancelled_elsewhere(execution_id):
                    state.cancel_event.set()
                    return None
            except _FATAL_ERRORS as exc:
                raise ExecutionAbortedError(str(execution_id), str(exc)) from exc

        with LogContext.bind(
            execution_id=str(execution_id) if execution_id else None,
            asset_id=str(asset.id),
            actor_id=str(actor_id),
        ):
            base = AssetOutcome(
                asset_id=asset.id,
                item_code=asset.item_code,
                status=AssetOutcomeStatus.SKIPPED,
                category_id=asset.category_id,
                method=asset.depreciation_method.value if asset.depreciation_method else None,
                book_value_before=asset.current_book_value,
            )
            try:
                computation = self._plan(asset, config)
            except DepreciationConfigError as exc:
                logger.warning("asset_depreciation_not_configured", extra={"error_code": exc.code})
                return _replace(base, status=AssetOutcomeStatus.NO_SETUP, error=exc)
            except DepreciationComputationError as exc:
                logger.warning("asset_depreciation_invalid", extra={"error_code": exc.code})
                return _replace(base, status=AssetOutcomeStatus.FAILED, error=exc)
            except Exception as exc:
                logger.exception("asset_depreciation_unexpected_error")
                return _replace(base, status=AssetOutcomeStatus.FAILED, error=exc)

            if isinstance(computation, IneligibilityReason):
                return _ineligible(base, computation)

            record_id = None
            if not dry_run:
                try:
                    record_id = self._commit(
                        computation, config, actor_id, execution_id,
                    )
                except (AssetPeriodConflictError, IntegrityError):
                    logger.info(
                        "asset_period_conflict",
                        extra={"period_start": computation.period_start.isoformat()},
                    )
                    return _replace(
                        base,
                        status=AssetOutcomeStatus.SKIPPED,
                        message="Already calculated for this period",
                    )
                except _FATAL_ERRORS as exc:
                    logger.exception("asset_depreciation_persistence_failed")
                    raise ExecutionAbortedError(
                        str(execution_id) if execution_id else None, str(exc),
                    ) from exc
                except Exception as exc:
                    logger.exception("asset_depreciation_write_failed")
                    return _replace(base, status=AssetOutcomeStatus.FAILED, error=exc)

            return AssetOutcome(
                asset_id=asset.id,
                item_code=asset.item_code,
                status=AssetOutcomeStatus.SUCCESS,
                category_id=asset.category_id,
                method=computation.method.value,
                depreciation_amount=computation.depreciation_amount,
                book_value_before=computation.book_value_start,
                book_value_after=computation.book_value_end,
                period_start=computation.period_start,
                period_end=computation.period_end,
                is_fully_depreciated=computation.is_fully_depreciated,
                depreciation_record_id=record_id,
            )

    def _plan(
        self, asset: Asset, config: BatchRunConfig,
    ) -> PeriodComputation | IneligibilityReason:
        financials = asset.financials
        eligibility = check_eligibility(financials, config.calculation_date)
        if not eligibility.eligible:
            reason = eligibility.reason
            if reason.is_configuration_error:
                raise MissingDepreciationFieldError(reason.missing_field, str(asset.id))
            return reason

        units = None
        if financials.method is DepreciationMethod.UNITS_OF_PRODUCTION:
            units = self._usage_units(asset, config)

        return plan_next_period(
            asset=financials,
            calculation_date=config.calculation_date,
            months=config.granularity.months,
            units_used=units,
            declining_factor=self._config.declining_balance_factor,
        )

    def _usage_units(self, asset: Asset, config: BatchRunConfig) -> Decimal | None:
        if self._usage_provider is None:
            return None
        financials = asset.financials
        basis = resolve_basis(financials)
        done = periods_calculated(financials, basis)
        span = run_span(basis, done, config.calculation_date, config.granularity.months)
        period_start, _ = period_bounds(basis, done + 1)
        _, period_end = period_bounds(basis, done + span)
        return self._usage_provider.units_for_period(asset.id, period_start, period_end)

    def _commit(
        self,
        computation: PeriodComputation,
        config: BatchRunConfig,
        actor_id: UUID,
        execution_id: UUID | None,
    ) -> UUID:
        record = DepreciationRecord(
            id=uuid4(),
            asset_id=computation.asset_id,
            period_start_date=computation.period_start,
            period_end_date=computation.period_end,
            depreciation_date=config.calculation_date,
            method=computation.method,
            book_value_start=computation.book_value_start,
            depreciation_amount=computation.depreciation_amount,
            book_value_end=computation.book_value_end,
            accumulated_depreciation=computation.accumulated_depreciation,
            triggered_by_id=actor_id,
            execution_id=execution_id,
        )
        with self._session_factory() as session, session.begin():
            AssetRepository(session).apply_period(
                computation, config.calculation_date, actor_id,
            )
            LedgerRepository(session).append(record)

        logger.info(
            "asset_depreciation_committed",
            extra={
                "period_start": computation.period_start.isoformat(),
                "period_end": computation.period_end.isoformat(),
                "depreciation_amount": str(computation.depreciation_amount),
                "book_value_end": str(computation.book_value_end),
                "is_fully_depreciated": computation.is_fully_depreciated,
            },
        )
        return record.id

    # -------------------------------------------------------------------------
    # Result
    # -------------------------------------------------------------------------

    def _build_result(
        self,
        *,
        config: BatchRunConfig,
        execution_id: UUID | None,
        dry_run: bool,
        outcomes: list[AssetOutcome],
        category_names: dict[UUID, str],
        cancelled: bool,
        fatal: str | None,
        started_at,
        start: float,
    ) -> ExecutionResult:
        counts: dict[AssetOutcomeStatus, int] = defaultdict(int)
        total = ZERO
        for outcome in outcomes:
            counts[outcome.status] += 1
            if outcome.status is AssetOutcomeStatus.SUCCESS:
                total += outcome.depreciation_amount

        if fatal is not None:
            status = ExecutionStatus.FAILED
        elif cancelled:
            status = ExecutionStatus.CANCELLED
        else:
            status = ExecutionStatus.COMPLETED

        return ExecutionResult(
            execution_id=execution_id,
            status=status,
            calculation_date=config.calculation_date,
            granularity=config.granularity,
            dry_run=dry_run,
            total_assets_processed=len(outcomes),
            successful_calculations=counts[AssetOutcomeStatus.SUCCESS],
            failed_calculations=(
                counts[AssetOutcomeStatus.FAILED] + counts[AssetOutcomeStatus.NO_SETUP]
            ),
            skipped_calculations=(
                counts[AssetOutcomeStatus.SKIPPED]
                + counts[AssetOutcomeStatus.FULLY_DEPRECIATED]
            ),
            fully_depreciated_assets=counts[AssetOutcomeStatus.FULLY_DEPRECIATED],
            assets_without_setup=counts[AssetOutcomeStatus.NO_SETUP],
            total_depreciation_amount=total,
            details=tuple(outcomes),
            by_category=_subtotals(
                outcomes,
                key=lambda o: str(o.category_id) if o.category_id else UNCATEGORIZED_KEY,
                label=lambda o: (
                    category_names.get(o.category_id, str(o.category_id))
                    if o.category_id
                    else UNCATEGORIZED_LABEL
                ),
            ),
            by_method=_subtotals(
                outcomes,
                key=lambda o: o.method or "",
                label=lambda o: (o.method or "").replace("_", " ").title(),
            ),
            started_at=started_at,
            completed_at=self._clock.now(),
            duration_ms=int((time.monotonic() - start) * 1000),
            error_message=fatal if fatal is not None else (
                "Cancelled" if cancelled else None
            ),
        )


# =============================================================================
# Helpers
# =============================================================================


def _replace(
    base: AssetOutcome,
    *,
    status: AssetOutcomeStatus,
    error: Exception | None = None,
    message: str | None = None,
) -> AssetOutcome:
    error_code = getattr(error, "code", None) if error is not None else None
    if error is not None and error_code is None:
        error_code = type(error).__name__
    return AssetOutcome(
        asset_id=base.asset_id,
        item_code=base.item_code,
        status=status,
        category_id=base.category_id,
        method=base.method,
        book_value_before=base.book_value_before,
        book_value_after=base.book_value_before,
        error_code=error_code,
        error_message=message if message is not None else (str(error) if error else None),
    )


def _ineligible(base: AssetOutcome, reason: IneligibilityReason) -> AssetOutcome:
    match reason:
        case IneligibilityReason.FULLY_DEPRECIATED:
            return _replace(
                base, status=AssetOutcomeStatus.FULLY_DEPRECIATED,
                message="Asset is fully depreciated",
            )
        case IneligibilityReason.START_DATE_IN_FUTURE:
            return _replace(
                base, status=AssetOutcomeStatus.SKIPPED,
                message="Depreciation start date is after the calculation date",
            )
        case IneligibilityReason.NO_ELAPSED_PERIODS:
            return _replace(
                base, status=AssetOutcomeStatus.SKIPPED,
                message="Already calculated for this period",
            )
        case _:
            return _replace(base, status=AssetOutcomeStatus.SKIPPED, message=reason.value)


def _subtotals(
    outcomes: list[AssetOutcome],
    key: Callable[[AssetOutcome], str],
    label: Callable[[AssetOutcome], str],
) -> tuple[Subtotal, ...]:
    grouped: dict[str, list[AssetOutcome]] = defaultdict(list)
    labels: dict[str, str] = {}
    for outcome in outcomes:
        if outcome.status is not AssetOutcomeStatus.SUCCESS:
            continue
        k = key(outcome)
        grouped[k].append(outcome)
        labels[k] = label(outcome)
    return tuple(
        Subtotal(
            key=k,
            label=labels[k],
            asset_count=len(items),
            depreciation_amount=sum((o.depreciation_amount for o in items), ZERO),
        )
        for k, items in sorted(grouped.items(), key=lambda kv: labels[kv[0]])
    )


def _summary(result: ExecutionResult) -> dict:
    def rows(subtotals: tuple[Subtotal, ...]) -> list[dict]:
        return [
            {
                "key": s.key,
                "label": s.label,
                "asset_count": s.asset_count,
                "depreciation_amount": str(s.depreciation_amount),
            }
            for s in subtotals
        ]

    return {
        "fully_depreciated_assets": result.fully_depreciated_assets,
        "assets_without_setup": result.assets_without_setup,
        "by_category": rows(result.by_category),
        "by_method": rows(result.by_method),
    }
