"""
Depreciation Module Service (``asset_modules.depreciation.service``).

Responsibility
--------------
Single entry point for depreciation operations: schedule previews, batch
runs, execution history, recurring schedules, manual adjustments, the
per-asset ledger and the portfolio summary.  Pure computation is
delegated to ``asset_engines``; persistence to the module and batch
repositories.

Architecture position
---------------------
**Modules layer** -- thin glue.  Composes ``DepreciationBatchExecutor``
and ``ScheduleManager`` from ``asset_batch`` with the repositories of this
package.

Invariants enforced
-------------------
* Each public method owns its transaction boundary: it commits on success
  and rolls back (then re-raises) on any exception.  Batch runs commit per
  asset inside the executor.
* Manual adjustments use the same compare-and-swap as batch periods, never
  consume a period, and never take book value below salvage.

Failure modes
-------------
* Unknown ids  -> ``AssetNotFoundError`` / ``ExecutionNotFoundError`` /
  ``ScheduleNotFoundError``.
* Invalid adjustment  -> ``InvalidDepreciationInputError``.
* Lost adjustment race  -> ``AssetPeriodConflictError``.

Usage::

    service = DepreciationService(get_session_factory(), clock=SystemClock())
    result = service.run_batch(
        BatchRunConfig(business_unit_id=bu_id, calculation_date=date(2024, 1, 31)),
    )
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from asset_engines.amortization import ScheduleEntry, generate_schedule
from asset_engines.asset_state import current_book_value, resolve_basis
from asset_engines.depreciation import ZERO, UsageProvider, quantize_money
from asset_engines.portfolio import PortfolioSummary, summarize_portfolio
from asset_kernel.db.engine import session_scope
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.exceptions import InvalidDepreciationInputError
from asset_kernel.logging_config import LogContext, get_logger

from asset_modules.depreciation.config import DepreciationConfig
from asset_modules.depreciation.models import Asset, AssetCategory, DepreciationRecord
from asset_modules.depreciation.repositories import (
    AssetRepository,
    CategoryDirectory,
    LedgerRepository,
)

if TYPE_CHECKING:
    from asset_batch.domain.types import (
        AssetOutcome,
        BatchRunConfig,
        DepreciationExecution,
        DepreciationSchedule,
        ExecutionFilters,
        ExecutionResult,
        Page,
        ScheduleConfig,
    )
    from asset_batch.services.executor import DepreciationBatchExecutor

logger = get_logger("modules.depreciation.service")


class DepreciationService:
    """
    Orchestrates depreciation operations through engines and repositories.

    Contract
    --------
    * Read operations return frozen domain objects; nothing returned is
      attached to a session.
    * ``run_batch`` always returns an ``ExecutionResult``; per-asset
      problems are reported there, never raised.

    Non-goals
    ---------
    * Does NOT post journal entries.
    * Does NOT start the recurring scheduler (see ``DepreciationOrchestrator``).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        config: DepreciationConfig | None = None,
        usage_provider: UsageProvider | None = None,
        actor_id: UUID | None = None,
    ):
        from asset_batch.services.executor import DepreciationBatchExecutor

        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or DepreciationConfig.with_defaults()
        self._actor_id = actor_id or uuid4()
        self._executor = DepreciationBatchExecutor(
            session_factory=session_factory,
            clock=self._clock,
            config=self._config,
            usage_provider=usage_provider,
            actor_id=self._actor_id,
        )

    @property
    def executor(self) -> DepreciationBatchExecutor:
        return self._executor

    # =========================================================================
    # Registration
    # =========================================================================

    def register_category(self, category: AssetCategory, actor_id: UUID | None = None) -> AssetCategory:
        with session_scope(self._session_factory) as session:
            return CategoryDirectory(session).add(category, actor_id or self._actor_id)

    def register_asset(self, asset: Asset, actor_id: UUID | None = None) -> Asset:
        with session_scope(self._session_factory) as session:
            created = AssetRepository(session).add(asset, actor_id or self._actor_id)
        logger.info(
            "asset_registered",
            extra={"asset_id": str(created.id), "item_code": created.item_code},
        )
        return created

    def get_asset(self, asset_id: UUID) -> Asset:
        with session_scope(self._session_factory) as session:
            return AssetRepository(session).get(asset_id)

    # =========================================================================
    # Schedule preview
    # =========================================================================

    def preview_schedule(
        self, asset_id: UUID, as_of: date | None = None,
    ) -> tuple[ScheduleEntry, ...]:
        """Forward depreciation table for one asset.  Read-only.

        Returns an empty tuple when the asset is not configured for
        depreciation.
        """
        asset = self.get_asset(asset_id)
        return generate_schedule(
            asset=asset.financials,
            as_of=as_of or self._clock.today(),
            declining_factor=self._config.declining_balance_factor,
        )

    # =========================================================================
    # Batch runs
    # =========================================================================

    def run_batch(
        self,
        config: BatchRunConfig,
        dry_run: bool = False,
        actor_id: UUID | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionResult:
        """Run (or dry-run) depreciation for a business unit."""
        return self._executor.execute(
            config, dry_run=dry_run, actor_id=actor_id, cancel_event=cancel_event,
        )

    def cancel_execution(self, execution_id: UUID) -> bool:
        return self._executor.cancel(execution_id)

    def list_executions(self, filters: ExecutionFilters) -> Page[DepreciationExecution]:
        """Page through past runs, newest first."""
        from asset_batch.repositories import ExecutionRepository

        page_size = min(max(filters.page_size, 1), self._config.max_page_size)
        with session_scope(self._session_factory) as session:
            return ExecutionRepository(session).list(replace(filters, page_size=page_size))

    def get_execution(self, execution_id: UUID) -> DepreciationExecution:
        from asset_batch.repositories import ExecutionRepository

        with session_scope(self._session_factory) as session:
            return ExecutionRepository(session).get(execution_id)

    def execution_details(self, execution_id: UUID) -> tuple[AssetOutcome, ...]:
        """Per-asset outcomes of a persisted run, ordered by item code."""
        from asset_batch.repositories import ExecutionRepository

        with session_scope(self._session_factory) as session:
            return ExecutionRepository(session).details(execution_id)

    # =========================================================================
    # Recurring schedules
    # =========================================================================

    def upsert_schedule(
        self, config: ScheduleConfig, actor_id: UUID | None = None,
    ) -> DepreciationSchedule:
        """Create (no ``schedule_id``) or update a recurring schedule."""
        from asset_batch.services.schedule_manager import ScheduleManager

        with session_scope(self._session_factory) as session:
            return ScheduleManager(
                session, clock=self._clock, actor_id=self._actor_id,
            ).upsert_schedule(config, actor_id=actor_id)

    def due_schedules(self, as_of: date | None = None) -> tuple[DepreciationSchedule, ...]:
        from asset_batch.services.schedule_manager import ScheduleManager

        with session_scope(self._session_factory) as session:
            return ScheduleManager(
                session, clock=self._clock, actor_id=self._actor_id,
            ).due_schedules(as_of)

    # =========================================================================
    # Adjustments and ledger
    # =========================================================================

    def record_adjustment(
        self,
        asset_id: UUID,
        amount: Decimal,
        reason: str,
        actor_id: UUID | None = None,
        adjustment_date: date | None = None,
    ) -> DepreciationRecord:
        """Record a manual depreciation adjustment.

        A positive ``amount`` adds depreciation, a negative one reverses
        some.  The asset's period position is unchanged.

        Raises:
            AssetNotFoundError: Unknown asset.
            MissingDepreciationFieldError: Asset is not configured.
            InvalidDepreciationInputError: Zero amount, empty reason, or the
                adjustment would leave book value outside [salvage, start].
            AssetPeriodConflictError: The asset changed concurrently.
        """
        amount = quantize_money(Decimal(str(amount)))
        if amount == ZERO:
            raise InvalidDepreciationInputError("adjustment amount must be non-zero", field_name="amount")
        if not (reason or "").strip():
            raise InvalidDepreciationInputError("adjustment reason is required", field_name="reason")

        actor = actor_id or self._actor_id
        when = adjustment_date or self._clock.today()

        with LogContext.bind(asset_id=str(asset_id), actor_id=str(actor)):
            with session_scope(self._session_factory) as session:
                assets = AssetRepository(session)
                asset = assets.get(asset_id)
                basis = resolve_basis(asset.financials)
                book_value_start = current_book_value(asset.financials, basis)
                book_value_end = book_value_start - amount
                if book_value_end < basis.salvage_value:
                    raise InvalidDepreciationInputError(
                        f"adjustment of {amount} takes book value below salvage {basis.salvage_value}",
                        field_name="amount",
                    )
                if asset.accumulated_depreciation + amount < ZERO:
                    raise InvalidDepreciationInputError(
                        f"adjustment of {amount} reverses more than accumulated depreciation",
                        field_name="amount",
                    )

                assets.apply_adjustment(
                    asset,
                    amount=amount,
                    new_book_value=book_value_end,
                    is_fully_depreciated=book_value_end <= basis.salvage_value,
                    adjustment_date=when,
                    actor_id=actor,
                )
                record = LedgerRepository(session).append(
                    DepreciationRecord(
                        id=uuid4(),
                        asset_id=asset.id,
                        period_start_date=when,
                        period_end_date=when,
                        depreciation_date=when,
                        method=asset.depreciation_method,
                        book_value_start=book_value_start,
                        depreciation_amount=amount,
                        book_value_end=book_value_end,
                        accumulated_depreciation=asset.accumulated_depreciation + amount,
                        triggered_by_id=actor,
                        is_adjustment=True,
                        adjustment_reason=reason.strip(),
                    )
                )

            logger.info(
                "depreciation_adjustment_recorded",
                extra={"amount": str(amount), "book_value_end": str(book_value_end)},
            )
        return record

    def asset_ledger(self, asset_id: UUID) -> tuple[DepreciationRecord, ...]:
        """All ledger records of an asset, oldest period first."""
        with session_scope(self._session_factory) as session:
            AssetRepository(session).get(asset_id)
            return tuple(LedgerRepository(session).for_asset(asset_id))

    # =========================================================================
    # Reporting
    # =========================================================================

    def portfolio_summary(self, business_unit_id: UUID) -> PortfolioSummary:
        with session_scope(self._session_factory) as session:
            assets = AssetRepository(session).list_for_business_unit(business_unit_id)
            names = CategoryDirectory(session).names_for_business_unit(business_unit_id)
        return summarize_portfolio((a.financials for a in assets), names)
