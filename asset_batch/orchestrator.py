"""
DepreciationOrchestrator -- DI container for batch depreciation.

Contract:
    Composes the executor, schedule manager and scheduler from one session
    factory, clock, configuration and actor.  Single place where all batch
    dependencies are wired.

Architecture: asset_batch (top-level).  The canonical entry point for
    running depreciation outside of tests (the CLI uses it).

Invariants enforced:
    - Clock injection: every component receives the same Clock.
    - One executor per orchestrator, so ``cancel()`` reaches runs started
      by ``run_batch()`` and by the scheduler alike.
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from asset_engines.depreciation import UsageProvider
from asset_kernel.db.engine import get_session_factory, session_scope
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.logging_config import get_logger
from asset_modules.depreciation.config import DepreciationConfig
from asset_modules.depreciation.service import DepreciationService

from asset_batch.services.executor import DepreciationBatchExecutor
from asset_batch.services.schedule_manager import ScheduleManager
from asset_batch.services.scheduler import DepreciationScheduler

logger = get_logger("batch.orchestrator")


class DepreciationOrchestrator:
    """DI container for batch depreciation.

    Contract:
        - ``from_engine()`` builds an orchestrator on the kernel's
          initialized engine.
        - ``service`` exposes the depreciation operations.
        - ``create_scheduler()`` returns a scheduler for background use.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        config: DepreciationConfig | None = None,
        usage_provider: UsageProvider | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or DepreciationConfig.with_defaults()
        self._actor_id = actor_id or uuid4()
        self._service = DepreciationService(
            session_factory=session_factory,
            clock=self._clock,
            config=self._config,
            usage_provider=usage_provider,
            actor_id=self._actor_id,
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_engine(
        cls,
        clock: Clock | None = None,
        config: DepreciationConfig | None = None,
        usage_provider: UsageProvider | None = None,
        actor_id: UUID | None = None,
    ) -> DepreciationOrchestrator:
        """Create an orchestrator on the engine set up by ``init_engine_from_url``.

        Raises:
            RuntimeError: If the engine has not been initialized.
        """
        return cls(
            session_factory=get_session_factory(),
            clock=clock,
            config=config,
            usage_provider=usage_provider,
            actor_id=actor_id,
        )

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def create_schedule_manager(self, session: Session) -> ScheduleManager:
        """Schedule manager bound to a caller-owned session."""
        return ScheduleManager(session, clock=self._clock, actor_id=self._actor_id)

    def create_scheduler(
        self,
        tick_interval_seconds: int | None = None,
    ) -> DepreciationScheduler:
        """Create a scheduler that fires runs through the shared executor.

        Args:
            tick_interval_seconds: Polling interval; defaults to
                ``DepreciationConfig.scheduler_tick_seconds``.
        """
        interval = tick_interval_seconds or self._config.scheduler_tick_seconds
        logger.info("scheduler_created", extra={"tick_interval": interval})
        return DepreciationScheduler(
            session_factory=self._session_factory,
            executor=self.executor,
            clock=self._clock,
            actor_id=self._actor_id,
            tick_interval_seconds=interval,
        )

    def list_schedules(self, business_unit_id: UUID):
        with session_scope(self._session_factory) as session:
            return self.create_schedule_manager(session).list_schedules(business_unit_id)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def service(self) -> DepreciationService:
        return self._service

    @property
    def executor(self) -> DepreciationBatchExecutor:
        return self._service.executor

    @property
    def session_factory(self) -> Callable[[], Session]:
        return self._session_factory

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> DepreciationConfig:
        return self._config

    @property
    def actor_id(self) -> UUID:
        return self._actor_id
