"""
asset_batch.domain.types -- Pure frozen dataclasses for depreciation runs.

ZERO I/O.  Frozen dataclasses with closed enum status fields and tuples
for immutable collections.

Invariants enforced:
    - Execution status moves PENDING -> RUNNING -> {COMPLETED, FAILED,
      CANCELLED}; a PENDING run may also be FAILED or CANCELLED before it
      starts.  Terminal statuses never change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, TypeVar
from uuid import UUID

T = TypeVar("T")


# =============================================================================
# Enums
# =============================================================================


class ExecutionStatus(str, Enum):
    """Depreciation execution lifecycle status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )

    def can_transition_to(self, target: ExecutionStatus) -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset(
        {ExecutionStatus.RUNNING, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
    ),
    ExecutionStatus.RUNNING: frozenset(
        {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
    ),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
    ExecutionStatus.CANCELLED: frozenset(),
}


class PeriodGranularity(str, Enum):
    """Length of the period a run depreciates."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"

    @property
    def months(self) -> int:
        match self:
            case PeriodGranularity.MONTHLY:
                return 1
            case PeriodGranularity.QUARTERLY:
                return 3
            case PeriodGranularity.ANNUALLY:
                return 12


class ScheduleCadence(str, Enum):
    """How often a recurring schedule fires."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"

    @property
    def granularity(self) -> PeriodGranularity:
        return PeriodGranularity(self.value)


class AssetOutcomeStatus(str, Enum):
    """Per-asset result within a run."""

    SUCCESS = "success"
    FAILED = "failed"  # Computation error or unexpected exception
    NO_SETUP = "no_setup"  # Missing depreciation configuration
    SKIPPED = "skipped"  # Already calculated, not yet due, or cancelled
    FULLY_DEPRECIATED = "fully_depreciated"

    @property
    def is_failure(self) -> bool:
        return self in (AssetOutcomeStatus.FAILED, AssetOutcomeStatus.NO_SETUP)


# =============================================================================
# Run inputs and results
# =============================================================================


@dataclass(frozen=True)
class BatchRunConfig:
    """Parameters of one depreciation run."""

    business_unit_id: UUID
    calculation_date: date
    granularity: PeriodGranularity = PeriodGranularity.MONTHLY
    include_categories: tuple[UUID, ...] = ()
    exclude_categories: tuple[UUID, ...] = ()
    schedule_id: UUID | None = None


@dataclass(frozen=True)
class AssetOutcome:
    """What happened to one asset in a run."""

    asset_id: UUID
    item_code: str
    status: AssetOutcomeStatus
    category_id: UUID | None = None
    method: str | None = None
    depreciation_amount: Decimal = Decimal("0")
    book_value_before: Decimal | None = None
    book_value_after: Decimal | None = None
    period_start: date | None = None
    period_end: date | None = None
    is_fully_depreciated: bool = False
    error_code: str | None = None
    error_message: str | None = None
    depreciation_record_id: UUID | None = None


@dataclass(frozen=True)
class Subtotal:
    """Successful depreciation aggregated by category or method."""

    key: str
    label: str
    asset_count: int
    depreciation_amount: Decimal


@dataclass(frozen=True)
class ExecutionResult:
    """Run-level summary returned by every run, dry or real."""

    execution_id: UUID | None
    status: ExecutionStatus
    calculation_date: date
    granularity: PeriodGranularity
    dry_run: bool
    total_assets_processed: int = 0
    successful_calculations: int = 0
    failed_calculations: int = 0
    skipped_calculations: int = 0
    fully_depreciated_assets: int = 0
    assets_without_setup: int = 0
    total_depreciation_amount: Decimal = Decimal("0")
    details: tuple[AssetOutcome, ...] = field(default_factory=tuple)
    by_category: tuple[Subtotal, ...] = field(default_factory=tuple)
    by_method: tuple[Subtotal, ...] = field(default_factory=tuple)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    error_message: str | None = None

    @property
    def error_count(self) -> int:
        return self.failed_calculations

    @property
    def errors(self) -> tuple[AssetOutcome, ...]:
        return tuple(d for d in self.details if d.status.is_failure)


# =============================================================================
# Persisted records
# =============================================================================


@dataclass(frozen=True)
class DepreciationExecution:
    """One persisted batch run."""

    execution_id: UUID
    business_unit_id: UUID
    calculation_date: date
    granularity: PeriodGranularity
    status: ExecutionStatus
    include_categories: tuple[UUID, ...] = ()
    exclude_categories: tuple[UUID, ...] = ()
    total_assets_processed: int = 0
    successful_calculations: int = 0
    failed_calculations: int = 0
    skipped_calculations: int = 0
    total_depreciation_amount: Decimal = Decimal("0")
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    error_message: str | None = None
    schedule_id: UUID | None = None
    triggered_by_id: UUID | None = None
    summary: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DepreciationSchedule:
    """A recurring run configuration.

    The next execution date is derived, never stored; see
    ``asset_batch.domain.schedule.next_execution_date``.
    """

    schedule_id: UUID
    business_unit_id: UUID
    name: str
    cadence: ScheduleCadence
    execution_day: int = 30
    is_active: bool = True
    description: str | None = None
    include_categories: tuple[UUID, ...] = ()
    exclude_categories: tuple[UUID, ...] = ()
    created_by: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ScheduleConfig:
    """Operator input for creating (no ``schedule_id``) or updating a schedule."""

    business_unit_id: UUID
    name: str
    cadence: ScheduleCadence
    execution_day: int = 30
    is_active: bool = True
    description: str | None = None
    include_categories: tuple[UUID, ...] = ()
    exclude_categories: tuple[UUID, ...] = ()
    schedule_id: UUID | None = None


@dataclass(frozen=True)
class ExecutionFilters:
    business_unit_id: UUID
    status: ExecutionStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    schedule_id: UUID | None = None
    page: int = 1
    page_size: int = 20


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size
