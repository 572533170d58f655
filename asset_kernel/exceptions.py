"""
Typed Exception Hierarchy for the Asset Depreciation Engine.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from AssetKernelError:

    AssetKernelError (base)
    |
    +-- DepreciationConfigError
    |   +-- MissingDepreciationFieldError
    |   +-- MissingUsageUnitsError
    |
    +-- DepreciationComputationError
    |   +-- InvalidDepreciationInputError
    |
    +-- ConcurrencyError
    |   +-- AssetPeriodConflictError
    |
    +-- ExecutionError
    |   +-- ExecutionNotFoundError
    |   +-- InvalidExecutionTransitionError
    |   +-- ExecutionAbortedError
    |
    +-- ScheduleError
    |   +-- ScheduleNotFoundError
    |   +-- InvalidScheduleError
    |
    +-- AssetError
        +-- AssetNotFoundError
        +-- CategoryNotFoundError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-----------------------------------------
Configuration   | MISSING_DEPRECIATION_FIELD    | Asset lacks price/method/life/start date
                | MISSING_USAGE_UNITS           | Units-of-production with no usage reading
----------------|-------------------------------|-----------------------------------------
Computation     | INVALID_DEPRECIATION_INPUT    | Negative life, salvage > price, etc.
----------------|-------------------------------|-----------------------------------------
Concurrency     | ASSET_PERIOD_CONFLICT         | Compare-and-swap on last period lost
----------------|-------------------------------|-----------------------------------------
Execution       | EXECUTION_NOT_FOUND           | Execution ID doesn't exist
                | INVALID_EXECUTION_TRANSITION  | Leaving a terminal status, etc.
                | EXECUTION_ABORTED             | Fatal persistence failure mid-run
----------------|-------------------------------|-----------------------------------------
Schedule        | SCHEDULE_NOT_FOUND            | Schedule ID doesn't exist
                | INVALID_SCHEDULE              | Name, day or category filters invalid
----------------|-------------------------------|-----------------------------------------
Asset           | ASSET_NOT_FOUND               | Asset ID doesn't exist
                | CATEGORY_NOT_FOUND            | Category ID doesn't exist

===============================================================================
HANDLING PATTERNS
===============================================================================

Configuration and computation errors are per-asset: the batch executor
records them on the asset's outcome and continues with the next asset.

    try:
        computation = plan_next_period(asset, calculation_date, granularity)
    except DepreciationConfigError as e:
        outcome = no_setup(asset, e.code, str(e))

A lost compare-and-swap is not a failure.  The asset was already advanced
by an overlapping run, so it is reported as skipped:

    except AssetPeriodConflictError:
        outcome = skipped(asset, "already calculated")

ExecutionAbortedError wraps infrastructure failures that end the whole
run; per-asset records committed before the failure remain committed.
"""


class AssetKernelError(Exception):
    """
    Base exception for all asset depreciation errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "ASSET_KERNEL_ERROR"


# Configuration errors (per asset, never fatal to a batch)


class DepreciationConfigError(AssetKernelError):
    """Asset is not configured well enough to depreciate."""

    code: str = "DEPRECIATION_CONFIG_ERROR"


class MissingDepreciationFieldError(DepreciationConfigError):
    """A required depreciation field is not set on the asset."""

    code: str = "MISSING_DEPRECIATION_FIELD"

    def __init__(self, field_name: str, asset_id: str | None = None):
        self.field_name = field_name
        self.asset_id = asset_id
        subject = f"Asset {asset_id}" if asset_id else "Asset"
        super().__init__(f"{subject} is missing required field: {field_name}")


class MissingUsageUnitsError(DepreciationConfigError):
    """Units-of-production asset with no usage reading for the period."""

    code: str = "MISSING_USAGE_UNITS"

    def __init__(self, asset_id: str, period_start: str, period_end: str):
        self.asset_id = asset_id
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"No usage units recorded for asset {asset_id} "
            f"between {period_start} and {period_end}"
        )


# Computation errors


class DepreciationComputationError(AssetKernelError):
    """Base exception for depreciation arithmetic errors."""

    code: str = "DEPRECIATION_COMPUTATION_ERROR"


class InvalidDepreciationInputError(DepreciationComputationError):
    """Numeric input rejected by the method library."""

    code: str = "INVALID_DEPRECIATION_INPUT"

    def __init__(self, reason: str, field_name: str | None = None):
        self.reason = reason
        self.field_name = field_name
        super().__init__(f"Invalid depreciation input: {reason}")


# Concurrency


class ConcurrencyError(AssetKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class AssetPeriodConflictError(ConcurrencyError):
    """Another run already advanced the asset past the expected period."""

    code: str = "ASSET_PERIOD_CONFLICT"

    def __init__(self, asset_id: str, expected_period_end: str | None):
        self.asset_id = asset_id
        self.expected_period_end = expected_period_end
        super().__init__(
            f"Asset {asset_id} was already depreciated beyond period ending "
            f"{expected_period_end or '(never calculated)'}"
        )


# Execution errors


class ExecutionError(AssetKernelError):
    """Base exception for depreciation execution errors."""

    code: str = "EXECUTION_ERROR"


class ExecutionNotFoundError(ExecutionError):
    """Depreciation execution with given ID was not found."""

    code: str = "EXECUTION_NOT_FOUND"

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Depreciation execution not found: {execution_id}")


class InvalidExecutionTransitionError(ExecutionError):
    """Requested status change is not allowed by the execution lifecycle."""

    code: str = "INVALID_EXECUTION_TRANSITION"

    def __init__(self, execution_id: str, from_status: str, to_status: str):
        self.execution_id = execution_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Execution {execution_id} cannot move from {from_status} to {to_status}"
        )


class ExecutionAbortedError(ExecutionError):
    """Fatal infrastructure failure that ends a depreciation run."""

    code: str = "EXECUTION_ABORTED"

    def __init__(self, execution_id: str | None, cause: str):
        self.execution_id = execution_id
        self.cause = cause
        super().__init__(f"Depreciation execution aborted: {cause}")


# Schedule errors


class ScheduleError(AssetKernelError):
    """Base exception for recurring schedule errors."""

    code: str = "SCHEDULE_ERROR"


class ScheduleNotFoundError(ScheduleError):
    """Depreciation schedule with given ID was not found."""

    code: str = "SCHEDULE_NOT_FOUND"

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Depreciation schedule not found: {schedule_id}")


class InvalidScheduleError(ScheduleError):
    """Schedule configuration failed validation."""

    code: str = "INVALID_SCHEDULE"

    def __init__(self, reason: str, field_name: str | None = None):
        self.reason = reason
        self.field_name = field_name
        super().__init__(f"Invalid depreciation schedule: {reason}")


# Asset lookup errors


class AssetError(AssetKernelError):
    """Base exception for asset lookup errors."""

    code: str = "ASSET_ERROR"


class AssetNotFoundError(AssetError):
    """Asset with given ID was not found."""

    code: str = "ASSET_NOT_FOUND"

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"Asset not found: {asset_id}")


class CategoryNotFoundError(AssetError):
    """Asset category with given ID was not found."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Asset category not found: {category_id}")
