"""
Asset Depreciation State -- eligibility, elapsed periods, and period planning.

Responsibility:
    Given an asset's persisted financial facet (and its pre-depreciation
    anchor when it was migrated from a legacy system) and a calculation
    date, decide whether the asset can be depreciated, how many monthly
    periods are due, which book value the next period starts from, and
    what the next run period produces.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumed by the batch
    executor (``plan_next_period``), the schedule generator
    (``resolve_basis``) and the portfolio summary.

Invariants enforced:
    - Book value = starting book value - accumulated depreciation, never
      below salvage value.
    - A period is due once its start date is on or before the calculation
      date; periods already covered by ``last_period_end`` are never
      planned again.
    - Anchored assets: remaining life = original life - prior months,
      starting book value = system-entry book value, period zero = the
      system-entry date.

Failure modes:
    - MissingDepreciationFieldError from ``resolve_basis`` when a required
      field is unset.
    - InvalidDepreciationInputError when the resolved basis is malformed.
    - MissingUsageUnitsError when a units-of-production period has no
      usage reading.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from asset_kernel.exceptions import (
    MissingDepreciationFieldError,
    MissingUsageUnitsError,
)

from asset_engines.depreciation import (
    DEFAULT_DECLINING_FACTOR,
    ZERO,
    DepreciationBasis,
    DepreciationMethod,
    period_amount,
    quantize_money,
    validate_basis,
)
from asset_engines.tracer import traced_engine


# =============================================================================
# Calendar helpers
# =============================================================================


def add_months(day: date, months: int) -> date:
    """Shift ``day`` by whole months, clamping to the target month's last day."""
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def months_between(start: date, end: date) -> int:
    """Largest ``m`` with ``add_months(start, m) <= end`` (0 if end < start)."""
    if end < start:
        return 0
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if add_months(start, months) > end:
        months -= 1
    return months


# =============================================================================
# Value objects
# =============================================================================


@dataclass(frozen=True)
class PreDepreciationAnchor:
    """Legacy-system depreciation history carried by a migrated asset."""

    original_purchase_price: Decimal
    original_useful_life_months: int
    prior_depreciation_amount: Decimal
    prior_depreciation_months: int
    system_entry_date: date
    system_entry_book_value: Decimal
    original_purchase_date: date | None = None


@dataclass(frozen=True)
class AssetFinancials:
    """Financial facet of an asset as read from the asset repository."""

    asset_id: UUID
    purchase_price: Decimal | None
    useful_life_months: int | None
    method: DepreciationMethod | None
    depreciation_start_date: date | None
    salvage_value: Decimal = ZERO
    accumulated_depreciation: Decimal = ZERO
    is_fully_depreciated: bool = False
    is_active: bool = True
    last_period_end: date | None = None
    declining_balance_rate: Decimal | None = None
    total_expected_units: Decimal | None = None
    category_id: UUID | None = None
    anchor: PreDepreciationAnchor | None = None


class IneligibilityReason(str, Enum):
    """Why an asset cannot be depreciated for a calculation date."""

    MISSING_PRICE = "missing_price"
    MISSING_METHOD = "missing_method"
    MISSING_USEFUL_LIFE = "missing_useful_life"
    MISSING_START_DATE = "missing_start_date"
    INACTIVE = "inactive"
    FULLY_DEPRECIATED = "fully_depreciated"
    START_DATE_IN_FUTURE = "start_date_in_future"
    NO_ELAPSED_PERIODS = "no_elapsed_periods"

    @property
    def is_configuration_error(self) -> bool:
        return self in _MISSING_FIELDS

    @property
    def missing_field(self) -> str | None:
        return _MISSING_FIELDS.get(self)


_MISSING_FIELDS: dict[IneligibilityReason, str] = {
    IneligibilityReason.MISSING_PRICE: "purchase_price",
    IneligibilityReason.MISSING_METHOD: "depreciation_method",
    IneligibilityReason.MISSING_USEFUL_LIFE: "useful_life_months",
    IneligibilityReason.MISSING_START_DATE: "depreciation_start_date",
}


@dataclass(frozen=True)
class EligibilityResult:
    reason: IneligibilityReason | None = None
    periods_due: int = 0

    @property
    def eligible(self) -> bool:
        return self.reason is None


@dataclass(frozen=True)
class PeriodComputation:
    """Outcome of depreciating one run period for one asset.

    ``expected_last_period_end`` is the asset's ``last_period_end`` the
    computation was planned from; the commit only succeeds if the row still
    carries that value.
    """

    asset_id: UUID
    method: DepreciationMethod
    period_start: date
    period_end: date
    months_covered: int
    book_value_start: Decimal
    depreciation_amount: Decimal
    book_value_end: Decimal
    accumulated_depreciation: Decimal
    is_fully_depreciated: bool
    next_depreciation_date: date | None
    expected_last_period_end: date | None


# =============================================================================
# Basis resolution
# =============================================================================


def _missing_reason(asset: AssetFinancials) -> IneligibilityReason | None:
    anchor = asset.anchor
    if asset.purchase_price is None and anchor is None:
        return IneligibilityReason.MISSING_PRICE
    if asset.method is None:
        return IneligibilityReason.MISSING_METHOD
    if asset.useful_life_months is None and anchor is None:
        return IneligibilityReason.MISSING_USEFUL_LIFE
    if anchor is None and asset.depreciation_start_date is None:
        return IneligibilityReason.MISSING_START_DATE
    if anchor is not None and anchor.system_entry_date is None:
        return IneligibilityReason.MISSING_START_DATE
    return None


def resolve_basis(asset: AssetFinancials) -> DepreciationBasis:
    """Resolve the parameters the method library depreciates from.

    Raises:
        MissingDepreciationFieldError: A required field is unset.
        InvalidDepreciationInputError: The resolved basis is malformed.
    """
    reason = _missing_reason(asset)
    if reason is not None:
        raise MissingDepreciationFieldError(reason.missing_field, str(asset.asset_id))
    assert asset.method is not None

    anchor = asset.anchor
    if anchor is not None:
        basis = DepreciationBasis(
            method=asset.method,
            depreciable_cost=anchor.original_purchase_price,
            salvage_value=asset.salvage_value,
            life_months=anchor.original_useful_life_months,
            starting_book_value=anchor.system_entry_book_value,
            first_period_start=add_months(anchor.system_entry_date, 1),
            first_period_index=anchor.prior_depreciation_months,
            annual_rate=asset.declining_balance_rate,
            total_expected_units=asset.total_expected_units,
        )
    else:
        assert asset.purchase_price is not None
        assert asset.useful_life_months is not None
        assert asset.depreciation_start_date is not None
        basis = DepreciationBasis(
            method=asset.method,
            depreciable_cost=asset.purchase_price,
            salvage_value=asset.salvage_value,
            life_months=asset.useful_life_months,
            starting_book_value=asset.purchase_price,
            first_period_start=asset.depreciation_start_date,
            annual_rate=asset.declining_balance_rate,
            total_expected_units=asset.total_expected_units,
        )

    validate_basis(basis)
    return basis


# =============================================================================
# State queries
# =============================================================================


def current_book_value(asset: AssetFinancials, basis: DepreciationBasis) -> Decimal:
    """Starting book value less accumulated depreciation, floored at salvage."""
    return max(
        basis.starting_book_value - asset.accumulated_depreciation,
        basis.salvage_value,
    )


def periods_calculated(asset: AssetFinancials, basis: DepreciationBasis) -> int:
    """Monthly periods already covered by the ledger."""
    if asset.last_period_end is None:
        return 0
    return months_between(
        basis.first_period_start, asset.last_period_end + timedelta(days=1),
    )


def periods_due(basis: DepreciationBasis, calculation_date: date) -> int:
    """Monthly periods whose start is on or before ``calculation_date``."""
    if calculation_date < basis.first_period_start:
        return 0
    due = months_between(basis.first_period_start, calculation_date) + 1
    return min(due, basis.remaining_months)


def periods_elapsed(asset: AssetFinancials, calculation_date: date) -> int:
    """Periods due at ``calculation_date`` that have not been calculated."""
    basis = resolve_basis(asset)
    return max(periods_due(basis, calculation_date) - periods_calculated(asset, basis), 0)


def run_span(basis: DepreciationBasis, done: int, calculation_date: date, months: int) -> int:
    """Monthly periods one run books: at most ``months``, and only periods
    already due at ``calculation_date`` (which never extend past the life).
    """
    pending = periods_due(basis, calculation_date) - done
    return max(min(months, pending), 1)


def period_bounds(basis: DepreciationBasis, index: int) -> tuple[date, date]:
    """Start and end date of post-entry period ``index`` (1-based)."""
    start = add_months(basis.first_period_start, index - 1)
    end = add_months(basis.first_period_start, index) - timedelta(days=1)
    return start, end


def check_eligibility(asset: AssetFinancials, calculation_date: date) -> EligibilityResult:
    """Classify an asset for ``calculation_date``.

    Configuration reasons are checked first so a misconfigured asset is
    always reported as such.  ``NO_ELAPSED_PERIODS`` is "nothing to do",
    not an error.

    Raises:
        InvalidDepreciationInputError: Fields are present but malformed.
    """
    missing = _missing_reason(asset)
    if missing is not None:
        return EligibilityResult(reason=missing)
    if not asset.is_active:
        return EligibilityResult(reason=IneligibilityReason.INACTIVE)

    basis = resolve_basis(asset)
    done = periods_calculated(asset, basis)
    if (
        asset.is_fully_depreciated
        or current_book_value(asset, basis) <= basis.salvage_value
        or done >= basis.remaining_months
    ):
        return EligibilityResult(reason=IneligibilityReason.FULLY_DEPRECIATED)

    if calculation_date < basis.first_period_start:
        return EligibilityResult(reason=IneligibilityReason.START_DATE_IN_FUTURE)

    pending = periods_due(basis, calculation_date) - done
    if pending <= 0:
        return EligibilityResult(reason=IneligibilityReason.NO_ELAPSED_PERIODS)
    return EligibilityResult(periods_due=pending)


# =============================================================================
# Period planning
# =============================================================================


@traced_engine("asset_state", "1.0", fingerprint_fields=("asset", "calculation_date", "months"))
def plan_next_period(
    *,
    asset: AssetFinancials,
    calculation_date: date,
    months: int = 1,
    units_used: Decimal | None = None,
    declining_factor: Decimal = DEFAULT_DECLINING_FACTOR,
) -> PeriodComputation:
    """Depreciate the next uncalculated run period of ``months`` months.

    The run period covers only months already due at ``calculation_date``
    and is capped at the asset's remaining life.  Time-based
    methods are computed month by month so declining-balance and
    sum-of-years-digits stay exact across quarterly and annual runs;
    units-of-production applies ``units_used`` once to the whole period.

    Raises:
        MissingDepreciationFieldError, InvalidDepreciationInputError,
        MissingUsageUnitsError.
    """
    basis = resolve_basis(asset)
    done = periods_calculated(asset, basis)
    span = run_span(basis, done, calculation_date, months)

    period_start, _ = period_bounds(basis, done + 1)
    _, period_end = period_bounds(basis, done + span)

    book_value_start = current_book_value(asset, basis)
    book_value = book_value_start

    if basis.method is DepreciationMethod.UNITS_OF_PRODUCTION:
        if units_used is None:
            raise MissingUsageUnitsError(
                str(asset.asset_id), period_start.isoformat(), period_end.isoformat(),
            )
        book_value -= period_amount(
            basis,
            period_index=basis.first_period_index + done + 1,
            book_value_start=book_value,
            units_used=units_used,
        )
    else:
        for offset in range(1, span + 1):
            book_value -= period_amount(
                basis,
                period_index=basis.first_period_index + done + offset,
                book_value_start=book_value,
                declining_factor=declining_factor,
            )

    amount = quantize_money(book_value_start - book_value)
    fully = book_value <= basis.salvage_value or (
        basis.method.is_time_based and done + span >= basis.remaining_months
    )

    return PeriodComputation(
        asset_id=asset.asset_id,
        method=basis.method,
        period_start=period_start,
        period_end=period_end,
        months_covered=span,
        book_value_start=book_value_start,
        depreciation_amount=amount,
        book_value_end=book_value,
        accumulated_depreciation=asset.accumulated_depreciation + amount,
        is_fully_depreciated=fully,
        next_depreciation_date=None if fully else add_months(calculation_date, months),
        expected_last_period_end=asset.last_period_end,
    )


def ledger_reconciles(amounts: Iterable[Decimal], accumulated_depreciation: Decimal) -> bool:
    """True when ledger amounts sum to the asset's accumulated depreciation."""
    return sum(amounts, ZERO) == accumulated_depreciation
