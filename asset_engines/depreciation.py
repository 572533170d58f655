"""
Depreciation Method Library -- per-period depreciation amounts.

Responsibility:
    Pure functions computing one monthly period of depreciation under the
    four supported methods, plus the ``DepreciationBasis`` value object
    that carries an asset's resolved financial parameters.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumed by
    ``asset_engines.asset_state`` (batch planning) and
    ``asset_engines.amortization`` (schedule preview).

Invariants enforced:
    - No period amount is negative.
    - Book value never drops below salvage value: every amount is clamped
      to ``book_value_start - salvage_value``.
    - The final period of the useful life absorbs the rounding remainder,
      so time-based methods sum to ``cost - salvage`` exactly.
    - Once book value reaches salvage, every method returns zero.
    - Amounts are quantized to 0.01 with ROUND_HALF_UP.

Failure modes:
    - InvalidDepreciationInputError for negative price or salvage, salvage
      above price, non-positive useful life, or non-positive lifetime units.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Protocol
from uuid import UUID

from asset_kernel.exceptions import InvalidDepreciationInputError

CENT = Decimal("0.01")
ZERO = Decimal("0")
DEFAULT_DECLINING_FACTOR = Decimal("2")


class DepreciationMethod(str, Enum):
    """Supported depreciation methods. An unset method is ``None``."""

    STRAIGHT_LINE = "straight_line"
    DECLINING_BALANCE = "declining_balance"
    UNITS_OF_PRODUCTION = "units_of_production"
    SUM_OF_YEARS_DIGITS = "sum_of_years_digits"

    @property
    def is_time_based(self) -> bool:
        return self is not DepreciationMethod.UNITS_OF_PRODUCTION


class UsageProvider(Protocol):
    """Source of actual usage units for units-of-production assets."""

    def units_for_period(
        self,
        asset_id: UUID,
        period_start: date,
        period_end: date,
    ) -> Decimal | None:
        """Units consumed in the period, or None when no reading exists."""
        ...


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class DepreciationBasis:
    """Resolved financial parameters for one asset.

    For assets migrated with prior depreciation, ``depreciable_cost`` and
    ``life_months`` are the ORIGINAL price and life, ``first_period_index``
    is the number of months already depreciated in the legacy system, and
    ``starting_book_value`` is the book value at system entry.
    """

    method: DepreciationMethod
    depreciable_cost: Decimal
    salvage_value: Decimal
    life_months: int
    starting_book_value: Decimal
    first_period_start: date
    first_period_index: int = 0
    annual_rate: Decimal | None = None
    total_expected_units: Decimal | None = None

    @property
    def remaining_months(self) -> int:
        return self.life_months - self.first_period_index


def _require_valid(
    cost: Decimal,
    salvage_value: Decimal,
    life_months: int | None = None,
) -> None:
    if cost < ZERO:
        raise InvalidDepreciationInputError(
            f"purchase price {cost} is negative", field_name="purchase_price",
        )
    if salvage_value < ZERO:
        raise InvalidDepreciationInputError(
            f"salvage value {salvage_value} is negative", field_name="salvage_value",
        )
    if salvage_value > cost:
        raise InvalidDepreciationInputError(
            f"salvage value {salvage_value} exceeds purchase price {cost}",
            field_name="salvage_value",
        )
    if life_months is not None and life_months <= 0:
        raise InvalidDepreciationInputError(
            f"useful life must be positive, got {life_months} months",
            field_name="useful_life_months",
        )


def validate_basis(basis: DepreciationBasis) -> None:
    """Reject a basis the method library cannot depreciate.

    Raises:
        InvalidDepreciationInputError: With a reason naming the bad input.
    """
    _require_valid(basis.depreciable_cost, basis.salvage_value, basis.life_months)
    if basis.first_period_index < 0:
        raise InvalidDepreciationInputError(
            f"prior depreciation months {basis.first_period_index} is negative",
            field_name="prior_depreciation_months",
        )
    if basis.first_period_index > basis.life_months:
        raise InvalidDepreciationInputError(
            f"prior depreciation months {basis.first_period_index} exceed "
            f"useful life of {basis.life_months} months",
            field_name="prior_depreciation_months",
        )
    if basis.starting_book_value < ZERO:
        raise InvalidDepreciationInputError(
            f"starting book value {basis.starting_book_value} is negative",
            field_name="system_entry_book_value",
        )
    if basis.annual_rate is not None and basis.annual_rate <= ZERO:
        raise InvalidDepreciationInputError(
            f"declining balance rate must be positive, got {basis.annual_rate}",
            field_name="declining_balance_rate",
        )
    if basis.method is DepreciationMethod.UNITS_OF_PRODUCTION:
        if basis.total_expected_units is None or basis.total_expected_units <= ZERO:
            raise InvalidDepreciationInputError(
                "units of production requires positive total expected units",
                field_name="total_expected_units",
            )


def _clamp(amount: Decimal, book_value_start: Decimal, salvage_value: Decimal) -> Decimal:
    headroom = book_value_start - salvage_value
    if headroom <= ZERO:
        return ZERO
    return max(ZERO, min(quantize_money(amount), headroom))


# =============================================================================
# Methods
# =============================================================================


def straight_line_amount(
    *,
    depreciable_cost: Decimal,
    salvage_value: Decimal,
    life_months: int,
    book_value_start: Decimal,
) -> Decimal:
    """Constant ``(cost - salvage) / life_months``, clamped at salvage."""
    _require_valid(depreciable_cost, salvage_value, life_months)
    monthly = (depreciable_cost - salvage_value) / Decimal(life_months)
    return _clamp(monthly, book_value_start, salvage_value)


def declining_balance_amount(
    *,
    book_value_start: Decimal,
    salvage_value: Decimal,
    life_months: int,
    period_index: int,
    annual_rate: Decimal | None = None,
    factor: Decimal = DEFAULT_DECLINING_FACTOR,
) -> Decimal:
    """``book_value_start * annual_rate / 12``, clamped at salvage.

    The default annual rate is ``factor * 12 / life_months`` (double
    declining for factor 2).  When straight-line over the remaining periods
    would depreciate more, that amount is used instead, so the asset still
    reaches salvage by the end of its life.
    """
    _require_valid(book_value_start, ZERO, life_months)
    if salvage_value < ZERO:
        raise InvalidDepreciationInputError(
            f"salvage value {salvage_value} is negative", field_name="salvage_value",
        )
    rate = annual_rate if annual_rate is not None else factor * 12 / Decimal(life_months)
    declining = book_value_start * rate / 12
    remaining_periods = max(life_months - period_index + 1, 1)
    catch_up = (book_value_start - salvage_value) / Decimal(remaining_periods)
    return _clamp(max(declining, catch_up), book_value_start, salvage_value)


def sum_of_years_digits_amount(
    *,
    depreciable_cost: Decimal,
    salvage_value: Decimal,
    life_months: int,
    period_index: int,
    book_value_start: Decimal,
) -> Decimal:
    """Front-loaded SYD allocation with months as the digits.

    Period ``k`` of ``n`` receives ``(n - k + 1) / (n * (n + 1) / 2)`` of
    the depreciable amount.
    """
    _require_valid(depreciable_cost, salvage_value, life_months)
    if period_index < 1 or period_index > life_months:
        return ZERO
    n = life_months
    weight = Decimal(2 * (n - period_index + 1)) / Decimal(n * (n + 1))
    return _clamp((depreciable_cost - salvage_value) * weight, book_value_start, salvage_value)


def units_of_production_amount(
    *,
    depreciable_cost: Decimal,
    salvage_value: Decimal,
    total_expected_units: Decimal,
    units_used: Decimal,
    book_value_start: Decimal,
) -> Decimal:
    """Depreciation proportional to ``units_used / total_expected_units``."""
    _require_valid(depreciable_cost, salvage_value)
    if total_expected_units <= ZERO:
        raise InvalidDepreciationInputError(
            "units of production requires positive total expected units",
            field_name="total_expected_units",
        )
    if units_used < ZERO:
        raise InvalidDepreciationInputError(
            f"usage units {units_used} are negative", field_name="units_used",
        )
    amount = (depreciable_cost - salvage_value) * units_used / total_expected_units
    return _clamp(amount, book_value_start, salvage_value)


def period_amount(
    basis: DepreciationBasis,
    *,
    period_index: int,
    book_value_start: Decimal,
    units_used: Decimal | None = None,
    declining_factor: Decimal = DEFAULT_DECLINING_FACTOR,
) -> Decimal:
    """Depreciation for period ``period_index`` (1-based over the full life).

    Time-based methods true up to salvage in the last period of the life.
    """
    if book_value_start <= basis.salvage_value:
        return ZERO

    if basis.method.is_time_based and period_index >= basis.life_months:
        return quantize_money(book_value_start - basis.salvage_value)

    match basis.method:
        case DepreciationMethod.STRAIGHT_LINE:
            return straight_line_amount(
                depreciable_cost=basis.depreciable_cost,
                salvage_value=basis.salvage_value,
                life_months=basis.life_months,
                book_value_start=book_value_start,
            )
        case DepreciationMethod.DECLINING_BALANCE:
            return declining_balance_amount(
                book_value_start=book_value_start,
                salvage_value=basis.salvage_value,
                life_months=basis.life_months,
                period_index=period_index,
                annual_rate=basis.annual_rate,
                factor=declining_factor,
            )
        case DepreciationMethod.SUM_OF_YEARS_DIGITS:
            return sum_of_years_digits_amount(
                depreciable_cost=basis.depreciable_cost,
                salvage_value=basis.salvage_value,
                life_months=basis.life_months,
                period_index=period_index,
                book_value_start=book_value_start,
            )
        case DepreciationMethod.UNITS_OF_PRODUCTION:
            if units_used is None or basis.total_expected_units is None:
                raise InvalidDepreciationInputError(
                    "units of production requires usage units for the period",
                    field_name="units_used",
                )
            return units_of_production_amount(
                depreciable_cost=basis.depreciable_cost,
                salvage_value=basis.salvage_value,
                total_expected_units=basis.total_expected_units,
                units_used=units_used,
                book_value_start=book_value_start,
            )
