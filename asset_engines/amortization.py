"""
Amortization schedule generator -- read-only forward depreciation table.

Responsibility:
    Project an asset's full depreciation schedule, one entry per period
    from period 1 through its (remaining) useful life, for previews and
    display.

Architecture position:
    Engines -- pure calculation layer.  Reads an ``AssetFinancials``
    snapshot; never touches the ledger or the asset row.

Invariants enforced:
    - Deterministic: identical inputs yield identical tuples.
    - The running book value is simulated from the starting book value,
      independent of what the ledger contains.
    - ``is_completed`` is derived from the caller-supplied ``as_of`` date
      only (no clock reads here).

Failure modes:
    - None raised: an asset without enough configuration, or with
      malformed inputs, yields an empty tuple ("no schedule available").
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from asset_kernel.exceptions import (
    DepreciationComputationError,
    DepreciationConfigError,
)
from asset_kernel.logging_config import get_logger

from asset_engines.asset_state import AssetFinancials, add_months, resolve_basis
from asset_engines.depreciation import (
    DEFAULT_DECLINING_FACTOR,
    ZERO,
    DepreciationMethod,
    period_amount,
)
from asset_engines.tracer import traced_engine

logger = get_logger("engines.amortization")


@dataclass(frozen=True)
class ScheduleEntry:
    period: int
    period_date: date
    depreciation_amount: Decimal
    accumulated_depreciation: Decimal
    book_value: Decimal
    is_completed: bool


@traced_engine("amortization", "1.0", fingerprint_fields=("asset", "as_of"))
def generate_schedule(
    *,
    asset: AssetFinancials,
    as_of: date,
    declining_factor: Decimal = DEFAULT_DECLINING_FACTOR,
) -> tuple[ScheduleEntry, ...]:
    """Forward amortization table for ``asset``.

    Period ``n`` is dated ``first period start + (n - 1) months``.  For
    migrated assets the table covers only the months remaining after the
    legacy depreciation, starting the month after system entry, and
    accumulated depreciation counts from system entry.  Units-of-production
    assets are projected with even usage across the life.
    """
    try:
        basis = resolve_basis(asset)
    except (DepreciationConfigError, DepreciationComputationError) as exc:
        logger.debug(
            "schedule_unavailable",
            extra={"asset_id": str(asset.asset_id), "reason": getattr(exc, "code", "")},
        )
        return ()

    even_units = None
    if basis.method is DepreciationMethod.UNITS_OF_PRODUCTION:
        assert basis.total_expected_units is not None
        even_units = basis.total_expected_units / Decimal(basis.life_months)

    entries: list[ScheduleEntry] = []
    book_value = basis.starting_book_value
    accumulated = ZERO

    for period in range(1, basis.remaining_months + 1):
        if book_value <= basis.salvage_value:
            break
        amount = period_amount(
            basis,
            period_index=basis.first_period_index + period,
            book_value_start=book_value,
            units_used=even_units,
            declining_factor=declining_factor,
        )
        accumulated += amount
        book_value -= amount
        period_date = add_months(basis.first_period_start, period - 1)
        entries.append(
            ScheduleEntry(
                period=period,
                period_date=period_date,
                depreciation_amount=amount,
                accumulated_depreciation=accumulated,
                book_value=book_value,
                is_completed=period_date <= as_of,
            )
        )

    return tuple(entries)
