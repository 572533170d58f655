"""
Module: asset_engines
Responsibility:
    Package entrypoint re-exporting the pure depreciation engines.  This is
    the canonical import surface for ``asset_modules`` and ``asset_batch``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import asset_kernel (exceptions, logging) and sibling engines.
    MUST NOT import asset_modules or asset_batch.

Invariants enforced:
    - Purity: engines never read the clock; calculation and "as of" dates
      are explicit parameters.
    - Decimal-only arithmetic for every amount.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from asset_engines import plan_next_period, generate_schedule
"""

from asset_engines.amortization import ScheduleEntry, generate_schedule
from asset_engines.asset_state import (
    AssetFinancials,
    EligibilityResult,
    IneligibilityReason,
    PeriodComputation,
    PreDepreciationAnchor,
    add_months,
    check_eligibility,
    current_book_value,
    ledger_reconciles,
    months_between,
    period_bounds,
    periods_elapsed,
    plan_next_period,
    resolve_basis,
    run_span,
)
from asset_engines.depreciation import (
    DepreciationBasis,
    DepreciationMethod,
    UsageProvider,
    declining_balance_amount,
    period_amount,
    quantize_money,
    straight_line_amount,
    sum_of_years_digits_amount,
    units_of_production_amount,
    validate_basis,
)
from asset_engines.portfolio import PortfolioBucket, PortfolioSummary, summarize_portfolio

__all__ = [
    "AssetFinancials",
    "DepreciationBasis",
    "DepreciationMethod",
    "EligibilityResult",
    "IneligibilityReason",
    "PeriodComputation",
    "PortfolioBucket",
    "PortfolioSummary",
    "PreDepreciationAnchor",
    "ScheduleEntry",
    "UsageProvider",
    "add_months",
    "check_eligibility",
    "current_book_value",
    "declining_balance_amount",
    "generate_schedule",
    "ledger_reconciles",
    "months_between",
    "period_amount",
    "period_bounds",
    "periods_elapsed",
    "plan_next_period",
    "quantize_money",
    "resolve_basis",
    "run_span",
    "straight_line_amount",
    "sum_of_years_digits_amount",
    "summarize_portfolio",
    "units_of_production_amount",
    "validate_basis",
]
