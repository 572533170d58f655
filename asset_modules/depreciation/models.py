"""
Depreciation Domain Models.

The nouns of depreciation: asset categories, assets (financial facet plus
the optional legacy anchor), and ledger records.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from asset_engines.asset_state import AssetFinancials, PreDepreciationAnchor
from asset_engines.depreciation import DepreciationMethod
from asset_kernel.logging_config import get_logger

logger = get_logger("modules.depreciation.models")

__all__ = [
    "Asset",
    "AssetCategory",
    "DepreciationMethod",
    "DepreciationRecord",
    "PreDepreciationAnchor",
    "useful_life_display",
]


@dataclass(frozen=True)
class AssetCategory:
    """A category used to filter batch runs and group summaries."""
    id: UUID
    business_unit_id: UUID
    code: str
    name: str
    description: str | None = None


@dataclass(frozen=True)
class Asset:
    """
    A fixed asset with its depreciation settings and running state.

    ``useful_life_months`` is the only stored form of useful life; see
    ``useful_life_display`` for a years/months rendering.
    """
    id: UUID
    business_unit_id: UUID
    item_code: str
    description: str
    category_id: UUID | None = None
    is_active: bool = True
    purchase_price: Decimal | None = None
    salvage_value: Decimal = Decimal("0")
    useful_life_months: int | None = None
    depreciation_method: DepreciationMethod | None = None
    depreciation_start_date: date | None = None
    declining_balance_rate: Decimal | None = None
    total_expected_units: Decimal | None = None
    accumulated_depreciation: Decimal = Decimal("0")
    current_book_value: Decimal | None = None
    is_fully_depreciated: bool = False
    last_depreciation_date: date | None = None
    last_period_end: date | None = None
    next_depreciation_date: date | None = None
    anchor: PreDepreciationAnchor | None = None

    @property
    def is_pre_depreciated(self) -> bool:
        return self.anchor is not None

    @property
    def financials(self) -> AssetFinancials:
        return AssetFinancials(
            asset_id=self.id,
            purchase_price=self.purchase_price,
            useful_life_months=self.useful_life_months,
            method=self.depreciation_method,
            depreciation_start_date=self.depreciation_start_date,
            salvage_value=self.salvage_value,
            accumulated_depreciation=self.accumulated_depreciation,
            is_fully_depreciated=self.is_fully_depreciated,
            is_active=self.is_active,
            last_period_end=self.last_period_end,
            declining_balance_rate=self.declining_balance_rate,
            total_expected_units=self.total_expected_units,
            category_id=self.category_id,
            anchor=self.anchor,
        )


@dataclass(frozen=True)
class DepreciationRecord:
    """
    One append-only ledger entry.

    Regular records cover exactly one run period (``period_key`` is the
    ``YYYY-MM`` of its start).  Manual adjustments have no period key.
    """
    id: UUID
    asset_id: UUID
    period_start_date: date
    period_end_date: date
    depreciation_date: date
    method: DepreciationMethod | None
    book_value_start: Decimal
    depreciation_amount: Decimal
    book_value_end: Decimal
    accumulated_depreciation: Decimal
    triggered_by_id: UUID
    is_adjustment: bool = False
    adjustment_reason: str | None = None
    execution_id: UUID | None = None

    @property
    def period_key(self) -> str | None:
        if self.is_adjustment:
            return None
        return self.period_start_date.strftime("%Y-%m")


def useful_life_display(months: int | None) -> str:
    """Render a total-months useful life as years and months."""
    if months is None:
        return "-"
    years, rest = divmod(months, 12)
    if years and rest:
        return f"{years}y {rest}m"
    if years:
        return f"{years}y"
    return f"{rest}m"
