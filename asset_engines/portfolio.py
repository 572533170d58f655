"""
Portfolio depreciation summary.

Pure aggregation of asset financial facets into totals and breakdowns by
depreciation method and category, for reporting screens and the CLI.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from asset_kernel.exceptions import (
    DepreciationComputationError,
    DepreciationConfigError,
)

from asset_engines.asset_state import (
    AssetFinancials,
    current_book_value,
    periods_calculated,
    resolve_basis,
)
from asset_engines.depreciation import ZERO, quantize_money

UNCATEGORIZED = "Uncategorized"
NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class PortfolioBucket:
    key: str
    asset_count: int
    total_cost: Decimal
    accumulated_depreciation: Decimal
    book_value: Decimal


@dataclass(frozen=True)
class PortfolioSummary:
    total_assets: int
    configured_assets: int
    fully_depreciated_count: int
    total_cost: Decimal
    accumulated_depreciation: Decimal
    book_value: Decimal
    average_remaining_life_months: Decimal
    by_method: tuple[PortfolioBucket, ...] = ()
    by_category: tuple[PortfolioBucket, ...] = ()


class _Totals:
    def __init__(self) -> None:
        self.count = 0
        self.cost = ZERO
        self.accumulated = ZERO
        self.book_value = ZERO

    def add(self, cost: Decimal, accumulated: Decimal, book_value: Decimal) -> None:
        self.count += 1
        self.cost += cost
        self.accumulated += accumulated
        self.book_value += book_value

    def bucket(self, key: str) -> PortfolioBucket:
        return PortfolioBucket(key, self.count, self.cost, self.accumulated, self.book_value)


def summarize_portfolio(
    assets: Iterable[AssetFinancials],
    category_names: Mapping[UUID, str] | None = None,
) -> PortfolioSummary:
    """Aggregate a set of assets.

    Assets that cannot be depreciated (missing or malformed configuration)
    count towards ``total_assets`` and the "not_configured" method bucket,
    valued at purchase price with no depreciation.
    """
    names = category_names or {}
    overall = _Totals()
    by_method: dict[str, _Totals] = defaultdict(_Totals)
    by_category: dict[str, _Totals] = defaultdict(_Totals)
    configured = 0
    fully = 0
    remaining_life_total = 0

    for asset in assets:
        category = names.get(asset.category_id, UNCATEGORIZED) if asset.category_id else UNCATEGORIZED
        try:
            basis = resolve_basis(asset)
        except (DepreciationConfigError, DepreciationComputationError):
            price = asset.purchase_price or ZERO
            overall.add(price, ZERO, price)
            by_method[NOT_CONFIGURED].add(price, ZERO, price)
            by_category[category].add(price, ZERO, price)
            continue

        configured += 1
        book_value = current_book_value(asset, basis)
        # migrated assets report original cost and lifetime depreciation
        cost = basis.depreciable_cost
        accumulated = asset.accumulated_depreciation
        if asset.anchor is not None:
            accumulated += asset.anchor.prior_depreciation_amount
        is_fully = asset.is_fully_depreciated or book_value <= basis.salvage_value
        if is_fully:
            fully += 1
        else:
            remaining_life_total += max(
                basis.remaining_months - periods_calculated(asset, basis), 0,
            )

        overall.add(cost, accumulated, book_value)
        by_method[basis.method.value].add(cost, accumulated, book_value)
        by_category[category].add(cost, accumulated, book_value)

    active = configured - fully
    average_remaining = (
        quantize_money(Decimal(remaining_life_total) / Decimal(active)) if active else ZERO
    )

    return PortfolioSummary(
        total_assets=overall.count,
        configured_assets=configured,
        fully_depreciated_count=fully,
        total_cost=overall.cost,
        accumulated_depreciation=overall.accumulated,
        book_value=overall.book_value,
        average_remaining_life_months=average_remaining,
        by_method=tuple(t.bucket(k) for k, t in sorted(by_method.items())),
        by_category=tuple(t.bucket(k) for k, t in sorted(by_category.items())),
    )
