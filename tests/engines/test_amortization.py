"""
Tests for the forward amortization schedule generator.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from asset_engines.amortization import generate_schedule
from asset_engines.asset_state import AssetFinancials, PreDepreciationAnchor
from asset_engines.depreciation import DepreciationMethod


@pytest.fixture
def asset() -> AssetFinancials:
    return AssetFinancials(
        asset_id=uuid4(),
        purchase_price=Decimal("120000"),
        useful_life_months=24,
        method=DepreciationMethod.STRAIGHT_LINE,
        depreciation_start_date=date(2024, 1, 1),
    )


class TestGenerateSchedule:

    def test_straight_line_table(self, asset):
        entries = generate_schedule(asset=asset, as_of=date(2024, 1, 1))

        assert len(entries) == 24
        assert all(e.depreciation_amount == Decimal("5000.00") for e in entries)
        assert entries[0].period == 1
        assert entries[0].period_date == date(2024, 1, 1)
        assert entries[-1].period_date == date(2025, 12, 1)
        assert entries[-1].accumulated_depreciation == Decimal("120000.00")
        assert entries[-1].book_value == Decimal("0")

    def test_is_completed_follows_as_of(self, asset):
        entries = generate_schedule(asset=asset, as_of=date(2024, 3, 15))
        assert [e.is_completed for e in entries[:4]] == [True, True, True, False]

    def test_ignores_ledger_progress(self, asset):
        progressed = replace(
            asset,
            accumulated_depreciation=Decimal("60000"),
            last_period_end=date(2024, 12, 31),
        )
        assert generate_schedule(asset=progressed, as_of=date(2024, 1, 1)) == generate_schedule(
            asset=asset, as_of=date(2024, 1, 1),
        )

    def test_unconfigured_asset_has_no_schedule(self, asset):
        assert generate_schedule(asset=replace(asset, method=None), as_of=date(2024, 1, 1)) == ()

    def test_malformed_asset_has_no_schedule(self, asset):
        broken = replace(asset, useful_life_months=0)
        assert generate_schedule(asset=broken, as_of=date(2024, 1, 1)) == ()

    def test_declining_balance_is_front_loaded(self, asset):
        entries = generate_schedule(
            asset=replace(asset, method=DepreciationMethod.DECLINING_BALANCE),
            as_of=date(2024, 1, 1),
        )
        assert entries[0].depreciation_amount > entries[-2].depreciation_amount
        assert entries[-1].book_value == Decimal("0")

    def test_units_of_production_projects_even_usage(self, asset):
        entries = generate_schedule(
            asset=replace(
                asset,
                purchase_price=Decimal("12000"),
                useful_life_months=12,
                method=DepreciationMethod.UNITS_OF_PRODUCTION,
                total_expected_units=Decimal("1200"),
            ),
            as_of=date(2024, 1, 1),
        )
        assert len(entries) == 12
        assert all(e.depreciation_amount == Decimal("1000.00") for e in entries)

    def test_migrated_asset_covers_remaining_life(self):
        migrated = AssetFinancials(
            asset_id=uuid4(),
            purchase_price=None,
            useful_life_months=None,
            method=DepreciationMethod.STRAIGHT_LINE,
            depreciation_start_date=None,
            anchor=PreDepreciationAnchor(
                original_purchase_price=Decimal("100000"),
                original_useful_life_months=60,
                prior_depreciation_amount=Decimal("16666.67"),
                prior_depreciation_months=12,
                system_entry_date=date(2023, 12, 31),
                system_entry_book_value=Decimal("83333.33"),
            ),
        )
        entries = generate_schedule(asset=migrated, as_of=date(2024, 1, 1))

        assert len(entries) == 48
        assert entries[0].period_date == date(2024, 1, 31)
        assert entries[0].depreciation_amount == Decimal("1666.67")
        assert entries[-1].accumulated_depreciation == Decimal("83333.33")
        assert entries[-1].book_value == Decimal("0")
