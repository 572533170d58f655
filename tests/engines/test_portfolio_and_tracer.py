"""
Tests for the portfolio summary and the engine tracer.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from asset_engines.amortization import generate_schedule
from asset_engines.asset_state import AssetFinancials, PreDepreciationAnchor
from asset_engines.depreciation import DepreciationMethod
from asset_engines.portfolio import NOT_CONFIGURED, UNCATEGORIZED, summarize_portfolio
from asset_engines.tracer import compute_input_fingerprint


def _asset(**overrides) -> AssetFinancials:
    fields = dict(
        asset_id=uuid4(),
        purchase_price=Decimal("12000"),
        useful_life_months=12,
        method=DepreciationMethod.STRAIGHT_LINE,
        depreciation_start_date=date(2024, 1, 1),
    )
    fields.update(overrides)
    return AssetFinancials(**fields)


class TestSummarizePortfolio:

    def test_totals_and_breakdowns(self):
        vehicles = uuid4()
        assets = [
            _asset(accumulated_depreciation=Decimal("3000"), last_period_end=date(2024, 3, 31), category_id=vehicles),
            _asset(method=DepreciationMethod.DECLINING_BALANCE),
            _asset(accumulated_depreciation=Decimal("12000"), is_fully_depreciated=True),
            _asset(method=None, purchase_price=Decimal("500")),
        ]

        summary = summarize_portfolio(assets, {vehicles: "Vehicles"})

        assert summary.total_assets == 4
        assert summary.configured_assets == 3
        assert summary.fully_depreciated_count == 1
        assert summary.total_cost == Decimal("36500")
        assert summary.accumulated_depreciation == Decimal("15000")
        assert summary.book_value == Decimal("21500")
        # 9 and 12 remaining months over the two active assets
        assert summary.average_remaining_life_months == Decimal("10.50")

        methods = {b.key: b.asset_count for b in summary.by_method}
        assert methods == {"declining_balance": 1, NOT_CONFIGURED: 1, "straight_line": 2}
        categories = {b.key: b.asset_count for b in summary.by_category}
        assert categories == {"Vehicles": 1, UNCATEGORIZED: 3}

    def test_migrated_asset_reports_original_cost(self):
        migrated = _asset(
            purchase_price=Decimal("90000"),
            useful_life_months=None,
            depreciation_start_date=None,
            anchor=PreDepreciationAnchor(
                original_purchase_price=Decimal("100000"),
                original_useful_life_months=24,
                prior_depreciation_amount=Decimal("16666.67"),
                prior_depreciation_months=4,
                system_entry_date=date(2024, 4, 30),
                system_entry_book_value=Decimal("83333.33"),
            ),
        )

        summary = summarize_portfolio([migrated])

        assert summary.total_cost == Decimal("100000")
        assert summary.accumulated_depreciation == Decimal("16666.67")
        assert summary.book_value == Decimal("83333.33")
        assert summary.total_cost - summary.accumulated_depreciation == summary.book_value

    def test_empty_portfolio(self):
        summary = summarize_portfolio([])
        assert summary.total_assets == 0
        assert summary.average_remaining_life_months == Decimal("0")


class TestTracer:

    def test_fingerprint_is_deterministic(self):
        asset = _asset()
        first = compute_input_fingerprint(("asset", "as_of"), {"asset": asset, "as_of": date(2024, 1, 1)})
        second = compute_input_fingerprint(("asset", "as_of"), {"asset": asset, "as_of": date(2024, 1, 1)})
        other = compute_input_fingerprint(("asset", "as_of"), {"asset": asset, "as_of": date(2024, 2, 1)})
        assert first == second
        assert first != other
        assert len(first) == 16

    def test_engine_call_emits_trace(self, captured_logs):
        generate_schedule(asset=_asset(), as_of=date(2024, 1, 1))

        traces = [r for r in captured_logs() if r["message"] == "ASSET_ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "amortization"
        assert traces[0]["function"] == "generate_schedule"
        assert len(traces[0]["input_fingerprint"]) == 16
