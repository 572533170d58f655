"""Tests for DepreciationConfig."""

from decimal import Decimal

import pytest
import yaml

from asset_modules.depreciation.config import DepreciationConfig


class TestDefaults:

    def test_defaults(self):
        config = DepreciationConfig.with_defaults()

        assert config.max_workers == 4
        assert config.default_granularity == "monthly"
        assert config.declining_balance_factor == Decimal("2")
        assert config.default_execution_day == 30
        assert config.page_size == 20
        assert config.max_page_size == 100

    def test_factor_coerced_to_decimal(self):
        config = DepreciationConfig(declining_balance_factor=1.5)
        assert config.declining_balance_factor == Decimal("1.5")


class TestValidation:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_workers": 0},
            {"default_granularity": "weekly"},
            {"default_execution_day": 0},
            {"default_execution_day": 32},
            {"declining_balance_factor": 0},
            {"page_size": 0},
            {"page_size": 101},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            DepreciationConfig(**overrides)

    def test_page_size_bound_follows_max(self):
        assert DepreciationConfig(page_size=200, max_page_size=500).page_size == 200


class TestLoading:

    def test_from_dict(self):
        config = DepreciationConfig.from_dict({"max_workers": 8, "default_granularity": "annually"})
        assert config.max_workers == 8
        assert config.default_granularity == "annually"

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError, match="max_threads"):
            DepreciationConfig.from_dict({"max_threads": 8})

    def test_from_yaml_top_level(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"max_workers": 2, "declining_balance_factor": "1.5"}))

        config = DepreciationConfig.from_yaml(path)

        assert config.max_workers == 2
        assert config.declining_balance_factor == Decimal("1.5")

    def test_from_yaml_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("depreciation:\n  scheduler_tick_seconds: 60\n")
        assert DepreciationConfig.from_yaml(path).scheduler_tick_seconds == 60

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert DepreciationConfig.from_yaml(path) == DepreciationConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DepreciationConfig.from_yaml(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("max_workers: [1, 2\n")
        with pytest.raises(yaml.YAMLError):
            DepreciationConfig.from_yaml(path)
