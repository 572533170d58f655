"""
Depreciation Configuration Schema.

Runtime settings for batch depreciation runs and the recurring scheduler.
Values come from defaults, a dict, or a YAML file.
"""

from dataclasses import dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml

from asset_kernel.logging_config import get_logger

logger = get_logger("modules.depreciation.config")

_GRANULARITIES = ("monthly", "quarterly", "annually")


@dataclass
class DepreciationConfig:
    """
    Configuration schema for the depreciation engine.

        config = DepreciationConfig(max_workers=8, page_size=50)
        config = DepreciationConfig.from_yaml(Path("depreciation.yaml"))
    """

    # Batch execution
    max_workers: int = 4
    default_granularity: str = "monthly"

    # Method library
    declining_balance_factor: Decimal = Decimal("2")

    # Schedules
    default_execution_day: int = 30
    scheduler_tick_seconds: int = 3600

    # Listing
    page_size: int = 20
    max_page_size: int = 100

    def __post_init__(self):
        self.declining_balance_factor = Decimal(str(self.declining_balance_factor))
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.default_granularity not in _GRANULARITIES:
            raise ValueError(
                f"default_granularity must be one of {_GRANULARITIES}, "
                f"got {self.default_granularity!r}"
            )
        if not 1 <= self.default_execution_day <= 31:
            raise ValueError(
                f"default_execution_day must be 1..31, got {self.default_execution_day}"
            )
        if self.declining_balance_factor <= 0:
            raise ValueError("declining_balance_factor must be positive")
        if not 1 <= self.page_size <= self.max_page_size:
            raise ValueError(
                f"page_size must be between 1 and {self.max_page_size}, got {self.page_size}"
            )

        logger.info(
            "depreciation_config_initialized",
            extra={
                "max_workers": self.max_workers,
                "default_granularity": self.default_granularity,
                "declining_balance_factor": str(self.declining_balance_factor),
                "default_execution_day": self.default_execution_day,
                "scheduler_tick_seconds": self.scheduler_tick_seconds,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults."""
        logger.info("depreciation_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary (e.g., a parsed YAML document).

        Raises:
            ValueError: On keys that are not configuration fields.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown depreciation config keys: {unknown}")
        logger.info(
            "depreciation_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Path) -> Self:
        """Load config from a YAML file.

        The file may hold the settings at top level or under a
        ``depreciation`` key.

        Raises:
            FileNotFoundError: if the file does not exist.
            yaml.YAMLError: if the file contains invalid YAML.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if "depreciation" in data and isinstance(data["depreciation"], dict):
            data = data["depreciation"]
        return cls.from_dict(data)
