"""ORM models for depreciation runs and recurring schedules."""

from asset_batch.models.execution import (
    DepreciationExecutionAssetModel,
    DepreciationExecutionModel,
    DepreciationScheduleModel,
)

__all__ = [
    "DepreciationExecutionAssetModel",
    "DepreciationExecutionModel",
    "DepreciationScheduleModel",
]
