"""
Depreciation Module (``asset_modules.depreciation``).

Responsibility
--------------
Assets, categories and the append-only depreciation ledger, plus the
``DepreciationService`` facade over previews, batch runs, schedules,
adjustments and reporting.

Architecture position
---------------------
**Modules layer** -- frozen domain models (``models.py``), ORM
(``orm.py``), repositories, configuration and the service facade.
Calculations come from the pure engines in ``asset_engines``.

Invariants enforced
-------------------
* At most one ledger record per asset and period.
* Ledger amounts of an asset always sum to its accumulated depreciation.
"""

from asset_modules.depreciation.config import DepreciationConfig
from asset_modules.depreciation.models import (
    Asset,
    AssetCategory,
    DepreciationMethod,
    DepreciationRecord,
    PreDepreciationAnchor,
    useful_life_display,
)

__all__ = [
    "Asset",
    "AssetCategory",
    "DepreciationConfig",
    "DepreciationMethod",
    "DepreciationRecord",
    "PreDepreciationAnchor",
    "useful_life_display",
]
