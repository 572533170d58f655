"""
Depreciation repositories (``asset_modules.depreciation.repositories``).

Responsibility
--------------
SQLAlchemy-backed boundary contracts for assets, the depreciation ledger
and the category directory.  Each repository wraps a caller-owned
``Session``: repositories flush, callers commit.

Invariants enforced
-------------------
* Asset state writes are compare-and-swap UPDATEs keyed by asset id and
  guarded by the ``last_period_end`` and ``accumulated_depreciation`` the
  caller planned from.  A lost race raises ``AssetPeriodConflictError``
  and writes nothing.
* The ledger is append-only: no update or delete method exists.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from asset_engines.asset_state import PeriodComputation
from asset_kernel.exceptions import (
    AssetNotFoundError,
    AssetPeriodConflictError,
    CategoryNotFoundError,
)
from asset_kernel.logging_config import get_logger

from asset_modules.depreciation.models import Asset, AssetCategory, DepreciationRecord
from asset_modules.depreciation.orm import (
    AssetCategoryModel,
    AssetModel,
    DepreciationRecordModel,
)

logger = get_logger("modules.depreciation.repositories")


def _period_guard(expected_last_period_end: date | None):
    if expected_last_period_end is None:
        return AssetModel.last_period_end.is_(None)
    return AssetModel.last_period_end == expected_last_period_end


class AssetRepository:
    """Reads asset facets and applies per-asset compare-and-swap writes."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, asset: Asset, actor_id: UUID) -> Asset:
        model = AssetModel.from_dto(asset, created_by_id=actor_id)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def get(self, asset_id: UUID) -> Asset:
        model = self._session.get(AssetModel, asset_id, populate_existing=True)
        if model is None:
            raise AssetNotFoundError(str(asset_id))
        return model.to_dto()

    def list_candidates(
        self,
        business_unit_id: UUID,
        include_categories: Sequence[UUID] = (),
        exclude_categories: Sequence[UUID] = (),
    ) -> list[Asset]:
        """Active, not fully depreciated assets of a business unit.

        Assets with no method or price ARE returned; the executor reports
        them as configuration errors rather than silently dropping them.
        """
        stmt = select(AssetModel).where(
            AssetModel.business_unit_id == business_unit_id,
            AssetModel.is_active.is_(True),
            AssetModel.is_fully_depreciated.is_(False),
        )
        if include_categories:
            stmt = stmt.where(AssetModel.category_id.in_(list(include_categories)))
        if exclude_categories:
            stmt = stmt.where(
                or_(
                    AssetModel.category_id.is_(None),
                    AssetModel.category_id.not_in(list(exclude_categories)),
                )
            )
        stmt = stmt.order_by(AssetModel.item_code)
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def list_for_business_unit(self, business_unit_id: UUID) -> list[Asset]:
        stmt = (
            select(AssetModel)
            .where(AssetModel.business_unit_id == business_unit_id)
            .order_by(AssetModel.item_code)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def apply_period(
        self,
        computation: PeriodComputation,
        calculation_date: date,
        actor_id: UUID,
    ) -> None:
        """Advance the asset by one computed period.

        Must be the first statement of the asset's transaction so the
        row is claimed before the ledger insert.

        Raises:
            AssetPeriodConflictError: Another run already advanced the asset.
        """
        expected_accumulated = computation.accumulated_depreciation - computation.depreciation_amount
        stmt = (
            update(AssetModel)
            .where(
                AssetModel.id == computation.asset_id,
                _period_guard(computation.expected_last_period_end),
                AssetModel.accumulated_depreciation == expected_accumulated,
            )
            .values(
                accumulated_depreciation=computation.accumulated_depreciation,
                current_book_value=computation.book_value_end,
                is_fully_depreciated=computation.is_fully_depreciated,
                last_depreciation_date=calculation_date,
                last_period_end=computation.period_end,
                next_depreciation_date=computation.next_depreciation_date,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        if result.rowcount != 1:
            expected = computation.expected_last_period_end
            raise AssetPeriodConflictError(
                str(computation.asset_id), expected.isoformat() if expected else None,
            )

    def apply_adjustment(
        self,
        asset: Asset,
        amount: Decimal,
        new_book_value: Decimal,
        is_fully_depreciated: bool,
        adjustment_date: date,
        actor_id: UUID,
    ) -> None:
        """Add a manual adjustment to accumulated depreciation.

        ``last_period_end`` is left as-is: an adjustment never consumes a
        period.

        Raises:
            AssetPeriodConflictError: The asset changed since it was read.
        """
        stmt = (
            update(AssetModel)
            .where(
                AssetModel.id == asset.id,
                _period_guard(asset.last_period_end),
                AssetModel.accumulated_depreciation == asset.accumulated_depreciation,
            )
            .values(
                accumulated_depreciation=asset.accumulated_depreciation + amount,
                current_book_value=new_book_value,
                is_fully_depreciated=is_fully_depreciated,
                last_depreciation_date=adjustment_date,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        if result.rowcount != 1:
            expected = asset.last_period_end
            raise AssetPeriodConflictError(
                str(asset.id), expected.isoformat() if expected else None,
            )


class LedgerRepository:
    """Append-only access to depreciation records."""

    def __init__(self, session: Session):
        self._session = session

    def append(self, record: DepreciationRecord) -> DepreciationRecord:
        """Insert a record.

        Raises:
            sqlalchemy.exc.IntegrityError: The asset already has a record
                for this period.
        """
        model = DepreciationRecordModel.from_dto(record)
        self._session.add(model)
        self._session.flush()
        return record

    def for_asset(self, asset_id: UUID) -> list[DepreciationRecord]:
        stmt = (
            select(DepreciationRecordModel)
            .where(DepreciationRecordModel.asset_id == asset_id)
            .order_by(
                DepreciationRecordModel.period_start_date,
                DepreciationRecordModel.is_adjustment,
                DepreciationRecordModel.created_at,
            )
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def for_execution(self, execution_id: UUID) -> list[DepreciationRecord]:
        stmt = (
            select(DepreciationRecordModel)
            .where(DepreciationRecordModel.execution_id == execution_id)
            .order_by(DepreciationRecordModel.period_start_date)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]


class CategoryDirectory:
    """Read-only category lookups for filter validation and display."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, category: AssetCategory, actor_id: UUID) -> AssetCategory:
        model = AssetCategoryModel.from_dto(category, created_by_id=actor_id)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def resolve(self, category_ids: Iterable[UUID]) -> dict[UUID, AssetCategory]:
        ids = list(set(category_ids))
        if not ids:
            return {}
        stmt = select(AssetCategoryModel).where(AssetCategoryModel.id.in_(ids))
        return {m.id: m.to_dto() for m in self._session.execute(stmt).scalars().all()}

    def validate(self, category_ids: Iterable[UUID]) -> None:
        """Raise CategoryNotFoundError for the first unknown id."""
        ids = list(category_ids)
        known = self.resolve(ids)
        for category_id in ids:
            if category_id not in known:
                raise CategoryNotFoundError(str(category_id))

    def names_for_business_unit(self, business_unit_id: UUID) -> dict[UUID, str]:
        stmt = select(AssetCategoryModel).where(
            AssetCategoryModel.business_unit_id == business_unit_id,
        )
        return {m.id: m.name for m in self._session.execute(stmt).scalars().all()}
