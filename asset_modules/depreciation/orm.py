"""
Depreciation ORM Models (``asset_modules.depreciation.orm``).

Responsibility
--------------
SQLAlchemy persistence for asset categories, assets (financial facet and
pre-depreciation anchor) and the append-only depreciation ledger.  Maps the
frozen dataclasses in ``models.py`` to tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``asset_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``asset_kernel``.

Invariants enforced
-------------------
* ``uq_fa_depreciation_records_asset_period`` -- at most one regular
  record per (asset, period).  Adjustments carry a NULL period key and
  are exempt.
* ``AssetModel.last_period_end`` is the compare-and-swap token for
  per-asset commits.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from asset_kernel.db.base import RATE_NUMERIC, TrackedBase, UUIDString


# ---------------------------------------------------------------------------
# AssetCategoryModel
# ---------------------------------------------------------------------------

class AssetCategoryModel(TrackedBase):
    """
    ORM model for ``AssetCategory``.

    Table: ``fa_asset_categories``
    """

    __tablename__ = "fa_asset_categories"

    business_unit_id: Mapped[UUID] = mapped_column(UUIDString())
    code: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    assets: Mapped[list["AssetModel"]] = relationship(back_populates="category")

    __table_args__ = (
        UniqueConstraint("business_unit_id", "code", name="uq_fa_asset_categories_code"),
    )

    def to_dto(self):
        from asset_modules.depreciation.models import AssetCategory
        return AssetCategory(
            id=self.id,
            business_unit_id=self.business_unit_id,
            code=self.code,
            name=self.name,
            description=self.description,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "AssetCategoryModel":
        return cls(
            id=dto.id,
            business_unit_id=dto.business_unit_id,
            code=dto.code,
            name=dto.name,
            description=dto.description,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<AssetCategoryModel(id={self.id!r}, code={self.code!r})>"


# ---------------------------------------------------------------------------
# AssetModel
# ---------------------------------------------------------------------------

class AssetModel(TrackedBase):
    """
    ORM model for ``Asset``.

    Table: ``fa_assets``
    """

    __tablename__ = "fa_assets"

    business_unit_id: Mapped[UUID] = mapped_column(UUIDString())
    item_code: Mapped[str] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(String(500))
    category_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("fa_asset_categories.id"), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Depreciation settings
    purchase_price: Mapped[Decimal | None]
    salvage_value: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    useful_life_months: Mapped[int | None]
    depreciation_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    depreciation_start_date: Mapped[date | None]
    declining_balance_rate: Mapped[Decimal | None] = mapped_column(RATE_NUMERIC, nullable=True)
    total_expected_units: Mapped[Decimal | None] = mapped_column(RATE_NUMERIC, nullable=True)

    # Running state
    accumulated_depreciation: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    current_book_value: Mapped[Decimal | None]
    is_fully_depreciated: Mapped[bool] = mapped_column(Boolean, default=False)
    last_depreciation_date: Mapped[date | None]
    last_period_end: Mapped[date | None]
    next_depreciation_date: Mapped[date | None]

    # Pre-depreciation anchor (assets migrated from a legacy system)
    is_pre_depreciated: Mapped[bool] = mapped_column(Boolean, default=False)
    original_purchase_date: Mapped[date | None]
    original_purchase_price: Mapped[Decimal | None]
    original_useful_life_months: Mapped[int | None]
    prior_depreciation_amount: Mapped[Decimal | None]
    prior_depreciation_months: Mapped[int | None]
    system_entry_date: Mapped[date | None]
    system_entry_book_value: Mapped[Decimal | None]

    category: Mapped["AssetCategoryModel"] = relationship(back_populates="assets")
    records: Mapped[list["DepreciationRecordModel"]] = relationship(
        back_populates="asset", order_by="DepreciationRecordModel.period_start_date",
    )

    __table_args__ = (
        UniqueConstraint("business_unit_id", "item_code", name="uq_fa_assets_item_code"),
        Index("idx_fa_assets_selection", "business_unit_id", "is_active", "is_fully_depreciated"),
        Index("idx_fa_assets_category", "category_id"),
    )

    def _anchor(self):
        from asset_modules.depreciation.models import PreDepreciationAnchor
        if not self.is_pre_depreciated:
            return None
        return PreDepreciationAnchor(
            original_purchase_price=self.original_purchase_price or Decimal("0"),
            original_useful_life_months=self.original_useful_life_months or 0,
            prior_depreciation_amount=self.prior_depreciation_amount or Decimal("0"),
            prior_depreciation_months=self.prior_depreciation_months or 0,
            system_entry_date=self.system_entry_date,
            system_entry_book_value=self.system_entry_book_value or Decimal("0"),
            original_purchase_date=self.original_purchase_date,
        )

    def to_dto(self):
        from asset_modules.depreciation.models import Asset, DepreciationMethod
        return Asset(
            id=self.id,
            business_unit_id=self.business_unit_id,
            item_code=self.item_code,
            description=self.description,
            category_id=self.category_id,
            is_active=self.is_active,
            purchase_price=self.purchase_price,
            salvage_value=self.salvage_value,
            useful_life_months=self.useful_life_months,
            depreciation_method=(
                DepreciationMethod(self.depreciation_method)
                if self.depreciation_method else None
            ),
            depreciation_start_date=self.depreciation_start_date,
            declining_balance_rate=self.declining_balance_rate,
            total_expected_units=self.total_expected_units,
            accumulated_depreciation=self.accumulated_depreciation,
            current_book_value=self.current_book_value,
            is_fully_depreciated=self.is_fully_depreciated,
            last_depreciation_date=self.last_depreciation_date,
            last_period_end=self.last_period_end,
            next_depreciation_date=self.next_depreciation_date,
            anchor=self._anchor(),
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "AssetModel":
        anchor = dto.anchor
        book_value = dto.current_book_value
        if book_value is None:
            start = anchor.system_entry_book_value if anchor else dto.purchase_price
            book_value = start - dto.accumulated_depreciation if start is not None else None
        return cls(
            id=dto.id,
            business_unit_id=dto.business_unit_id,
            item_code=dto.item_code,
            description=dto.description,
            category_id=dto.category_id,
            is_active=dto.is_active,
            purchase_price=dto.purchase_price,
            salvage_value=dto.salvage_value,
            useful_life_months=dto.useful_life_months,
            depreciation_method=(
                dto.depreciation_method.value if dto.depreciation_method else None
            ),
            depreciation_start_date=dto.depreciation_start_date,
            declining_balance_rate=dto.declining_balance_rate,
            total_expected_units=dto.total_expected_units,
            accumulated_depreciation=dto.accumulated_depreciation,
            current_book_value=book_value,
            is_fully_depreciated=dto.is_fully_depreciated,
            last_depreciation_date=dto.last_depreciation_date,
            last_period_end=dto.last_period_end,
            next_depreciation_date=dto.next_depreciation_date,
            is_pre_depreciated=anchor is not None,
            original_purchase_date=anchor.original_purchase_date if anchor else None,
            original_purchase_price=anchor.original_purchase_price if anchor else None,
            original_useful_life_months=anchor.original_useful_life_months if anchor else None,
            prior_depreciation_amount=anchor.prior_depreciation_amount if anchor else None,
            prior_depreciation_months=anchor.prior_depreciation_months if anchor else None,
            system_entry_date=anchor.system_entry_date if anchor else None,
            system_entry_book_value=anchor.system_entry_book_value if anchor else None,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<AssetModel(id={self.id!r}, item_code={self.item_code!r}, "
            f"book_value={self.current_book_value!r})>"
        )


# ---------------------------------------------------------------------------
# DepreciationRecordModel
# ---------------------------------------------------------------------------

class DepreciationRecordModel(TrackedBase):
    """
    ORM model for ``DepreciationRecord`` -- append-only ledger.

    Table: ``fa_depreciation_records``
    """

    __tablename__ = "fa_depreciation_records"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("fa_assets.id"))
    execution_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    period_key: Mapped[str | None] = mapped_column(String(7), nullable=True)
    period_start_date: Mapped[date]
    period_end_date: Mapped[date]
    depreciation_date: Mapped[date]
    method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    book_value_start: Mapped[Decimal]
    depreciation_amount: Mapped[Decimal]
    book_value_end: Mapped[Decimal]
    accumulated_depreciation: Mapped[Decimal]
    is_adjustment: Mapped[bool] = mapped_column(Boolean, default=False)
    adjustment_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    triggered_by_id: Mapped[UUID] = mapped_column(UUIDString())

    asset: Mapped["AssetModel"] = relationship(back_populates="records")

    __table_args__ = (
        UniqueConstraint("asset_id", "period_key", name="uq_fa_depreciation_records_asset_period"),
        Index("idx_fa_depreciation_records_asset", "asset_id", "period_start_date"),
        Index("idx_fa_depreciation_records_execution", "execution_id"),
    )

    def to_dto(self):
        from asset_modules.depreciation.models import DepreciationMethod, DepreciationRecord
        return DepreciationRecord(
            id=self.id,
            asset_id=self.asset_id,
            period_start_date=self.period_start_date,
            period_end_date=self.period_end_date,
            depreciation_date=self.depreciation_date,
            method=DepreciationMethod(self.method) if self.method else None,
            book_value_start=self.book_value_start,
            depreciation_amount=self.depreciation_amount,
            book_value_end=self.book_value_end,
            accumulated_depreciation=self.accumulated_depreciation,
            triggered_by_id=self.triggered_by_id,
            is_adjustment=self.is_adjustment,
            adjustment_reason=self.adjustment_reason,
            execution_id=self.execution_id,
        )

    @classmethod
    def from_dto(cls, dto) -> "DepreciationRecordModel":
        return cls(
            id=dto.id,
            asset_id=dto.asset_id,
            execution_id=dto.execution_id,
            period_key=dto.period_key,
            period_start_date=dto.period_start_date,
            period_end_date=dto.period_end_date,
            depreciation_date=dto.depreciation_date,
            method=dto.method.value if dto.method else None,
            book_value_start=dto.book_value_start,
            depreciation_amount=dto.depreciation_amount,
            book_value_end=dto.book_value_end,
            accumulated_depreciation=dto.accumulated_depreciation,
            is_adjustment=dto.is_adjustment,
            adjustment_reason=dto.adjustment_reason,
            triggered_by_id=dto.triggered_by_id,
            created_by_id=dto.triggered_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<DepreciationRecordModel(asset_id={self.asset_id!r}, "
            f"period={self.period_key!r}, amount={self.depreciation_amount!r})>"
        )
