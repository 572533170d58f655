"""
Module: asset_kernel.db.base
Responsibility: Declarative base classes for the depreciation engine's ORM
    models.  Provides the UUID primary key convention, the type annotation
    map for money and date columns, and the TrackedBase audit mixin.
Architecture position: Kernel > DB.  Lowest-level import target; every
    model file imports from here.  MUST NOT import from modules or batch.

Invariants enforced:
    - UUID primary keys (uuid4, stored as String(36) for portability
      between PostgreSQL and SQLite).
    - Money precision: ``Decimal`` annotations map to Numeric(20, 2).
      Rates and unit counts opt into ``RATE_NUMERIC`` explicitly.
      NEVER use float for amounts.
    - Audit columns: TrackedBase provides created_at, updated_at,
      created_by_id and updated_by_id.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY_NUMERIC = Numeric(20, 2)
RATE_NUMERIC = Numeric(20, 6)


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - UUID -> str on bind, str -> UUID on load.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all depreciation models.

    Guarantees:
        - id is always a uuid4-generated UUID.
        - Decimal maps to Numeric(20, 2); date to Date; datetime to a
          timezone-aware DateTime.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: MONEY_NUMERIC,
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamp and actor tracking.

    Guarantees:
        - created_at is set by the server on INSERT.
        - updated_at is refreshed on every UPDATE, including the Core
          compare-and-swap updates issued by the asset repository.
        - created_by_id is required; scheduled runs use the scheduler's
          system actor.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )
