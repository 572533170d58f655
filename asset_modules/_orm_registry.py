"""
Module ORM Registry (``asset_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Called lazily by
``asset_kernel.db.engine.create_tables`` so the kernel itself never
imports module or batch code at import time.
"""


def import_all_orm_models() -> None:
    """Import the depreciation and batch ORM modules to register their tables.

    Depreciation tables come first: executions reference schedules, and
    nothing in the depreciation module references batch tables.

    This function is idempotent -- repeated calls are harmless.
    """
    # fmt: off
    import asset_modules.depreciation.orm  # noqa: F401  # categories, assets, ledger
    import asset_batch.models  # noqa: F401  # executions, execution assets, schedules
    # fmt: on
