"""
Pytest fixtures for the depreciation engine test suite.

Provides:
- A file-backed SQLite database per test (engine + tables via the kernel)
- A deterministic clock
- Asset and category factories
- Structured log capture

Each test gets its own database file under ``tmp_path`` so worker threads
of the batch executor can open their own connections to it.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from itertools import count
from uuid import UUID, uuid4

import pytest

from asset_engines.depreciation import DepreciationMethod
from asset_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from asset_kernel.domain.clock import DeterministicClock
from asset_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from asset_modules.depreciation.config import DepreciationConfig
from asset_modules.depreciation.models import Asset, AssetCategory
from asset_modules.depreciation.service import DepreciationService


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture asset_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.run_batch(...)
            logs = captured_logs()
            assert any(r["message"] == "depreciation_execution_finalized" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("asset_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Fresh SQLite database file with every table created."""
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'assets.db'}")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """A plain session for direct repository tests.  Caller commits."""
    s = session_factory()
    try:
        yield s
    finally:
        s.rollback()
        s.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock.on(date(2024, 1, 31))


@pytest.fixture
def depreciation_config():
    return DepreciationConfig(max_workers=4)


@pytest.fixture
def business_unit_id() -> UUID:
    return uuid4()


@pytest.fixture
def actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def service(session_factory, clock, depreciation_config):
    return DepreciationService(
        session_factory=session_factory,
        clock=clock,
        config=depreciation_config,
        actor_id=TEST_ACTOR_ID,
    )


@pytest.fixture
def make_category(service, business_unit_id):
    """Register a category: ``make_category("VEH", "Vehicles")``."""

    def _make(code: str, name: str | None = None, bu: UUID | None = None) -> AssetCategory:
        return service.register_category(
            AssetCategory(
                id=uuid4(),
                business_unit_id=bu or business_unit_id,
                code=code,
                name=name or code.title(),
            )
        )

    return _make


@pytest.fixture
def make_asset(service, business_unit_id):
    """
    Register an asset.  Defaults to the canonical straight-line case:
    120,000 over 24 months, no salvage, starting 2024-01-01.

    Usage::

        asset = make_asset(purchase_price=Decimal("5000"), useful_life_months=10)
        broken = make_asset(depreciation_method=None)
    """
    numbers = count(1)

    def _make(**overrides) -> Asset:
        n = next(numbers)
        fields = {
            "id": uuid4(),
            "business_unit_id": business_unit_id,
            "item_code": f"FA-{n:04d}",
            "description": f"Test asset {n}",
            "purchase_price": Decimal("120000.00"),
            "salvage_value": Decimal("0"),
            "useful_life_months": 24,
            "depreciation_method": DepreciationMethod.STRAIGHT_LINE,
            "depreciation_start_date": date(2024, 1, 1),
        }
        fields.update(overrides)
        return service.register_asset(Asset(**fields))

    return _make
