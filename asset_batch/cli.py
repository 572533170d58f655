"""
Command-line entry point for depreciation runs.

Usage:
    python -m asset_batch.cli [--database-url URL] [--config FILE] <command> [options]

Commands:
    run        Run (or dry-run) depreciation for a business unit.
    preview    Print an asset's forward depreciation schedule.
    due        List recurring schedules that are due.
    scheduler  Run the polling scheduler (``--once`` for a single tick).

Examples:
    # Dry-run January for one business unit
    python -m asset_batch.cli run --business-unit <uuid> --date 2024-01-31 --dry-run

    # Quarterly run restricted to two categories
    python -m asset_batch.cli run --business-unit <uuid> --granularity quarterly \\
        --include <category-uuid> --include <category-uuid>

The database URL comes from ``--database-url`` or the ``ASSET_DB_URL``
environment variable.  Every command prints a JSON document on stdout.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from dataclasses import asdict
from datetime import date
from pathlib import Path
from typing import Sequence
from uuid import UUID

from asset_kernel.db.engine import create_tables, init_engine_from_url
from asset_kernel.domain.clock import SystemClock
from asset_kernel.exceptions import AssetKernelError
from asset_kernel.logging_config import configure_logging, get_logger
from asset_modules.depreciation.config import DepreciationConfig
from asset_modules.depreciation.models import useful_life_display

from asset_batch.domain.types import BatchRunConfig, ExecutionStatus, PeriodGranularity
from asset_batch.orchestrator import DepreciationOrchestrator

logger = get_logger("batch.cli")

DB_URL_ENV = "ASSET_DB_URL"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="asset-depreciation",
        description="Fixed-asset depreciation runs and schedules.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--database-url",
        default=os.environ.get(DB_URL_ENV),
        help=f"SQLAlchemy database URL (default: ${DB_URL_ENV}).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML file with depreciation settings.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running the command.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level for the JSON log stream on stderr (default: WARNING).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run depreciation for a business unit.")
    run.add_argument("--business-unit", required=True, type=UUID)
    run.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Calculation date (YYYY-MM-DD). Default: today.",
    )
    run.add_argument(
        "--granularity",
        choices=[g.value for g in PeriodGranularity],
        default=None,
        help="Run period length. Default: from configuration.",
    )
    run.add_argument(
        "--include", type=UUID, action="append", default=[],
        help="Only depreciate this category (repeatable).",
    )
    run.add_argument(
        "--exclude", type=UUID, action="append", default=[],
        help="Skip this category (repeatable).",
    )
    run.add_argument(
        "--dry-run", action="store_true",
        help="Compute everything, write nothing.",
    )
    run.add_argument(
        "--details", action="store_true",
        help="Include per-asset outcomes in the output.",
    )

    preview = commands.add_parser("preview", help="Print an asset's depreciation schedule.")
    preview.add_argument("--asset", required=True, type=UUID)
    preview.add_argument("--as-of", type=date.fromisoformat, default=None)

    due = commands.add_parser("due", help="List due recurring schedules.")
    due.add_argument("--as-of", type=date.fromisoformat, default=None)

    scheduler = commands.add_parser("scheduler", help="Run the polling scheduler.")
    scheduler.add_argument("--tick-seconds", type=int, default=None)
    scheduler.add_argument(
        "--once", action="store_true",
        help="Evaluate schedules once and exit.",
    )

    return parser.parse_args(argv)


def _print(document) -> None:
    print(json.dumps(document, indent=2, default=str))


def _run(orchestrator: DepreciationOrchestrator, args: argparse.Namespace) -> int:
    granularity = PeriodGranularity(args.granularity or orchestrator.config.default_granularity)
    result = orchestrator.service.run_batch(
        BatchRunConfig(
            business_unit_id=args.business_unit,
            calculation_date=args.date or orchestrator.clock.today(),
            granularity=granularity,
            include_categories=tuple(args.include),
            exclude_categories=tuple(args.exclude),
        ),
        dry_run=args.dry_run,
    )
    document = asdict(result)
    if not args.details:
        document.pop("details")
        document["errors"] = [asdict(o) for o in result.errors]
    _print(document)
    return 1 if result.status is ExecutionStatus.FAILED else 0


def _preview(orchestrator: DepreciationOrchestrator, args: argparse.Namespace) -> int:
    asset = orchestrator.service.get_asset(args.asset)
    entries = orchestrator.service.preview_schedule(args.asset, as_of=args.as_of)
    _print(
        {
            "asset_id": asset.id,
            "item_code": asset.item_code,
            "method": asset.depreciation_method,
            "useful_life": useful_life_display(asset.useful_life_months),
            "periods": len(entries),
            "schedule": [asdict(e) for e in entries],
        }
    )
    return 0


def _due(orchestrator: DepreciationOrchestrator, args: argparse.Namespace) -> int:
    schedules = orchestrator.service.due_schedules(args.as_of)
    _print({"due": [asdict(s) for s in schedules]})
    return 0


def _scheduler(orchestrator: DepreciationOrchestrator, args: argparse.Namespace) -> int:
    scheduler = orchestrator.create_scheduler(tick_interval_seconds=args.tick_seconds)
    if args.once:
        _print({"fired": scheduler.tick()})
        return 0

    scheduler.start()
    try:
        while scheduler.is_running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(level=args.log_level.upper(), stream=sys.stderr)

    if not args.database_url:
        print(f"error: --database-url or ${DB_URL_ENV} is required", file=sys.stderr)
        return 2

    config = (
        DepreciationConfig.from_yaml(args.config)
        if args.config is not None
        else DepreciationConfig.with_defaults()
    )
    init_engine_from_url(args.database_url)
    if args.create_tables:
        create_tables()

    orchestrator = DepreciationOrchestrator.from_engine(clock=SystemClock(), config=config)
    try:
        match args.command:
            case "run":
                return _run(orchestrator, args)
            case "preview":
                return _preview(orchestrator, args)
            case "due":
                return _due(orchestrator, args)
            case "scheduler":
                return _scheduler(orchestrator, args)
    except AssetKernelError as exc:
        logger.warning("cli_command_failed", extra={"command": args.command})
        print(json.dumps({"error": exc.code, "message": str(exc)}), file=sys.stderr)
        return 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
