"""
Pure schedule evaluation functions.

Contract:
    ``next_execution_date``, ``last_occurrence_on_or_before`` and
    ``due_occurrence`` are PURE -- no I/O, no clock reads.  The caller
    supplies "today".

Architecture: asset_batch/domain.  ZERO I/O.

Invariants enforced:
    - An execution day beyond the end of a month clamps to that month's
      last day (31 in April fires on April 30).
    - Quarterly schedules fire only in quarter-end months {3, 6, 9, 12};
      annual schedules fire only in December.
    - A schedule is due at most once per occurrence: any run for the
      schedule dated on or after the occurrence satisfies it.
"""

from __future__ import annotations

import calendar
from datetime import date

from asset_kernel.exceptions import InvalidScheduleError

from asset_batch.domain.types import DepreciationSchedule, ScheduleCadence

QUARTER_END_MONTHS = (3, 6, 9, 12)

# Longest gap between two occurrences is one year; scan a little past it.
_SCAN_MONTHS = 14


def _cadence_months(cadence: ScheduleCadence) -> tuple[int, ...]:
    match cadence:
        case ScheduleCadence.MONTHLY:
            return tuple(range(1, 13))
        case ScheduleCadence.QUARTERLY:
            return QUARTER_END_MONTHS
        case ScheduleCadence.ANNUALLY:
            return (12,)


def clamp_day(year: int, month: int, day: int) -> date:
    """``day`` of the given month, clamped to the month's last valid day."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def validate_execution_day(execution_day: int) -> None:
    if not 1 <= execution_day <= 31:
        raise InvalidScheduleError(
            f"execution day must be between 1 and 31, got {execution_day}",
            field_name="execution_day",
        )


def _shift(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def next_execution_date(
    cadence: ScheduleCadence,
    execution_day: int,
    today: date,
) -> date:
    """Current or next occurrence of the schedule on or after ``today``."""
    validate_execution_day(execution_day)
    months = _cadence_months(cadence)
    for offset in range(_SCAN_MONTHS):
        year, month = _shift(today.year, today.month, offset)
        if month not in months:
            continue
        candidate = clamp_day(year, month, execution_day)
        if candidate >= today:
            return candidate
    raise AssertionError("no occurrence within scan window")  # pragma: no cover


def last_occurrence_on_or_before(
    cadence: ScheduleCadence,
    execution_day: int,
    as_of: date,
) -> date:
    """Most recent occurrence of the schedule on or before ``as_of``."""
    validate_execution_day(execution_day)
    months = _cadence_months(cadence)
    for offset in range(_SCAN_MONTHS):
        year, month = _shift(as_of.year, as_of.month, -offset)
        if month not in months:
            continue
        candidate = clamp_day(year, month, execution_day)
        if candidate <= as_of:
            return candidate
    raise AssertionError("no occurrence within scan window")  # pragma: no cover


def due_occurrence(
    schedule: DepreciationSchedule,
    as_of: date,
    last_run_date: date | None,
) -> date | None:
    """The occurrence to run now, or None if the schedule is not due.

    Args:
        schedule: Schedule to evaluate.
        as_of: Evaluation date (from the injected clock).
        last_run_date: Latest calculation date of any execution linked to
            the schedule, or None if it never ran.
    """
    if not schedule.is_active:
        return None
    occurrence = last_occurrence_on_or_before(
        schedule.cadence, schedule.execution_day, as_of,
    )
    if schedule.created_at is not None and occurrence < schedule.created_at.date():
        return None
    if last_run_date is not None and last_run_date >= occurrence:
        return None
    return occurrence


def is_due(
    schedule: DepreciationSchedule,
    as_of: date,
    last_run_date: date | None,
) -> bool:
    return due_occurrence(schedule, as_of, last_run_date) is not None
