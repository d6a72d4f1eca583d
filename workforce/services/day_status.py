from __future__ import annotations

import enum
from calendar import monthrange
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from workforce.models import AttendanceType


class DayStatus(str, enum.Enum):
    FUTURE = "future"
    HOLIDAY = "holiday"
    LEAVE = "leave"
    PENDING = "pending"
    PRESENT = "present"
    HALF = "half"
    ABSENT = "absent"


@dataclass(frozen=True)
class MonthSummary:
    present: int
    half: int
    leave: int
    absent: int
    pending: int
    holiday: int
    total_days: int


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])


def _in_any_range(day: date, ranges: Iterable[tuple[date, date]]) -> bool:
    return any(start <= day <= end for start, end in ranges)


def day_status(
    day: date,
    *,
    today: date,
    holidays: Collection[date],
    approved_leave_ranges: Iterable[tuple[date, date]],
    attendance_record: Any | None,
) -> DayStatus:
    # First match wins; holidays outrank leave, leave outranks attendance.
    if day > today:
        return DayStatus.FUTURE
    if day in holidays:
        return DayStatus.HOLIDAY
    if _in_any_range(day, approved_leave_ranges):
        return DayStatus.LEAVE
    if attendance_record is None:
        return DayStatus.PENDING if day == today else DayStatus.ABSENT

    attendance_type = getattr(attendance_record, "attendance_type", None)
    if attendance_type == AttendanceType.FULL:
        return DayStatus.PRESENT
    if attendance_type == AttendanceType.HALF:
        return DayStatus.HALF
    return DayStatus.ABSENT


def month_calendar(
    year: int,
    month: int,
    *,
    today: date,
    holidays: Collection[date],
    approved_leave_ranges: Iterable[tuple[date, date]],
    records_by_day: Mapping[date, Any],
) -> list[tuple[date, DayStatus]]:
    ranges = list(approved_leave_ranges)
    start, end = month_bounds(year, month)
    days: list[tuple[date, DayStatus]] = []
    current = start
    while current <= end:
        days.append(
            (
                current,
                day_status(
                    current,
                    today=today,
                    holidays=holidays,
                    approved_leave_ranges=ranges,
                    attendance_record=records_by_day.get(current),
                ),
            )
        )
        current += timedelta(days=1)
    return days


def summarize_month(
    year: int,
    month: int,
    *,
    today: date,
    holidays: Collection[date],
    approved_leave_ranges: Iterable[tuple[date, date]],
    records_by_day: Mapping[date, Any],
) -> MonthSummary:
    """Fold ``day_status`` over month start .. min(today, month end).

    Future days are left out of every counter. Holidays are counted under
    ``leave`` as well as reported on their own in ``holiday``.
    """
    counts = {status: 0 for status in DayStatus}
    for _, status in month_calendar(
        year,
        month,
        today=today,
        holidays=holidays,
        approved_leave_ranges=approved_leave_ranges,
        records_by_day=records_by_day,
    ):
        counts[status] += 1

    holiday = counts[DayStatus.HOLIDAY]
    leave = counts[DayStatus.LEAVE] + holiday
    present = counts[DayStatus.PRESENT]
    half = counts[DayStatus.HALF]
    absent = counts[DayStatus.ABSENT]
    pending = counts[DayStatus.PENDING]
    return MonthSummary(
        present=present,
        half=half,
        leave=leave,
        absent=absent,
        pending=pending,
        holiday=holiday,
        total_days=present + half + leave + absent + pending,
    )
