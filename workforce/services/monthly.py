from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce.errors import not_found, validation_error
from workforce.models import AttendanceRecord, Employee
from workforce.services.day_status import DayStatus, MonthSummary, month_bounds, month_calendar, summarize_month
from workforce.services.holidays import holiday_dates_between
from workforce.services.leaves import approved_leave_ranges


@dataclass(frozen=True)
class EmployeeMonth:
    employee_id: int
    year: int
    month: int
    days: list[tuple[date, DayStatus]]
    summary: MonthSummary
    records_by_day: dict[date, AttendanceRecord]


def build_employee_month(
    db: Session,
    *,
    employee_id: int,
    year: int,
    month: int,
    today: date,
) -> EmployeeMonth:
    if month < 1 or month > 12:
        raise validation_error("INVALID_PERIOD", "month must be between 1 and 12.")
    if db.get(Employee, employee_id) is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")

    start, end = month_bounds(year, month)
    holidays = holiday_dates_between(db, start=start, end=end)
    leave_ranges = approved_leave_ranges(db, employee_id=employee_id, start=start, end=end)
    records = db.scalars(
        select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.day >= start,
            AttendanceRecord.day <= end,
        )
    ).all()
    records_by_day = {record.day: record for record in records}

    days = month_calendar(
        year,
        month,
        today=today,
        holidays=holidays,
        approved_leave_ranges=leave_ranges,
        records_by_day=records_by_day,
    )
    summary = summarize_month(
        year,
        month,
        today=today,
        holidays=holidays,
        approved_leave_ranges=leave_ranges,
        records_by_day=records_by_day,
    )
    return EmployeeMonth(
        employee_id=employee_id,
        year=year,
        month=month,
        days=days,
        summary=summary,
        records_by_day=records_by_day,
    )
