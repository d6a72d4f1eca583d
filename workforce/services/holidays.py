from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce.errors import not_found, validation_error
from workforce.models import Holiday
from workforce.services.day_status import month_bounds


def create_holidays(db: Session, *, holiday_dates: Iterable[date], description: str | None) -> list[Holiday]:
    requested = sorted(set(holiday_dates))
    if not requested:
        raise validation_error("MISSING_DATES", "At least one holiday date is required.")

    existing = set(
        db.scalars(select(Holiday.holiday_date).where(Holiday.holiday_date.in_(requested))).all()
    )
    created: list[Holiday] = []
    for holiday_date in requested:
        if holiday_date in existing:
            continue
        holiday = Holiday(holiday_date=holiday_date, description=(description or "").strip() or None)
        db.add(holiday)
        created.append(holiday)

    db.commit()
    return created


def list_holidays(db: Session, *, year: int | None = None, month: int | None = None) -> list[Holiday]:
    if month is not None and year is None:
        raise validation_error("INVALID_PERIOD", "month requires year.")

    stmt = select(Holiday).order_by(Holiday.holiday_date.asc())
    if year is not None and month is not None:
        start, end = month_bounds(year, month)
        stmt = stmt.where(Holiday.holiday_date >= start, Holiday.holiday_date <= end)
    elif year is not None:
        stmt = stmt.where(Holiday.holiday_date >= date(year, 1, 1), Holiday.holiday_date <= date(year, 12, 31))
    return list(db.scalars(stmt).all())


def holiday_dates_between(db: Session, *, start: date, end: date) -> set[date]:
    return set(
        db.scalars(
            select(Holiday.holiday_date).where(
                Holiday.holiday_date >= start,
                Holiday.holiday_date <= end,
            )
        ).all()
    )


def delete_holiday(db: Session, holiday_id: int) -> None:
    holiday = db.get(Holiday, holiday_id)
    if holiday is None:
        raise not_found("HOLIDAY_NOT_FOUND", "Holiday not found.")
    db.delete(holiday)
    db.commit()
