from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from workforce.settings import get_settings

DEFAULT_TIMEZONE = "Asia/Kolkata"

logger = logging.getLogger("workforce.clock")


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except ZoneInfoNotFoundError:
        logger.warning("attendance_timezone_invalid", extra={"configured": raw_name})
        return ZoneInfo(DEFAULT_TIMEZONE)


def normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return datetime.now(timezone.utc)

    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)

    return ts_utc.astimezone(timezone.utc)


def to_local(ts_utc: datetime) -> datetime:
    return normalize_ts(ts_utc).astimezone(attendance_timezone())


def local_day_from_utc(ts_utc: datetime) -> date:
    return to_local(ts_utc).date()


def local_today(now_utc: datetime | None = None) -> date:
    return local_day_from_utc(normalize_ts(now_utc))


def parse_hhmm(value: str) -> time:
    hour_str, minute_str = value.strip().split(":")
    hour = int(hour_str)
    minute = int(minute_str)
    if hour < 0 or hour > 23 or minute < 0 or minute > 59:
        raise ValueError(f"Invalid HH:MM value: {value!r}")
    return time(hour=hour, minute=minute)
