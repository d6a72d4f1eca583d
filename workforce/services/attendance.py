from __future__ import annotations

import json
import logging
import threading
import time as _time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import lru_cache

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workforce.errors import ApiError, not_found, state_conflict, validation_error
from workforce.models import AttendanceRecord, AttendanceType, Employee, Site
from workforce.services.clock import local_day_from_utc, normalize_ts, parse_hhmm, to_local
from workforce.services.ledger import PostResult, credit_daily_wage
from workforce.services.notifications import notify_employee
from workforce.settings import get_settings

logger = logging.getLogger("workforce.attendance")

ACTION_CHECKED_IN = "CHECKED_IN"
ACTION_CHECKED_OUT = "CHECKED_OUT"
ACTION_CHECKIN_CLOSED = "CHECKIN_CLOSED"

STATE_NO_RECORD = "NO_RECORD"
STATE_CHECKED_IN = "CHECKED_IN"
STATE_CHECKED_OUT = "CHECKED_OUT"


@dataclass(frozen=True)
class ScanOutcome:
    action: str
    record: AttendanceRecord | None
    wage_posting: PostResult | None = None


class ScanCooldownGate:
    """Process-local reentrancy gate for scans from one device session.

    A key is busy while its scan is in flight and for ``cooldown_seconds``
    after it completes, which absorbs repeated camera detections of the same
    QR code. Server-side idempotency is what keeps the ledger correct; this
    only avoids double-processing on the client path.
    """

    def __init__(self, cooldown_seconds: float, clock: Callable[[], float] = _time.monotonic) -> None:
        self.cooldown_seconds = max(0.0, cooldown_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._cooldown_until: dict[str, float] = {}

    def _drop_expired(self, now: float) -> None:
        expired = [key for key, until in self._cooldown_until.items() if until <= now]
        for key in expired:
            del self._cooldown_until[key]

    def acquire(self, key: str) -> bool:
        with self._lock:
            now = self._clock()
            self._drop_expired(now)
            if key in self._in_flight:
                return False
            if key in self._cooldown_until:
                return False
            self._in_flight.add(key)
            return True

    def release(self, key: str, *, cooldown: bool = True) -> None:
        with self._lock:
            now = self._clock()
            self._drop_expired(now)
            self._in_flight.discard(key)
            if cooldown and self.cooldown_seconds > 0:
                self._cooldown_until[key] = now + self.cooldown_seconds
            else:
                self._cooldown_until.pop(key, None)

    def is_busy(self, key: str) -> bool:
        with self._lock:
            if key in self._in_flight:
                return True
            until = self._cooldown_until.get(key)
            return until is not None and self._clock() < until

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        if not self.acquire(key):
            raise state_conflict("SCAN_IN_PROGRESS", "A scan is already being processed. Please wait.")
        try:
            yield
        except ApiError as exc:
            # Malformed tokens leave nothing locked behind them.
            self.release(key, cooldown=exc.code != "INVALID_TOKEN")
            raise
        except BaseException:
            self.release(key)
            raise
        else:
            self.release(key)


@lru_cache
def get_scan_gate() -> ScanCooldownGate:
    return ScanCooldownGate(get_settings().scan_cooldown_seconds)


def decode_site_token(raw: str | None) -> str:
    """Return the canonical site UUID carried by a scanned QR payload.

    Accepts a bare UUID or a JSON object with a ``site_id`` field.
    """
    value = (raw or "").strip()
    candidate: object = value
    if value.startswith("{"):
        try:
            candidate = json.loads(value).get("site_id")
        except (ValueError, AttributeError):
            candidate = None
    if not isinstance(candidate, str):
        raise validation_error("INVALID_TOKEN", "The scanned QR code is not valid.")
    try:
        return str(uuid.UUID(candidate.strip()))
    except ValueError as exc:
        raise validation_error("INVALID_TOKEN", "The scanned QR code is not valid.") from exc


def classify_attendance(checkin_at: datetime, checkout_at: datetime) -> AttendanceType:
    settings = get_settings()
    late_threshold = parse_hhmm(settings.half_day_late_checkin_local)
    early_threshold = parse_hhmm(settings.half_day_early_checkout_local)
    checkin_local = to_local(checkin_at).time()
    checkout_local = to_local(checkout_at).time()
    if checkin_local > late_threshold or checkout_local < early_threshold:
        return AttendanceType.HALF
    return AttendanceType.FULL


def is_past_cutoff(now_utc: datetime) -> bool:
    cutoff = parse_hhmm(get_settings().checkin_cutoff_local)
    return to_local(now_utc).time() > cutoff


def _resolve_active_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")
    if not employee.is_active:
        raise ApiError(
            status_code=403,
            code="EMPLOYEE_INACTIVE",
            message="Inactive employee cannot perform attendance actions.",
        )
    return employee


def _resolve_active_site(db: Session, site_id: str) -> Site:
    site = db.get(Site, site_id)
    if site is None or not site.is_active:
        raise not_found("SITE_NOT_FOUND", "Scanned site is not registered.")
    return site


def _resolve_record_for_day(db: Session, *, employee_id: int, day: date) -> AttendanceRecord | None:
    return db.scalar(
        select(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.day == day,
        )
    )


def record_state(record: AttendanceRecord | None) -> str:
    if record is None:
        return STATE_NO_RECORD
    if record.checkout_at is None:
        return STATE_CHECKED_IN
    return STATE_CHECKED_OUT


def get_today_attendance(
    db: Session,
    *,
    employee_id: int,
    now_utc: datetime | None = None,
) -> tuple[AttendanceRecord | None, str]:
    now = normalize_ts(now_utc)
    record = _resolve_record_for_day(db, employee_id=employee_id, day=local_day_from_utc(now))
    return record, record_state(record)


def check_in(
    db: Session,
    *,
    employee_id: int,
    site_id: str,
    now_utc: datetime | None = None,
) -> ScanOutcome:
    now = normalize_ts(now_utc)
    employee = _resolve_active_employee(db, employee_id)
    site = _resolve_active_site(db, site_id)
    day = local_day_from_utc(now)

    existing = _resolve_record_for_day(db, employee_id=employee.id, day=day)
    if existing is not None:
        if existing.checkout_at is not None:
            raise state_conflict("ALREADY_COMPLETED", "You have already checked out today.")
        raise state_conflict("ALREADY_CHECKED_IN", "You are already checked in today.")

    if is_past_cutoff(now):
        # Late arrivals simply get no record; the day classifies as absent.
        logger.info(
            "checkin_rejected_after_cutoff",
            extra={"employee_id": employee.id, "day": day, "ts_utc": now},
        )
        return ScanOutcome(action=ACTION_CHECKIN_CLOSED, record=None)

    record = AttendanceRecord(
        employee_id=employee.id,
        site_id=site.id,
        day=day,
        checkin_at=now,
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise state_conflict("ALREADY_CHECKED_IN", "You are already checked in today.") from exc

    logger.info(
        "checked_in",
        extra={"employee_id": employee.id, "record_id": record.id, "site_id": site.id, "day": day},
    )
    return ScanOutcome(action=ACTION_CHECKED_IN, record=record)


def check_out(
    db: Session,
    *,
    employee_id: int,
    now_utc: datetime | None = None,
    remarks: str | None = None,
) -> ScanOutcome:
    now = normalize_ts(now_utc)
    employee = _resolve_active_employee(db, employee_id)
    day = local_day_from_utc(now)

    record = _resolve_record_for_day(db, employee_id=employee.id, day=day)
    if record is None or record.checkin_at is None:
        raise state_conflict("CHECKIN_REQUIRED", "Check in before checking out.")
    if record.checkout_at is not None:
        raise state_conflict("ALREADY_COMPLETED", "You have already checked out today.")

    checkin_at = normalize_ts(record.checkin_at)
    min_session = timedelta(seconds=max(0, get_settings().min_session_seconds))
    if now < checkin_at + min_session:
        raise state_conflict("CHECKOUT_TOO_SOON", "Check-out was scanned too soon after check-in.")

    attendance_type = classify_attendance(checkin_at, now)
    normalized_remarks = (remarks or "").strip() or None

    try:
        result = db.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.id == record.id,
                AttendanceRecord.checkout_at.is_(None),
            )
            .values(
                checkout_at=now,
                attendance_type=attendance_type,
                remarks=normalized_remarks,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            raise state_conflict("ALREADY_COMPLETED", "You have already checked out today.")

        wage_posting = credit_daily_wage(
            db,
            employee=employee,
            day=day,
            attendance_type=attendance_type,
            record_id=record.id,
        )
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("checkout_failed", extra={"employee_id": employee.id, "record_id": record.id})
        raise

    db.refresh(record)
    logger.info(
        "checked_out",
        extra={
            "employee_id": employee.id,
            "record_id": record.id,
            "attendance_type": attendance_type.value,
            "wage_entry_id": wage_posting.entry.id if wage_posting is not None else None,
        },
    )

    body = f"Attendance for {day:%d %b %Y} recorded as {attendance_type.value} day."
    if wage_posting is not None and wage_posting.is_new:
        body = f"{body} {wage_posting.entry.amount} credited to your ledger."
    notify_employee(
        db,
        employee_id=employee.id,
        title="Checked Out",
        body=body,
        meta={"type": "attendance", "source_id": record.id},
    )
    return ScanOutcome(action=ACTION_CHECKED_OUT, record=record, wage_posting=wage_posting)


def process_scan(
    db: Session,
    *,
    employee_id: int,
    token: str,
    now_utc: datetime | None = None,
) -> ScanOutcome:
    site_id = decode_site_token(token)
    now = normalize_ts(now_utc)
    record, state = get_today_attendance(db, employee_id=employee_id, now_utc=now)

    if state == STATE_CHECKED_OUT:
        raise state_conflict("ALREADY_COMPLETED", "You have already checked out today.")
    if state == STATE_CHECKED_IN:
        return check_out(db, employee_id=employee_id, now_utc=now)
    return check_in(db, employee_id=employee_id, site_id=site_id, now_utc=now)
