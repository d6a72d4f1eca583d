"""Append-only payroll ledger.

Every posting is an insert; corrections are opposite-signed entries. Balances
are always aggregated from the entry rows, never stored. Postings that stem
from a retryable event carry a ``dedup_key`` (unique index) so a repeated
delivery returns the entry written the first time instead of a second one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workforce.errors import not_found, state_conflict, validation_error
from workforce.models import AttendanceType, Employee, LedgerEntry, LedgerEntryType
from workforce.services.clock import local_today
from workforce.services.notifications import notify_employee

logger = logging.getLogger("workforce.ledger")

CENT = Decimal("0.01")
REASON_UNPAID_LEAVE = "Unpaid Leave"
REASON_SALARY_SETTLEMENT = "Salary Settlement"
REASON_ADVANCE_APPROVED = "Advance Approved"
DEFAULT_MANUAL_CREDIT_REASON = "Manual payment"
DEFAULT_MANUAL_DEBIT_REASON = "Advance"


@dataclass(frozen=True)
class PostResult:
    """Outcome of a posting.

    ``is_new`` is False when the natural key already existed and the stored
    entry was returned unchanged; callers must not fire follow-up effects for
    such duplicates.
    """

    entry: LedgerEntry
    is_new: bool


@dataclass(frozen=True)
class LedgerTotals:
    credits: Decimal
    debits: Decimal
    entry_count: int
    last_entry_id: int | None

    @property
    def balance(self) -> Decimal:
        return self.credits - self.debits


def month_bucket(day: date) -> date:
    return day.replace(day=1)


def to_money(value: Decimal | int | str) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def wage_reason(attendance_type: AttendanceType) -> str:
    return f"Daily Wage ({attendance_type.value.upper()})"


def wage_amount(daily_wage: Decimal, attendance_type: AttendanceType) -> Decimal:
    if attendance_type == AttendanceType.FULL:
        return to_money(daily_wage)
    if attendance_type == AttendanceType.HALF:
        return to_money(Decimal(str(daily_wage)) / 2)
    return Decimal("0.00")


def wage_dedup_key(employee_id: int, day: date) -> str:
    return f"wage:{employee_id}:{day.isoformat()}"


def lock_employee(db: Session, employee_id: int) -> Employee:
    """Load the employee row with ``FOR UPDATE``.

    Serializes read-then-write sequences (quota checks, settlement) per
    employee for the rest of the transaction.
    """
    employee = db.scalar(select(Employee).where(Employee.id == employee_id).with_for_update())
    if employee is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")
    return employee


def _find_by_dedup_key(db: Session, dedup_key: str) -> LedgerEntry | None:
    return db.scalar(select(LedgerEntry).where(LedgerEntry.dedup_key == dedup_key))


def _post_entry(
    db: Session,
    *,
    employee_id: int,
    amount: Decimal | int | str,
    entry_type: LedgerEntryType,
    reason: str,
    month_year: date,
    dedup_key: str | None = None,
    source_type: str | None = None,
    source_id: str | int | None = None,
    created_by: str | None = None,
) -> PostResult:
    """Insert one entry inside the caller's transaction (flush, no commit)."""
    normalized_amount = to_money(amount)
    if normalized_amount <= 0:
        raise validation_error("INVALID_AMOUNT", "Ledger amount must be positive.")

    if dedup_key is not None:
        existing = _find_by_dedup_key(db, dedup_key)
        if existing is not None:
            logger.info(
                "ledger_entry_skipped_duplicate",
                extra={"employee_id": employee_id, "dedup_key": dedup_key, "entry_id": existing.id},
            )
            return PostResult(entry=existing, is_new=False)

    entry = LedgerEntry(
        employee_id=employee_id,
        amount=normalized_amount,
        type=entry_type,
        reason=reason,
        month_year=month_bucket(month_year),
        dedup_key=dedup_key,
        source_type=source_type,
        source_id=str(source_id) if source_id is not None else None,
        created_by=created_by,
    )
    db.add(entry)
    try:
        db.flush()
    except IntegrityError as exc:
        # A concurrent writer won the natural key; the whole unit of work is
        # void and a retry will hit the pre-check above.
        db.rollback()
        if dedup_key is None:
            raise
        logger.warning(
            "ledger_entry_dedup_race",
            extra={"employee_id": employee_id, "dedup_key": dedup_key},
        )
        raise state_conflict("DUPLICATE_POSTING", "Entry was posted concurrently; retry the request.") from exc

    logger.info(
        "ledger_entry_posted",
        extra={
            "employee_id": employee_id,
            "entry_id": entry.id,
            "entry_type": entry_type.value,
            "amount": normalized_amount,
            "reason": reason,
            "month_year": entry.month_year,
            "dedup_key": dedup_key,
        },
    )
    return PostResult(entry=entry, is_new=True)


def credit_daily_wage(
    db: Session,
    *,
    employee: Employee,
    day: date,
    attendance_type: AttendanceType,
    record_id: int | None = None,
) -> PostResult | None:
    """Credit one day's wage, at most once per (employee, day).

    Runs inside the check-out transaction and does not commit. Returns None
    when there is nothing to credit (absent day or zero wage).
    """
    amount = wage_amount(employee.daily_wage, attendance_type)
    if amount <= 0:
        logger.info(
            "wage_credit_skipped_zero",
            extra={"employee_id": employee.id, "day": day, "attendance_type": attendance_type.value},
        )
        return None

    return _post_entry(
        db,
        employee_id=employee.id,
        amount=amount,
        entry_type=LedgerEntryType.CREDIT,
        reason=wage_reason(attendance_type),
        month_year=month_bucket(day),
        dedup_key=wage_dedup_key(employee.id, day),
        source_type="attendance",
        source_id=record_id,
        created_by="system",
    )


def post_leave_deduction(
    db: Session,
    *,
    employee_id: int,
    month_year: date,
    amount: Decimal,
    leave_id: int,
    created_by: str | None = None,
) -> PostResult:
    # Uniqueness comes from the one-shot pending -> approved update that
    # precedes this call in the same transaction.
    return _post_entry(
        db,
        employee_id=employee_id,
        amount=amount,
        entry_type=LedgerEntryType.DEBIT,
        reason=REASON_UNPAID_LEAVE,
        month_year=month_year,
        source_type="leave",
        source_id=leave_id,
        created_by=created_by,
    )


def post_advance_debit(
    db: Session,
    *,
    employee_id: int,
    amount: Decimal,
    month_year: date,
    advance_id: int,
    created_by: str | None = None,
) -> PostResult:
    return _post_entry(
        db,
        employee_id=employee_id,
        amount=amount,
        entry_type=LedgerEntryType.DEBIT,
        reason=REASON_ADVANCE_APPROVED,
        month_year=month_year,
        dedup_key=f"advance:{advance_id}",
        source_type="advance",
        source_id=advance_id,
        created_by=created_by,
    )


def post_manual_entry(
    db: Session,
    *,
    employee_id: int,
    amount: Decimal | int | str,
    entry_type: LedgerEntryType,
    reason: str | None = None,
    month_year: date | None = None,
    created_by: str,
) -> LedgerEntry:
    """Administrative entry. No dedup: repeated identical entries are allowed."""
    if db.get(Employee, employee_id) is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")

    normalized_reason = (reason or "").strip()
    if not normalized_reason:
        normalized_reason = (
            DEFAULT_MANUAL_CREDIT_REASON if entry_type == LedgerEntryType.CREDIT else DEFAULT_MANUAL_DEBIT_REASON
        )

    result = _post_entry(
        db,
        employee_id=employee_id,
        amount=amount,
        entry_type=entry_type,
        reason=normalized_reason,
        month_year=month_bucket(month_year or local_today()),
        source_type="manual",
        created_by=created_by,
    )
    db.commit()
    return result.entry


def get_month_totals(db: Session, *, employee_id: int, month_year: date) -> LedgerTotals:
    # Single aggregate statement so the read sees one committed snapshot.
    credit_sum = func.coalesce(
        func.sum(case((LedgerEntry.type == LedgerEntryType.CREDIT, LedgerEntry.amount), else_=0)),
        0,
    )
    debit_sum = func.coalesce(
        func.sum(case((LedgerEntry.type == LedgerEntryType.DEBIT, LedgerEntry.amount), else_=0)),
        0,
    )
    credits, debits, entry_count, last_entry_id = db.execute(
        select(credit_sum, debit_sum, func.count(LedgerEntry.id), func.max(LedgerEntry.id)).where(
            LedgerEntry.employee_id == employee_id,
            LedgerEntry.month_year == month_bucket(month_year),
        )
    ).one()
    return LedgerTotals(
        credits=to_money(credits or 0),
        debits=to_money(debits or 0),
        entry_count=int(entry_count or 0),
        last_entry_id=last_entry_id,
    )


def list_entries(db: Session, *, employee_id: int, month_year: date | None = None) -> list[LedgerEntry]:
    stmt = (
        select(LedgerEntry)
        .where(LedgerEntry.employee_id == employee_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
    )
    if month_year is not None:
        stmt = stmt.where(LedgerEntry.month_year == month_bucket(month_year))
    return list(db.scalars(stmt).all())


def settle_balance(
    db: Session,
    *,
    employee_id: int,
    month_year: date,
    settled_by: str,
) -> LedgerEntry:
    """Debit the month's outstanding positive balance so it nets to zero.

    Balance read and debit run under the employee row lock. The dedup key is
    bound to the last entry seen, so a duplicate submission against the same
    snapshot collapses onto the first settlement.
    """
    bucket = month_bucket(month_year)
    lock_employee(db, employee_id)
    totals = get_month_totals(db, employee_id=employee_id, month_year=bucket)
    if totals.balance <= 0:
        db.rollback()
        raise state_conflict("NOTHING_TO_SETTLE", "Balance for this month is not positive.")

    result = _post_entry(
        db,
        employee_id=employee_id,
        amount=totals.balance,
        entry_type=LedgerEntryType.DEBIT,
        reason=REASON_SALARY_SETTLEMENT,
        month_year=bucket,
        dedup_key=f"settlement:{employee_id}:{bucket.isoformat()}:{totals.last_entry_id}",
        source_type="settlement",
        created_by=settled_by,
    )
    db.commit()

    if result.is_new:
        logger.info(
            "salary_settled",
            extra={"employee_id": employee_id, "month_year": bucket, "amount": result.entry.amount},
        )
        notify_employee(
            db,
            employee_id=employee_id,
            title="Salary Settled",
            body=f"Your salary for {bucket:%B %Y} has been settled successfully.",
            meta={"type": "ledger", "source_id": result.entry.id, "amount": str(result.entry.amount)},
        )
    return result.entry
