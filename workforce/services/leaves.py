from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from workforce.errors import ApiError, not_found, state_conflict, validation_error
from workforce.models import Employee, LeaveRequest, LeaveStatus
from workforce.services.clock import normalize_ts
from workforce.services.day_status import month_bounds
from workforce.services.ledger import lock_employee, month_bucket, post_leave_deduction, to_money
from workforce.services.notifications import notify_employee
from workforce.settings import get_settings

logger = logging.getLogger("workforce.leaves")

PENALTY_PER_DAY = "PER_DAY"
PENALTY_FLAT_DAILY_WAGE = "FLAT_DAILY_WAGE"


@dataclass(frozen=True)
class LeaveDecision:
    """Snapshot computed when the approver is warned.

    Passed back unchanged on confirm; the commit applies these numbers and
    refuses (rather than recomputes) if the month's approved total moved.
    """

    leave_id: int
    employee_id: int
    month_year: date
    days: int
    approved_days_so_far: int
    paid_days: int
    unpaid_days: int
    daily_wage: Decimal
    deduction_amount: Decimal

    @property
    def requires_confirmation(self) -> bool:
        return self.unpaid_days > 0


def compute_leave_split(
    *,
    days: int,
    approved_days_so_far: int,
    quota: int,
    daily_wage: Decimal,
    penalty_mode: str = PENALTY_PER_DAY,
) -> tuple[int, int, Decimal]:
    paid_left = max(0, quota - approved_days_so_far)
    unpaid_days = max(0, days - paid_left)
    paid_days = days - unpaid_days
    if unpaid_days == 0:
        return paid_days, 0, Decimal("0.00")
    if penalty_mode == PENALTY_FLAT_DAILY_WAGE:
        return paid_days, unpaid_days, to_money(daily_wage)
    return paid_days, unpaid_days, to_money(Decimal(str(daily_wage)) * unpaid_days)


def inclusive_day_count(start_date: date, end_date: date) -> int:
    return (end_date - start_date).days + 1


def create_leave_request(
    db: Session,
    *,
    employee_id: int,
    start_date: date,
    end_date: date,
    reason: str | None,
) -> LeaveRequest:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")
    if end_date < start_date:
        raise validation_error("INVALID_DATE_RANGE", "end_date must be greater than or equal to start_date.")

    overlapping = db.scalar(
        select(LeaveRequest.id).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_((LeaveStatus.PENDING, LeaveStatus.APPROVED)),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
    )
    if overlapping is not None:
        raise state_conflict("LEAVE_OVERLAP", "A pending or approved leave already covers these dates.")

    leave = LeaveRequest(
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        days=inclusive_day_count(start_date, end_date),
        status=LeaveStatus.PENDING,
        reason=(reason or "").strip() or None,
    )
    db.add(leave)
    db.commit()
    db.refresh(leave)
    logger.info(
        "leave_requested",
        extra={"employee_id": employee_id, "leave_id": leave.id, "days": leave.days},
    )
    return leave


def list_leave_requests(
    db: Session,
    *,
    employee_id: int | None = None,
    status: LeaveStatus | None = None,
    year: int | None = None,
    month: int | None = None,
) -> list[LeaveRequest]:
    if (year is None) != (month is None):
        raise validation_error("INVALID_PERIOD", "year and month must be provided together.")

    stmt = select(LeaveRequest).order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
    if employee_id is not None:
        stmt = stmt.where(LeaveRequest.employee_id == employee_id)
    if status is not None:
        stmt = stmt.where(LeaveRequest.status == status)
    if year is not None and month is not None:
        start, end = month_bounds(year, month)
        stmt = stmt.where(LeaveRequest.start_date <= end, LeaveRequest.end_date >= start)
    return list(db.scalars(stmt).all())


def approved_leave_ranges(db: Session, *, employee_id: int, start: date, end: date) -> list[tuple[date, date]]:
    rows = db.execute(
        select(LeaveRequest.start_date, LeaveRequest.end_date).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status == LeaveStatus.APPROVED,
            LeaveRequest.start_date <= end,
            LeaveRequest.end_date >= start,
        )
    ).all()
    return [(row.start_date, row.end_date) for row in rows]


def approved_days_so_far(
    db: Session,
    *,
    employee_id: int,
    month_year: date,
    exclude_leave_id: int | None = None,
) -> int:
    # A leave is charged to the month its start_date falls in.
    start, end = month_bounds(month_year.year, month_year.month)
    stmt = select(func.coalesce(func.sum(LeaveRequest.days), 0)).where(
        LeaveRequest.employee_id == employee_id,
        LeaveRequest.status == LeaveStatus.APPROVED,
        LeaveRequest.start_date >= start,
        LeaveRequest.start_date <= end,
    )
    if exclude_leave_id is not None:
        stmt = stmt.where(LeaveRequest.id != exclude_leave_id)
    total = db.scalar(stmt)
    return int(total or 0)


def _get_leave(db: Session, leave_id: int) -> LeaveRequest:
    leave = db.get(LeaveRequest, leave_id)
    if leave is None:
        raise not_found("LEAVE_NOT_FOUND", "Leave request not found.")
    return leave


def preview_leave_decision(db: Session, *, leave_id: int) -> LeaveDecision:
    leave = _get_leave(db, leave_id)
    if leave.status != LeaveStatus.PENDING:
        raise state_conflict("LEAVE_ALREADY_DECIDED", "Leave request has already been decided.")

    employee = db.get(Employee, leave.employee_id)
    if employee is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")

    settings = get_settings()
    month_year = month_bucket(leave.start_date)
    so_far = approved_days_so_far(db, employee_id=leave.employee_id, month_year=month_year)
    paid_days, unpaid_days, amount = compute_leave_split(
        days=leave.days,
        approved_days_so_far=so_far,
        quota=settings.paid_leave_quota_per_month,
        daily_wage=employee.daily_wage,
        penalty_mode=settings.unpaid_leave_penalty_mode,
    )
    return LeaveDecision(
        leave_id=leave.id,
        employee_id=leave.employee_id,
        month_year=month_year,
        days=leave.days,
        approved_days_so_far=so_far,
        paid_days=paid_days,
        unpaid_days=unpaid_days,
        daily_wage=to_money(employee.daily_wage),
        deduction_amount=amount,
    )


def approve_leave(
    db: Session,
    *,
    decision: LeaveDecision,
    confirmed: bool,
    decided_by: str,
    now_utc: datetime | None = None,
) -> LeaveRequest:
    if decision.requires_confirmation and not confirmed:
        raise state_conflict(
            "UNPAID_LEAVE_CONFIRMATION_REQUIRED",
            f"{decision.unpaid_days} unpaid day(s): {decision.deduction_amount} will be deducted. Confirm to approve.",
        )

    try:
        lock_employee(db, decision.employee_id)
        leave = _get_leave(db, decision.leave_id)
        if leave.employee_id != decision.employee_id or leave.days != decision.days:
            raise state_conflict("DECISION_MISMATCH", "Decision does not belong to this leave request.")
        if leave.status != LeaveStatus.PENDING:
            raise state_conflict("LEAVE_ALREADY_DECIDED", "Leave request has already been decided.")

        current = approved_days_so_far(db, employee_id=decision.employee_id, month_year=decision.month_year)
        if current != decision.approved_days_so_far:
            raise state_conflict(
                "LEAVE_QUOTA_CHANGED",
                "Approved leave for this month changed since the preview. Preview again.",
            )

        result = db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == decision.leave_id,
                LeaveRequest.status == LeaveStatus.PENDING,
            )
            .values(
                status=LeaveStatus.APPROVED,
                unpaid_days=decision.unpaid_days,
                deduction_amount=decision.deduction_amount,
                decided_at=normalize_ts(now_utc),
                decided_by=decided_by,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise state_conflict("LEAVE_ALREADY_DECIDED", "Leave request has already been decided.")

        if decision.unpaid_days > 0 and decision.deduction_amount > 0:
            post_leave_deduction(
                db,
                employee_id=decision.employee_id,
                month_year=decision.month_year,
                amount=decision.deduction_amount,
                leave_id=decision.leave_id,
                created_by=decided_by,
            )
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("leave_approval_failed", extra={"leave_id": decision.leave_id})
        raise

    db.refresh(leave)
    logger.info(
        "leave_approved",
        extra={
            "leave_id": leave.id,
            "employee_id": leave.employee_id,
            "paid_days": decision.paid_days,
            "unpaid_days": decision.unpaid_days,
            "deduction_amount": decision.deduction_amount,
        },
    )

    body = f"Your leave from {leave.start_date:%d %b %Y} to {leave.end_date:%d %b %Y} has been approved."
    if decision.unpaid_days > 0:
        body = f"{body} {decision.unpaid_days} day(s) unpaid; {decision.deduction_amount} deducted."
    notify_employee(
        db,
        employee_id=leave.employee_id,
        title="Leave Approved",
        body=body,
        meta={"type": "leave", "source_id": leave.id},
    )
    return leave


def reject_leave(
    db: Session,
    *,
    leave_id: int,
    decided_by: str,
    now_utc: datetime | None = None,
) -> LeaveRequest:
    leave = _get_leave(db, leave_id)
    result = db.execute(
        update(LeaveRequest)
        .where(
            LeaveRequest.id == leave_id,
            LeaveRequest.status == LeaveStatus.PENDING,
        )
        .values(
            status=LeaveStatus.REJECTED,
            decided_at=normalize_ts(now_utc),
            decided_by=decided_by,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise state_conflict("LEAVE_ALREADY_DECIDED", "Leave request has already been decided.")
    db.commit()
    db.refresh(leave)

    logger.info("leave_rejected", extra={"leave_id": leave.id, "employee_id": leave.employee_id})
    notify_employee(
        db,
        employee_id=leave.employee_id,
        title="Leave Rejected",
        body=f"Your leave from {leave.start_date:%d %b %Y} to {leave.end_date:%d %b %Y} has been rejected.",
        meta={"type": "leave", "source_id": leave.id},
    )
    return leave
