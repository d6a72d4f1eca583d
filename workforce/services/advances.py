from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from workforce.errors import ApiError, not_found, state_conflict, validation_error
from workforce.models import AdvanceRequest, AdvanceStatus, Employee
from workforce.services.clock import local_today, normalize_ts
from workforce.services.ledger import month_bucket, post_advance_debit, to_money
from workforce.services.notifications import notify_employee

logger = logging.getLogger("workforce.advances")


def create_advance_request(
    db: Session,
    *,
    employee_id: int,
    amount: Decimal | int | str,
    reason: str | None,
) -> AdvanceRequest:
    if db.get(Employee, employee_id) is None:
        raise not_found("EMPLOYEE_NOT_FOUND", "Employee not found.")
    normalized_amount = to_money(amount)
    if normalized_amount <= 0:
        raise validation_error("INVALID_AMOUNT", "Advance amount must be positive.")

    advance = AdvanceRequest(
        employee_id=employee_id,
        amount=normalized_amount,
        reason=(reason or "").strip() or None,
        status=AdvanceStatus.PENDING,
    )
    db.add(advance)
    db.commit()
    db.refresh(advance)
    logger.info(
        "advance_requested",
        extra={"employee_id": employee_id, "advance_id": advance.id, "amount": normalized_amount},
    )
    return advance


def list_advance_requests(
    db: Session,
    *,
    employee_id: int | None = None,
    status: AdvanceStatus | None = None,
) -> list[AdvanceRequest]:
    stmt = select(AdvanceRequest).order_by(AdvanceRequest.created_at.desc(), AdvanceRequest.id.desc())
    if employee_id is not None:
        stmt = stmt.where(AdvanceRequest.employee_id == employee_id)
    if status is not None:
        stmt = stmt.where(AdvanceRequest.status == status)
    return list(db.scalars(stmt).all())


def _get_advance(db: Session, advance_id: int) -> AdvanceRequest:
    advance = db.get(AdvanceRequest, advance_id)
    if advance is None:
        raise not_found("ADVANCE_NOT_FOUND", "Advance request not found.")
    return advance


def _decide(db: Session, *, advance_id: int, status: AdvanceStatus, decided_by: str, now: datetime) -> None:
    result = db.execute(
        update(AdvanceRequest)
        .where(
            AdvanceRequest.id == advance_id,
            AdvanceRequest.status == AdvanceStatus.PENDING,
        )
        .values(status=status, decided_at=now, decided_by=decided_by)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise state_conflict("ADVANCE_ALREADY_DECIDED", "Advance request has already been decided.")


def approve_advance(
    db: Session,
    *,
    advance_id: int,
    decided_by: str,
    now_utc: datetime | None = None,
) -> AdvanceRequest:
    """Approve a pending advance and debit it in the current month."""
    now = normalize_ts(now_utc)
    advance = _get_advance(db, advance_id)
    try:
        _decide(db, advance_id=advance_id, status=AdvanceStatus.APPROVED, decided_by=decided_by, now=now)
        posting = post_advance_debit(
            db,
            employee_id=advance.employee_id,
            amount=advance.amount,
            month_year=month_bucket(local_today(now)),
            advance_id=advance.id,
            created_by=decided_by,
        )
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("advance_approval_failed", extra={"advance_id": advance_id})
        raise

    db.refresh(advance)
    logger.info(
        "advance_approved",
        extra={
            "advance_id": advance.id,
            "employee_id": advance.employee_id,
            "amount": advance.amount,
            "entry_id": posting.entry.id,
        },
    )
    notify_employee(
        db,
        employee_id=advance.employee_id,
        title="Advance Approved",
        body=f"{advance.amount} advance has been approved and debited.",
        meta={"type": "advance", "source_id": advance.id},
    )
    return advance


def reject_advance(
    db: Session,
    *,
    advance_id: int,
    decided_by: str,
    now_utc: datetime | None = None,
) -> AdvanceRequest:
    advance = _get_advance(db, advance_id)
    try:
        _decide(
            db,
            advance_id=advance_id,
            status=AdvanceStatus.REJECTED,
            decided_by=decided_by,
            now=normalize_ts(now_utc),
        )
        db.commit()
    except ApiError:
        db.rollback()
        raise

    db.refresh(advance)
    logger.info("advance_rejected", extra={"advance_id": advance.id, "employee_id": advance.employee_id})
    notify_employee(
        db,
        employee_id=advance.employee_id,
        title="Advance Rejected",
        body=f"Your advance request of {advance.amount} has been rejected.",
        meta={"type": "advance", "source_id": advance.id},
    )
    return advance
