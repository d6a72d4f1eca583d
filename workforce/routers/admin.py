from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from workforce.audit import record_audit
from workforce.db import get_db
from workforce.errors import state_conflict
from workforce.models import AdvanceStatus, AuditActorType, LeaveStatus
from workforce.routers.attendance import employee_month_response, ledger_month_response
from workforce.schemas import (
    AdvanceRead,
    EmployeeMonthResponse,
    HolidayCreate,
    HolidayRead,
    LeaveApproveRequest,
    LeaveDecisionRead,
    LeaveRead,
    LedgerEntryRead,
    LedgerMonthResponse,
    ManualLedgerEntryCreate,
    SettleRequest,
)
from workforce.security import require_admin
from workforce.services.advances import approve_advance, list_advance_requests, reject_advance
from workforce.services.clock import local_today
from workforce.services.holidays import create_holidays, delete_holiday, list_holidays
from workforce.services.leaves import (
    approve_leave,
    list_leave_requests,
    preview_leave_decision,
    reject_leave,
)
from workforce.services.ledger import post_manual_entry, settle_balance
from workforce.services.monthly import build_employee_month

router = APIRouter(tags=["admin"])


def _audit_admin(
    db: Session,
    request: Request,
    *,
    admin_user: str,
    action: str,
    entity_type: str,
    entity_id: str | int | None,
    details: dict[str, Any] | None = None,
) -> None:
    record_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin_user,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        request=request,
    )


@router.get("/api/admin/leaves", response_model=list[LeaveRead])
def admin_list_leaves(
    employee_id: int | None = Query(default=None, ge=1),
    status_filter: LeaveStatus | None = Query(default=None, alias="status"),
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    _: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[LeaveRead]:
    return list_leave_requests(db, employee_id=employee_id, status=status_filter, year=year, month=month)


@router.post("/api/admin/leaves/{leave_id}/preview", response_model=LeaveDecisionRead)
def admin_preview_leave(
    leave_id: int,
    _: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> LeaveDecisionRead:
    return LeaveDecisionRead.model_validate(preview_leave_decision(db, leave_id=leave_id))


@router.post("/api/admin/leaves/{leave_id}/approve", response_model=LeaveRead)
def admin_approve_leave(
    leave_id: int,
    payload: LeaveApproveRequest,
    request: Request,
    admin_user: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> LeaveRead:
    decision = preview_leave_decision(db, leave_id=leave_id)
    # A confirmation commits only the numbers the approver was shown.
    if payload.confirmed and (
        payload.approved_days_so_far != decision.approved_days_so_far
        or payload.deduction_amount != decision.deduction_amount
    ):
        raise state_conflict(
            "LEAVE_QUOTA_CHANGED",
            "Approved leave for this month changed since the preview. Preview again.",
        )

    leave = approve_leave(db, decision=decision, confirmed=payload.confirmed, decided_by=admin_user)
    _audit_admin(
        db,
        request,
        admin_user=admin_user,
        action="LEAVE_APPROVED",
        entity_type="leave_request",
        entity_id=leave.id,
        details={
            "employee_id": leave.employee_id,
            "days": leave.days,
            "unpaid_days": decision.unpaid_days,
            "deduction_amount": str(decision.deduction_amount),
        },
    )
    return leave


@router.post("/api/admin/leaves/{leave_id}/reject", response_model=LeaveRead)
def admin_reject_leave(
    leave_id: int,
    request: Request,
    admin_user: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> LeaveRead:
    leave = reject_leave(db, leave_id=leave_id, decided_by=admin_user)
    _audit_admin(
        db,
        request,
        admin_user=admin_user,
        action="LEAVE_REJECTED",
        entity_type="leave_request",
        entity_id=leave.id,
        details={"employee_id": leave.employee_id},
    )
    return leave


@router.get("/api/admin/holidays", response_model=list[HolidayRead])
def admin_list_holidays(
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    _: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[HolidayRead]:
    return list_holidays(db, year=year, month=month)


@router.post("/api/admin/holidays", response_model=list[HolidayRead], status_code=status.HTTP_201_CREATED)
def admin_create_holidays(
    payload: HolidayCreate,
    request: Request,
    admin_user: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[HolidayRead]:
    created = create_holidays(db, holiday_dates=payload.dates, description=payload.description)
    _audit_admin(
        db,
        request,
        admin_user=admin_user,
        action="HOLIDAYS_CREATED",
        entity_type="holiday",
        entity_id=None,
        details={"dates": [item.holiday_date.isoformat() for item in created]},
    )
    return created


@router.delete("/api/admin/holidays/{holiday_id}")
def admin_delete_holiday(
    holiday_id: int,
    request: Request,
    admin_user: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    delete_holiday(db, holiday_id)
    _audit_admin(
        db,
        request,
        admin_user=admin_user,
        action="HOLIDAY_DELETED",
        entity_type="holiday",
        entity_id=holiday_id,
    )
    return {"ok": True}


@router.get("/api/admin/ledger", response_model=LedgerMonthResponse)
def admin_employee_ledger(
    employee_id: int = Query(ge=1),
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    _: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> LedgerMonthResponse:
    return ledger_month_response(db, employee_id=employee_id, year=year, month=month)


@router.post("/api/admin/ledger/entries", response_model=LedgerEntryRead, status_code=status.HTTP_201_CREATED)
def admin_post_ledger_entry(
    payload: ManualLedgerEntryCreate,
    request: Request,
    admin_user: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> LedgerEntryRead:
    entry = post_manual_entry(
        db,
        employee_id=payload.employee_id,
        amount=payload.amount,
        entry_type=payload.type,
        reason=payload.reason,
        month_year=payload.month_year,
        created_by=admin_user,
    )
    _audit_admin(
        db,
        request,
        admin_user=admin_user,
        action="LEDGER_MANUAL_ENTRY",
        entity_type="ledger_entry",
        entity_id=entry.id,
        details={"employee_id": entry.employee_id, "type": entry.type.value, "amount": str(entry.amount)},
    )
    return entry


@router.post("/api/admin/ledger/settle", response_model=LedgerEntryRead)
def admin_settle_ledger(
    payload: SettleRequest,
    request: Request,
    admin_user: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> LedgerEntryRead:
    month_year = local_today().replace(year=payload.year, month=payload.month, day=1)
    entry = settle_balance(db, employee_id=payload.employee_id, month_year=month_year, settled_by=admin_user)
    _audit_admin(
        db,
        request,
        admin_user=admin_user,
        action="LEDGER_SETTLED",
        entity_type="ledger_entry",
        entity_id=entry.id,
        details={"employee_id": entry.employee_id, "month_year": month_year.isoformat(), "amount": str(entry.amount)},
    )
    return entry


@router.get("/api/admin/advances", response_model=list[AdvanceRead])
def admin_list_advances(
    employee_id: int | None = Query(default=None, ge=1),
    status_filter: AdvanceStatus | None = Query(default=None, alias="status"),
    _: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[AdvanceRead]:
    return list_advance_requests(db, employee_id=employee_id, status=status_filter)


@router.post("/api/admin/advances/{advance_id}/approve", response_model=AdvanceRead)
def admin_approve_advance(
    advance_id: int,
    request: Request,
    admin_user: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AdvanceRead:
    advance = approve_advance(db, advance_id=advance_id, decided_by=admin_user)
    _audit_admin(
        db,
        request,
        admin_user=admin_user,
        action="ADVANCE_APPROVED",
        entity_type="advance_request",
        entity_id=advance.id,
        details={"employee_id": advance.employee_id, "amount": str(advance.amount)},
    )
    return advance


@router.post("/api/admin/advances/{advance_id}/reject", response_model=AdvanceRead)
def admin_reject_advance(
    advance_id: int,
    request: Request,
    admin_user: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AdvanceRead:
    advance = reject_advance(db, advance_id=advance_id, decided_by=admin_user)
    _audit_admin(
        db,
        request,
        admin_user=admin_user,
        action="ADVANCE_REJECTED",
        entity_type="advance_request",
        entity_id=advance.id,
        details={"employee_id": advance.employee_id},
    )
    return advance


@router.get("/api/admin/employees/{employee_id}/calendar", response_model=EmployeeMonthResponse)
def admin_employee_calendar(
    employee_id: int,
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    _: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EmployeeMonthResponse:
    today = local_today()
    month_view = build_employee_month(
        db,
        employee_id=employee_id,
        year=year or today.year,
        month=month or today.month,
        today=today,
    )
    return employee_month_response(month_view)
