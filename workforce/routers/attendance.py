from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from workforce.audit import record_audit
from workforce.db import get_db
from workforce.models import AuditActorType
from workforce.schemas import (
    AdvanceCreate,
    AdvanceRead,
    AttendanceActionResponse,
    AttendanceCheckoutRequest,
    AttendanceRecordRead,
    AttendanceScanRequest,
    AttendanceTodayResponse,
    CalendarDayRead,
    EmployeeMonthResponse,
    LeaveCreate,
    LeaveRead,
    LedgerEntryRead,
    LedgerMonthResponse,
    MonthSummaryRead,
    NotificationRead,
)
from workforce.security import require_employee
from workforce.services.advances import create_advance_request, list_advance_requests
from workforce.services.attendance import (
    ScanOutcome,
    check_out,
    get_scan_gate,
    get_today_attendance,
    process_scan,
)
from workforce.services.clock import local_today
from workforce.services.leaves import create_leave_request, list_leave_requests
from workforce.services.ledger import get_month_totals, list_entries
from workforce.services.monthly import EmployeeMonth, build_employee_month
from workforce.services.notifications import list_notifications

router = APIRouter(tags=["attendance"])


def _action_response(outcome: ScanOutcome) -> AttendanceActionResponse:
    wage_posting = outcome.wage_posting
    return AttendanceActionResponse(
        action=outcome.action,
        record=AttendanceRecordRead.model_validate(outcome.record) if outcome.record is not None else None,
        wage_entry=LedgerEntryRead.model_validate(wage_posting.entry) if wage_posting is not None else None,
        wage_credited=bool(wage_posting is not None and wage_posting.is_new),
    )


def employee_month_response(month_view: EmployeeMonth) -> EmployeeMonthResponse:
    return EmployeeMonthResponse(
        employee_id=month_view.employee_id,
        year=month_view.year,
        month=month_view.month,
        days=[CalendarDayRead(day=day, status=day_status) for day, day_status in month_view.days],
        summary=MonthSummaryRead.model_validate(month_view.summary),
    )


def ledger_month_response(db: Session, *, employee_id: int, year: int | None, month: int | None) -> LedgerMonthResponse:
    today = local_today()
    month_year = today.replace(year=year or today.year, month=month or today.month, day=1)
    totals = get_month_totals(db, employee_id=employee_id, month_year=month_year)
    entries = list_entries(db, employee_id=employee_id, month_year=month_year)
    return LedgerMonthResponse(
        employee_id=employee_id,
        month_year=month_year,
        credits=totals.credits,
        debits=totals.debits,
        balance=totals.balance,
        entries=[LedgerEntryRead.model_validate(entry) for entry in entries],
    )


@router.post("/api/attendance/scan", response_model=AttendanceActionResponse)
def scan_site_qr(
    payload: AttendanceScanRequest,
    request: Request,
    employee_id: int = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceActionResponse:
    session_key = (payload.device_session or "").strip() or "default"
    with get_scan_gate().hold(f"{employee_id}:{session_key}"):
        outcome = process_scan(db, employee_id=employee_id, token=payload.token)

    if outcome.record is not None:
        record_audit(
            db,
            actor_type=AuditActorType.EMPLOYEE,
            actor_id=str(employee_id),
            action=f"ATTENDANCE_{outcome.action}",
            entity_type="attendance_record",
            entity_id=outcome.record.id,
            details={"site_id": outcome.record.site_id},
            request=request,
        )
    return _action_response(outcome)


@router.post("/api/attendance/checkout", response_model=AttendanceActionResponse)
def checkout(
    payload: AttendanceCheckoutRequest,
    request: Request,
    employee_id: int = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceActionResponse:
    outcome = check_out(db, employee_id=employee_id, remarks=payload.remarks)
    record_audit(
        db,
        actor_type=AuditActorType.EMPLOYEE,
        actor_id=str(employee_id),
        action="ATTENDANCE_CHECKED_OUT",
        entity_type="attendance_record",
        entity_id=outcome.record.id if outcome.record is not None else None,
        request=request,
    )
    return _action_response(outcome)


@router.get("/api/attendance/today", response_model=AttendanceTodayResponse)
def attendance_today(
    employee_id: int = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AttendanceTodayResponse:
    record, state = get_today_attendance(db, employee_id=employee_id)
    return AttendanceTodayResponse(
        state=state,
        record=AttendanceRecordRead.model_validate(record) if record is not None else None,
    )


@router.get("/api/attendance/calendar", response_model=EmployeeMonthResponse)
def attendance_calendar(
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    employee_id: int = Depends(require_employee),
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


@router.post("/api/leaves", response_model=LeaveRead, status_code=status.HTTP_201_CREATED)
def request_leave(
    payload: LeaveCreate,
    employee_id: int = Depends(require_employee),
    db: Session = Depends(get_db),
) -> LeaveRead:
    return create_leave_request(
        db,
        employee_id=employee_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
    )


@router.get("/api/leaves", response_model=list[LeaveRead])
def my_leaves(
    employee_id: int = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[LeaveRead]:
    return list_leave_requests(db, employee_id=employee_id)


@router.get("/api/ledger", response_model=LedgerMonthResponse)
def my_ledger(
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    employee_id: int = Depends(require_employee),
    db: Session = Depends(get_db),
) -> LedgerMonthResponse:
    return ledger_month_response(db, employee_id=employee_id, year=year, month=month)


@router.post("/api/advances", response_model=AdvanceRead, status_code=status.HTTP_201_CREATED)
def request_advance(
    payload: AdvanceCreate,
    employee_id: int = Depends(require_employee),
    db: Session = Depends(get_db),
) -> AdvanceRead:
    return create_advance_request(db, employee_id=employee_id, amount=payload.amount, reason=payload.reason)


@router.get("/api/advances", response_model=list[AdvanceRead])
def my_advances(
    employee_id: int = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[AdvanceRead]:
    return list_advance_requests(db, employee_id=employee_id)


@router.get("/api/notifications", response_model=list[NotificationRead])
def my_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    employee_id: int = Depends(require_employee),
    db: Session = Depends(get_db),
) -> list[NotificationRead]:
    return list_notifications(db, employee_id=employee_id, limit=limit)
