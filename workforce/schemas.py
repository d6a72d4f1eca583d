from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from workforce.models import AdvanceStatus, AttendanceType, LeaveStatus, LedgerEntryType
from workforce.services.day_status import DayStatus


class AttendanceScanRequest(BaseModel):
    token: str = Field(min_length=1, max_length=512)
    device_session: str | None = Field(default=None, max_length=255)


class AttendanceCheckoutRequest(BaseModel):
    remarks: str | None = Field(default=None, max_length=1000)


class AttendanceRecordRead(BaseModel):
    id: int
    employee_id: int
    site_id: str | None
    day: date
    checkin_at: datetime | None
    checkout_at: datetime | None
    attendance_type: AttendanceType | None
    remarks: str | None

    model_config = ConfigDict(from_attributes=True)


class LedgerEntryRead(BaseModel):
    id: int
    employee_id: int
    amount: Decimal
    type: LedgerEntryType
    reason: str
    month_year: date
    source_type: str | None = None
    source_id: str | None = None
    created_by: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttendanceActionResponse(BaseModel):
    action: str
    record: AttendanceRecordRead | None = None
    wage_entry: LedgerEntryRead | None = None
    wage_credited: bool = False


class AttendanceTodayResponse(BaseModel):
    state: str
    record: AttendanceRecordRead | None = None


class CalendarDayRead(BaseModel):
    day: date
    status: DayStatus


class MonthSummaryRead(BaseModel):
    present: int
    half: int
    leave: int
    absent: int
    pending: int
    holiday: int
    total_days: int

    model_config = ConfigDict(from_attributes=True)


class EmployeeMonthResponse(BaseModel):
    employee_id: int
    year: int
    month: int
    days: list[CalendarDayRead]
    summary: MonthSummaryRead


class LeaveCreate(BaseModel):
    start_date: date
    end_date: date
    reason: str | None = Field(default=None, max_length=1000)


class LeaveRead(BaseModel):
    id: int
    employee_id: int
    start_date: date
    end_date: date
    days: int
    status: LeaveStatus
    reason: str | None
    unpaid_days: int | None = None
    deduction_amount: Decimal | None = None
    decided_at: datetime | None = None
    decided_by: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LeaveDecisionRead(BaseModel):
    leave_id: int
    employee_id: int
    month_year: date
    days: int
    approved_days_so_far: int
    paid_days: int
    unpaid_days: int
    daily_wage: Decimal
    deduction_amount: Decimal
    requires_confirmation: bool

    model_config = ConfigDict(from_attributes=True)


class LeaveApproveRequest(BaseModel):
    confirmed: bool = False
    # Echo of the preview the approver was shown.
    approved_days_so_far: int | None = Field(default=None, ge=0)
    deduction_amount: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _require_preview_echo(self) -> "LeaveApproveRequest":
        if self.confirmed and (self.approved_days_so_far is None or self.deduction_amount is None):
            raise ValueError("Confirmed approvals must echo approved_days_so_far and deduction_amount from the preview.")
        return self


class HolidayCreate(BaseModel):
    dates: list[date] = Field(min_length=1)
    description: str | None = Field(default=None, max_length=255)


class HolidayRead(BaseModel):
    id: int
    holiday_date: date
    description: str | None

    model_config = ConfigDict(from_attributes=True)


class ManualLedgerEntryCreate(BaseModel):
    employee_id: int = Field(ge=1)
    amount: Decimal
    type: LedgerEntryType
    reason: str | None = Field(default=None, max_length=255)
    month_year: date | None = None


class SettleRequest(BaseModel):
    employee_id: int = Field(ge=1)
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


class LedgerMonthResponse(BaseModel):
    employee_id: int
    month_year: date
    credits: Decimal
    debits: Decimal
    balance: Decimal
    entries: list[LedgerEntryRead]


class AdvanceCreate(BaseModel):
    amount: Decimal
    reason: str | None = Field(default=None, max_length=1000)


class AdvanceRead(BaseModel):
    id: int
    employee_id: int
    amount: Decimal
    reason: str | None
    status: AdvanceStatus
    decided_at: datetime | None = None
    decided_by: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationRead(BaseModel):
    id: int
    title: str
    body: str
    meta: dict[str, Any] = Field(default_factory=dict)
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
