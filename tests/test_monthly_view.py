from __future__ import annotations

import unittest
from datetime import date

from tests.support import SITE_ID, local_dt, make_session_factory, seed_employee
from workforce.errors import ApiError
from workforce.services.attendance import check_in, check_out
from workforce.services.day_status import DayStatus
from workforce.services.holidays import create_holidays, delete_holiday, holiday_dates_between, list_holidays
from workforce.services.leaves import approve_leave, create_leave_request, preview_leave_decision
from workforce.services.monthly import build_employee_month


class HolidayServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_bulk_create_skips_existing_dates(self) -> None:
        created = create_holidays(self.db, holiday_dates=[date(2026, 3, 4)], description="Holi")
        self.assertEqual(len(created), 1)

        created = create_holidays(
            self.db,
            holiday_dates=[date(2026, 3, 4), date(2026, 3, 21), date(2026, 3, 21)],
            description="Festival",
        )
        self.assertEqual([item.holiday_date for item in created], [date(2026, 3, 21)])
        self.assertEqual(
            holiday_dates_between(self.db, start=date(2026, 3, 1), end=date(2026, 3, 31)),
            {date(2026, 3, 4), date(2026, 3, 21)},
        )

    def test_list_by_month_and_delete(self) -> None:
        create_holidays(self.db, holiday_dates=[date(2026, 3, 4), date(2026, 4, 14)], description=None)
        march = list_holidays(self.db, year=2026, month=3)
        self.assertEqual([item.holiday_date for item in march], [date(2026, 3, 4)])
        self.assertEqual(len(list_holidays(self.db, year=2026)), 2)

        holiday_id = march[0].id
        delete_holiday(self.db, holiday_id)
        self.assertEqual(list_holidays(self.db, year=2026, month=3), [])
        with self.assertRaises(ApiError) as exc:
            delete_holiday(self.db, holiday_id)
        self.assertEqual(exc.exception.code, "HOLIDAY_NOT_FOUND")

    def test_empty_bulk_create_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as exc:
            create_holidays(self.db, holiday_dates=[], description=None)
        self.assertEqual(exc.exception.code, "MISSING_DATES")


class EmployeeMonthTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        seed_employee(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_month_view_combines_holidays_leaves_and_attendance(self) -> None:
        create_holidays(self.db, holiday_dates=[date(2026, 3, 4)], description="Holi")
        leave = create_leave_request(
            self.db,
            employee_id=1,
            start_date=date(2026, 3, 3),
            end_date=date(2026, 3, 5),
            reason=None,
        )
        approve_leave(
            self.db,
            decision=preview_leave_decision(self.db, leave_id=leave.id),
            confirmed=True,
            decided_by="ops",
        )
        check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 2, 9, 0))
        check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 2, 18, 0))

        view = build_employee_month(self.db, employee_id=1, year=2026, month=3, today=date(2026, 3, 6))
        statuses = dict(view.days)

        self.assertEqual(statuses[date(2026, 3, 1)], DayStatus.ABSENT)
        self.assertEqual(statuses[date(2026, 3, 2)], DayStatus.PRESENT)
        self.assertEqual(statuses[date(2026, 3, 3)], DayStatus.LEAVE)
        self.assertEqual(statuses[date(2026, 3, 4)], DayStatus.HOLIDAY)
        self.assertEqual(statuses[date(2026, 3, 6)], DayStatus.PENDING)
        self.assertEqual(statuses[date(2026, 3, 7)], DayStatus.FUTURE)
        self.assertEqual(view.summary.present, 1)
        self.assertEqual(view.summary.leave, 3)
        self.assertEqual(view.summary.total_days, 6)

    def test_pending_leave_does_not_mark_days(self) -> None:
        create_leave_request(
            self.db,
            employee_id=1,
            start_date=date(2026, 3, 3),
            end_date=date(2026, 3, 3),
            reason=None,
        )
        view = build_employee_month(self.db, employee_id=1, year=2026, month=3, today=date(2026, 3, 6))
        self.assertEqual(dict(view.days)[date(2026, 3, 3)], DayStatus.ABSENT)

    def test_unknown_employee_is_not_found(self) -> None:
        with self.assertRaises(ApiError) as exc:
            build_employee_month(self.db, employee_id=77, year=2026, month=3, today=date(2026, 3, 6))
        self.assertEqual(exc.exception.code, "EMPLOYEE_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
