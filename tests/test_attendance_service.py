from __future__ import annotations

import unittest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import select

from tests.support import SITE_ID, local_dt, make_session_factory, seed_employee
from workforce.errors import ApiError
from workforce.models import AttendanceRecord, AttendanceType, LedgerEntry, Notification
from workforce.services.attendance import (
    ACTION_CHECKED_IN,
    ACTION_CHECKED_OUT,
    ACTION_CHECKIN_CLOSED,
    STATE_CHECKED_IN,
    STATE_CHECKED_OUT,
    STATE_NO_RECORD,
    check_in,
    check_out,
    decode_site_token,
    get_today_attendance,
    process_scan,
)


class SiteTokenTests(unittest.TestCase):
    def test_bare_uuid_and_json_payload_decode_to_same_site(self) -> None:
        self.assertEqual(decode_site_token(SITE_ID.upper()), SITE_ID)
        self.assertEqual(decode_site_token(f'{{"site_id": "{SITE_ID}"}}'), SITE_ID)

    def test_malformed_tokens_are_rejected(self) -> None:
        for raw in ("", "   ", "HQ-GATE", '{"site": "x"}', "{broken", '{"site_id": 12}', None):
            with self.assertRaises(ApiError) as exc:
                decode_site_token(raw)
            self.assertEqual(exc.exception.code, "INVALID_TOKEN")
            self.assertEqual(exc.exception.status_code, 422)


class AttendanceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.Session = make_session_factory()
        self.db = self.Session()
        self.employee = seed_employee(self.db, daily_wage="500.00")

    def tearDown(self) -> None:
        self.db.close()

    def _ledger(self) -> list[LedgerEntry]:
        return list(self.db.scalars(select(LedgerEntry).order_by(LedgerEntry.id)).all())

    def _records(self) -> list[AttendanceRecord]:
        return list(self.db.scalars(select(AttendanceRecord)).all())

    def test_full_day_credits_daily_wage_once(self) -> None:
        checked_in = process_scan(self.db, employee_id=1, token=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
        self.assertEqual(checked_in.action, ACTION_CHECKED_IN)

        checked_out = process_scan(self.db, employee_id=1, token=SITE_ID, now_utc=local_dt(2026, 3, 9, 18, 0))
        self.assertEqual(checked_out.action, ACTION_CHECKED_OUT)
        self.assertEqual(checked_out.record.attendance_type, AttendanceType.FULL)
        self.assertTrue(checked_out.wage_posting.is_new)

        entries = self._ledger()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].amount, Decimal("500.00"))
        self.assertEqual(entries[0].reason, "Daily Wage (FULL)")
        self.assertEqual(entries[0].month_year.isoformat(), "2026-03-01")

    def test_late_checkin_is_half_day_with_half_wage(self) -> None:
        check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 11, 0))
        outcome = check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 18, 0))

        self.assertEqual(outcome.record.attendance_type, AttendanceType.HALF)
        entries = self._ledger()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].amount, Decimal("250.00"))
        self.assertEqual(entries[0].reason, "Daily Wage (HALF)")

    def test_early_checkout_is_half_day(self) -> None:
        check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
        outcome = check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 13, 0))
        self.assertEqual(outcome.record.attendance_type, AttendanceType.HALF)

    def test_checkin_after_cutoff_is_silent_and_writes_nothing(self) -> None:
        outcome = process_scan(self.db, employee_id=1, token=SITE_ID, now_utc=local_dt(2026, 3, 9, 14, 30))

        self.assertEqual(outcome.action, ACTION_CHECKIN_CLOSED)
        self.assertIsNone(outcome.record)
        self.assertEqual(self._records(), [])
        self.assertEqual(self._ledger(), [])

    def test_invalid_token_leaves_no_partial_state(self) -> None:
        with self.assertRaises(ApiError) as exc:
            process_scan(self.db, employee_id=1, token="not-a-site", now_utc=local_dt(2026, 3, 9, 9, 0))
        self.assertEqual(exc.exception.code, "INVALID_TOKEN")
        self.assertEqual(self._records(), [])

    def test_unknown_site_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as exc:
            process_scan(
                self.db,
                employee_id=1,
                token="00000000-0000-4000-8000-000000000000",
                now_utc=local_dt(2026, 3, 9, 9, 0),
            )
        self.assertEqual(exc.exception.code, "SITE_NOT_FOUND")
        self.assertEqual(self._records(), [])

    def test_checkout_without_checkin_mutates_nothing(self) -> None:
        with self.assertRaises(ApiError) as exc:
            check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 18, 0))

        self.assertEqual(exc.exception.code, "CHECKIN_REQUIRED")
        self.assertEqual(self._records(), [])
        self.assertEqual(self._ledger(), [])

    def test_repeated_checkout_never_credits_twice(self) -> None:
        check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
        check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 18, 0))

        with self.assertRaises(ApiError) as exc:
            check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 18, 1))
        self.assertEqual(exc.exception.code, "ALREADY_COMPLETED")

        with self.assertRaises(ApiError) as exc:
            process_scan(self.db, employee_id=1, token=SITE_ID, now_utc=local_dt(2026, 3, 9, 18, 2))
        self.assertEqual(exc.exception.code, "ALREADY_COMPLETED")

        self.assertEqual(len(self._ledger()), 1)

    def test_second_checkin_same_day_conflicts(self) -> None:
        check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
        with self.assertRaises(ApiError) as exc:
            check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 5))
        self.assertEqual(exc.exception.code, "ALREADY_CHECKED_IN")
        self.assertEqual(len(self._records()), 1)

    def test_checkout_inside_double_scan_window_is_rejected(self) -> None:
        checkin_at = local_dt(2026, 3, 9, 9, 0)
        check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=checkin_at)

        with self.assertRaises(ApiError) as exc:
            check_out(self.db, employee_id=1, now_utc=checkin_at + timedelta(seconds=20))
        self.assertEqual(exc.exception.code, "CHECKOUT_TOO_SOON")

        record = self._records()[0]
        self.assertIsNone(record.checkout_at)
        self.assertEqual(self._ledger(), [])

    def test_today_state_follows_record(self) -> None:
        _, state = get_today_attendance(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 8, 0))
        self.assertEqual(state, STATE_NO_RECORD)

        check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
        _, state = get_today_attendance(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 12, 0))
        self.assertEqual(state, STATE_CHECKED_IN)

        check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 18, 0))
        _, state = get_today_attendance(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 19, 0))
        self.assertEqual(state, STATE_CHECKED_OUT)

    def test_inactive_employee_cannot_scan(self) -> None:
        seed_employee(self.db, employee_id=2, is_active=False)
        with self.assertRaises(ApiError) as exc:
            process_scan(self.db, employee_id=2, token=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
        self.assertEqual(exc.exception.status_code, 403)
        self.assertEqual(exc.exception.code, "EMPLOYEE_INACTIVE")

    def test_zero_wage_checkout_posts_nothing(self) -> None:
        seed_employee(self.db, employee_id=3, daily_wage="0.00")
        check_in(self.db, employee_id=3, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
        outcome = check_out(self.db, employee_id=3, now_utc=local_dt(2026, 3, 9, 18, 0))

        self.assertEqual(outcome.record.attendance_type, AttendanceType.FULL)
        self.assertIsNone(outcome.wage_posting)
        self.assertEqual(self._ledger(), [])

    def test_checkout_queues_notification(self) -> None:
        check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
        check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 18, 0))

        notifications = list(self.db.scalars(select(Notification)).all())
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].title, "Checked Out")
        self.assertIn("500.00 credited", notifications[0].body)

    def test_ledger_failure_aborts_checkout(self) -> None:
        check_in(self.db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
        with (
            patch("workforce.services.attendance.credit_daily_wage", side_effect=RuntimeError("ledger down")),
            self.assertLogs("workforce.attendance", level="ERROR"),
            self.assertRaises(RuntimeError),
        ):
            check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 18, 0))

        record = self._records()[0]
        self.db.refresh(record)
        self.assertIsNone(record.checkout_at)
        self.assertIsNone(record.attendance_type)
        self.assertEqual(self._ledger(), [])
        self.assertEqual(list(self.db.scalars(select(Notification)).all()), [])

        retried = check_out(self.db, employee_id=1, now_utc=local_dt(2026, 3, 9, 18, 5))
        self.assertEqual(retried.action, ACTION_CHECKED_OUT)
        self.assertEqual(len(self._ledger()), 1)


if __name__ == "__main__":
    unittest.main()
