from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import select

from tests.support import SITE_ID, local_dt, make_session_factory, seed_employee
from workforce.models import AttendanceRecord, LedgerEntry, Notification
from workforce.services.attendance import check_in, check_out
from workforce.services.notifications import list_notifications, notify_employee
from workforce.settings import Settings


class _FailingCommitDB:
    def __init__(self) -> None:
        self.rolled_back = False

    def add(self, _obj: object) -> None:
        return None

    def commit(self) -> None:
        raise RuntimeError("outbox unavailable")

    def rollback(self) -> None:
        self.rolled_back = True


class NotificationServiceTests(unittest.TestCase):
    def test_dispatch_failure_is_swallowed(self) -> None:
        db = _FailingCommitDB()
        with self.assertLogs("workforce.notifications", level="ERROR") as logs:
            result = notify_employee(db, employee_id=1, title="Checked Out", body="done")  # type: ignore[arg-type]

        self.assertIsNone(result)
        self.assertTrue(db.rolled_back)
        self.assertIn("notification_dispatch_failed", logs.output[0])

    def test_disabled_notifications_write_nothing(self) -> None:
        db = _FailingCommitDB()
        with patch(
            "workforce.services.notifications.get_settings",
            return_value=Settings(notifications_enabled=False),
        ):
            result = notify_employee(db, employee_id=1, title="Checked Out", body="done")  # type: ignore[arg-type]
        self.assertIsNone(result)
        self.assertFalse(db.rolled_back)

    def test_checkout_survives_notification_failure(self) -> None:
        Session = make_session_factory()
        db = Session()
        try:
            seed_employee(db)
            check_in(db, employee_id=1, site_id=SITE_ID, now_utc=local_dt(2026, 3, 9, 9, 0))
            with (
                patch("workforce.services.notifications.Notification", side_effect=RuntimeError("outbox down")),
                self.assertLogs("workforce.notifications", level="ERROR"),
            ):
                outcome = check_out(db, employee_id=1, now_utc=local_dt(2026, 3, 9, 18, 0))
            self.assertTrue(outcome.wage_posting.is_new)

            record = db.scalar(select(AttendanceRecord))
            self.assertIsNotNone(record.checkout_at)
            self.assertEqual(len(list(db.scalars(select(LedgerEntry)).all())), 1)
            self.assertEqual(list(db.scalars(select(Notification)).all()), [])
        finally:
            db.close()

    def test_list_returns_newest_first(self) -> None:
        Session = make_session_factory()
        db = Session()
        try:
            seed_employee(db)
            notify_employee(db, employee_id=1, title="First", body="a")
            notify_employee(db, employee_id=1, title="Second", body="b")

            titles = [item.title for item in list_notifications(db, employee_id=1)]
            self.assertEqual(titles, ["Second", "First"])
            self.assertEqual(list_notifications(db, employee_id=2), [])
        finally:
            db.close()


if __name__ == "__main__":
    unittest.main()
