from datetime import date
import unittest
from types import SimpleNamespace

from workforce.models import AttendanceType
from workforce.services.day_status import DayStatus, day_status, month_calendar, summarize_month


def _record(attendance_type: AttendanceType | None) -> SimpleNamespace:
    return SimpleNamespace(attendance_type=attendance_type)


class DayStatusTests(unittest.TestCase):
    def test_future_day_wins_over_everything(self) -> None:
        status = day_status(
            date(2026, 3, 20),
            today=date(2026, 3, 10),
            holidays={date(2026, 3, 20)},
            approved_leave_ranges=[(date(2026, 3, 19), date(2026, 3, 21))],
            attendance_record=_record(AttendanceType.FULL),
        )
        self.assertEqual(status, DayStatus.FUTURE)

    def test_holiday_outranks_leave_and_attendance(self) -> None:
        status = day_status(
            date(2026, 3, 5),
            today=date(2026, 3, 10),
            holidays={date(2026, 3, 5)},
            approved_leave_ranges=[(date(2026, 3, 4), date(2026, 3, 6))],
            attendance_record=_record(AttendanceType.FULL),
        )
        self.assertEqual(status, DayStatus.HOLIDAY)

    def test_leave_outranks_attendance_and_is_inclusive(self) -> None:
        ranges = [(date(2026, 3, 4), date(2026, 3, 6))]
        for day in (date(2026, 3, 4), date(2026, 3, 6)):
            status = day_status(
                day,
                today=date(2026, 3, 10),
                holidays=set(),
                approved_leave_ranges=ranges,
                attendance_record=_record(AttendanceType.FULL),
            )
            self.assertEqual(status, DayStatus.LEAVE)

    def test_missing_record_is_pending_today_and_absent_before(self) -> None:
        today = date(2026, 3, 10)
        self.assertEqual(
            day_status(today, today=today, holidays=set(), approved_leave_ranges=[], attendance_record=None),
            DayStatus.PENDING,
        )
        self.assertEqual(
            day_status(date(2026, 3, 9), today=today, holidays=set(), approved_leave_ranges=[], attendance_record=None),
            DayStatus.ABSENT,
        )

    def test_record_types_map_to_status(self) -> None:
        today = date(2026, 3, 10)
        cases = {
            AttendanceType.FULL: DayStatus.PRESENT,
            AttendanceType.HALF: DayStatus.HALF,
            AttendanceType.ABSENT: DayStatus.ABSENT,
            None: DayStatus.ABSENT,
        }
        for attendance_type, expected in cases.items():
            status = day_status(
                date(2026, 3, 9),
                today=today,
                holidays=set(),
                approved_leave_ranges=[],
                attendance_record=_record(attendance_type),
            )
            self.assertEqual(status, expected)


class MonthSummaryTests(unittest.TestCase):
    def test_summary_excludes_future_days_and_partitions_range(self) -> None:
        records = {
            date(2026, 3, 2): _record(AttendanceType.FULL),
            date(2026, 3, 3): _record(AttendanceType.HALF),
            date(2026, 3, 12): _record(AttendanceType.FULL),
        }
        summary = summarize_month(
            2026,
            3,
            today=date(2026, 3, 10),
            holidays={date(2026, 3, 1)},
            approved_leave_ranges=[(date(2026, 3, 4), date(2026, 3, 5))],
            records_by_day=records,
        )

        self.assertEqual(summary.present, 1)
        self.assertEqual(summary.half, 1)
        self.assertEqual(summary.holiday, 1)
        self.assertEqual(summary.leave, 3)
        self.assertEqual(summary.pending, 1)
        self.assertEqual(summary.absent, 4)
        self.assertEqual(summary.total_days, 10)
        self.assertEqual(
            summary.present + summary.half + summary.leave + summary.absent + summary.pending,
            summary.total_days,
        )

    def test_month_entirely_in_future_counts_nothing(self) -> None:
        summary = summarize_month(
            2026,
            5,
            today=date(2026, 3, 10),
            holidays=set(),
            approved_leave_ranges=[],
            records_by_day={},
        )
        self.assertEqual(summary.total_days, 0)
        self.assertEqual(summary.absent, 0)

    def test_calendar_covers_whole_month(self) -> None:
        days = month_calendar(
            2026,
            2,
            today=date(2026, 2, 10),
            holidays=set(),
            approved_leave_ranges=[],
            records_by_day={},
        )
        self.assertEqual(len(days), 28)
        self.assertEqual(days[0], (date(2026, 2, 1), DayStatus.ABSENT))
        self.assertEqual(days[9], (date(2026, 2, 10), DayStatus.PENDING))
        self.assertEqual(days[-1], (date(2026, 2, 28), DayStatus.FUTURE))


if __name__ == "__main__":
    unittest.main()
