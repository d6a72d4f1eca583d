from __future__ import annotations

import unittest

from workforce.errors import ApiError, validation_error
from workforce.services.attendance import ScanCooldownGate


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class ScanCooldownGateTests(unittest.TestCase):
    def test_key_is_busy_while_in_flight_and_during_cooldown(self) -> None:
        clock = _FakeClock()
        gate = ScanCooldownGate(3.0, clock=clock)

        self.assertTrue(gate.acquire("emp-1:phone"))
        self.assertFalse(gate.acquire("emp-1:phone"))
        self.assertTrue(gate.acquire("emp-2:phone"))

        gate.release("emp-1:phone")
        clock.now += 2.9
        self.assertTrue(gate.is_busy("emp-1:phone"))
        self.assertFalse(gate.acquire("emp-1:phone"))

        clock.now += 0.2
        self.assertFalse(gate.is_busy("emp-1:phone"))
        self.assertTrue(gate.acquire("emp-1:phone"))

    def test_hold_raises_scan_in_progress_when_busy(self) -> None:
        gate = ScanCooldownGate(3.0, clock=_FakeClock())
        self.assertTrue(gate.acquire("emp-1:phone"))

        with self.assertRaises(ApiError) as exc:
            with gate.hold("emp-1:phone"):
                pass
        self.assertEqual(exc.exception.code, "SCAN_IN_PROGRESS")
        self.assertEqual(exc.exception.status_code, 409)

    def test_invalid_token_releases_without_cooldown(self) -> None:
        gate = ScanCooldownGate(3.0, clock=_FakeClock())

        with self.assertRaises(ApiError):
            with gate.hold("emp-1:phone"):
                raise validation_error("INVALID_TOKEN", "bad")

        self.assertFalse(gate.is_busy("emp-1:phone"))

    def test_other_failures_still_start_cooldown(self) -> None:
        gate = ScanCooldownGate(3.0, clock=_FakeClock())

        with self.assertRaises(RuntimeError):
            with gate.hold("emp-1:phone"):
                raise RuntimeError("db down")

        self.assertTrue(gate.is_busy("emp-1:phone"))

    def test_expired_cooldowns_are_forgotten(self) -> None:
        clock = _FakeClock()
        gate = ScanCooldownGate(3.0, clock=clock)
        for index in range(1000):
            with gate.hold(f"emp-1:session-{index}"):
                pass
        self.assertEqual(len(gate._cooldown_until), 1000)

        clock.now += 10_000
        with gate.hold("emp-1:fresh"):
            pass

        self.assertEqual(list(gate._cooldown_until), ["emp-1:fresh"])
        self.assertFalse(gate.is_busy("emp-1:session-0"))

    def test_zero_cooldown_only_guards_in_flight(self) -> None:
        gate = ScanCooldownGate(0, clock=_FakeClock())
        with gate.hold("emp-1:phone"):
            self.assertTrue(gate.is_busy("emp-1:phone"))
        self.assertFalse(gate.is_busy("emp-1:phone"))


if __name__ == "__main__":
    unittest.main()
