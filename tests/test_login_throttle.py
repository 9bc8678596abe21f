from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from pms.security.login_throttle import InMemoryLoginAttemptStore, LoginThrottle

START = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


class LoginThrottleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryLoginAttemptStore()
        self.throttle = LoginThrottle(self.store, max_attempts=5, lockout=timedelta(minutes=15))

    def test_fifth_attempt_locks_identifier(self) -> None:
        decisions = [
            self.throttle.register_attempt('user@example.com', now=START + timedelta(seconds=i)) for i in range(5)
        ]

        self.assertTrue(all(decision.allowed for decision in decisions[:4]))
        self.assertFalse(decisions[4].allowed)
        self.assertEqual(decisions[4].retry_after_seconds, 900)
        self.assertEqual(decisions[4].retry_after_minutes, 15)

    def test_lock_holds_until_lockout_passes(self) -> None:
        for i in range(5):
            self.throttle.register_attempt('user@example.com', now=START)

        during = self.throttle.register_attempt('user@example.com', now=START + timedelta(minutes=10))
        self.assertFalse(during.allowed)
        self.assertEqual(during.retry_after_minutes, 5)

        after = self.throttle.register_attempt('user@example.com', now=START + timedelta(minutes=16))
        self.assertTrue(after.allowed)
        self.assertEqual(after.attempts, 1)

    def test_identifiers_are_case_insensitive_and_independent(self) -> None:
        for _ in range(4):
            self.throttle.register_attempt('User@Example.com', now=START)

        self.assertFalse(self.throttle.register_attempt('user@example.com', now=START).allowed)
        self.assertTrue(self.throttle.register_attempt('other@example.com', now=START).allowed)

    def test_attempts_outside_window_are_forgotten(self) -> None:
        for _ in range(4):
            self.throttle.register_attempt('user@example.com', now=START)

        decision = self.throttle.register_attempt('user@example.com', now=START + timedelta(minutes=20))

        self.assertTrue(decision.allowed)
        self.assertEqual(decision.attempts, 1)

    def test_reset_clears_history(self) -> None:
        for _ in range(4):
            self.throttle.register_attempt('user@example.com', now=START)
        self.throttle.reset('USER@example.com')

        self.assertIsNone(self.store.get('user@example.com'))
        self.assertTrue(self.throttle.register_attempt('user@example.com', now=START).allowed)

    def test_rejects_non_positive_limit(self) -> None:
        with self.assertRaises(ValueError):
            LoginThrottle(self.store, max_attempts=0)


if __name__ == '__main__':
    unittest.main()
