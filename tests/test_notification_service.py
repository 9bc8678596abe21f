from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from sqlalchemy import select

from db_support import add_batch, add_user, make_session_factory
from pms.config import Settings
from pms.models import ApprovalStatus, AuditLog, BatchStatus, UserRole
from pms.services.notification_service import (
    EmailMessage,
    StubMailer,
    collect_digest_items,
    send_expiry_digest,
    send_with_retry,
    summarize,
)

KOLKATA = ZoneInfo('Asia/Kolkata')
NOW = datetime(2026, 5, 1, 4, 0, tzinfo=timezone.utc)
TODAY = date(2026, 5, 1)


class FlakyMailer:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    def send(self, message: EmailMessage) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError('smtp unavailable')
        return 'msg-1'


class NotificationServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.sleeps: list[float] = []

    def tearDown(self) -> None:
        self.db.close()

    def _message(self) -> EmailMessage:
        return EmailMessage(to='m@example.com', subject='s', html='<p>h</p>', text='t', sender='pms@example.com')

    def test_retry_backs_off_then_succeeds(self) -> None:
        mailer = FlakyMailer(failures=2)

        result = send_with_retry(mailer, self._message(), retries=3, delay_seconds=2.0, sleep=self.sleeps.append)

        self.assertTrue(result.success)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(result.message_id, 'msg-1')
        self.assertEqual(self.sleeps, [2.0, 4.0])

    def test_retry_gives_up_after_last_attempt(self) -> None:
        mailer = FlakyMailer(failures=5)

        result = send_with_retry(mailer, self._message(), retries=3, delay_seconds=1.0, sleep=self.sleeps.append)

        self.assertFalse(result.success)
        self.assertEqual(mailer.calls, 3)
        self.assertEqual(result.error, 'smtp unavailable')
        self.assertEqual(self.sleeps, [1.0, 2.0])
        self.assertEqual(result.attempts, 3)

    def test_single_attempt_does_not_sleep(self) -> None:
        mailer = FlakyMailer(failures=1)

        result = send_with_retry(mailer, self._message(), retries=1, delay_seconds=1.0, sleep=self.sleeps.append)

        self.assertFalse(result.success)
        self.assertEqual((mailer.calls, result.attempts), (1, 1))
        self.assertEqual(self.sleeps, [])

    def test_settings_require_at_least_one_attempt(self) -> None:
        for retries in (0, -1):
            with self.subTest(retries=retries):
                with self.assertRaises(ValidationError):
                    Settings(email_max_retries=retries)
        self.assertEqual(Settings(email_max_retries=1).email_max_retries, 1)

    def test_digest_items_cover_expired_and_next_two_days(self) -> None:
        add_batch(self.db, sku='OLD', base_price='1', quantity=1, expiry_date=TODAY - timedelta(days=1), status=BatchStatus.EXPIRED)
        add_batch(self.db, sku='NOW', base_price='1', quantity=1, expiry_date=TODAY)
        add_batch(self.db, sku='SOON', base_price='1', quantity=1, expiry_date=TODAY + timedelta(days=2))
        add_batch(self.db, sku='LATER', base_price='1', quantity=1, expiry_date=TODAY + timedelta(days=3))

        items = collect_digest_items(self.db, today=TODAY)
        summary = summarize(items)

        self.assertEqual([item.sku for item in items], ['OLD', 'NOW', 'SOON'])
        self.assertEqual(items[2].urgency_label, '2 DAYS LEFT')
        self.assertEqual((summary.expired, summary.expiring_today, summary.expiring_soon), (1, 1, 1))

    def test_digest_is_sent_to_approved_managers_and_audited(self) -> None:
        add_user(self.db, email='boss@example.com', role=UserRole.MANAGER)
        add_user(self.db, email='new@example.com', role=UserRole.MANAGER, approval_status=ApprovalStatus.PENDING)
        add_user(self.db, email='staff@example.com', role=UserRole.STAFF)
        add_batch(self.db, sku='MILK', name='Milk', base_price='1', quantity=3, expiry_date=TODAY)
        mailer = StubMailer()

        result = send_expiry_digest(self.db, mailer=mailer, now=NOW, tz=KOLKATA, sleep=self.sleeps.append)
        self.db.commit()

        self.assertTrue(result.success)
        self.assertEqual((result.recipients, result.sent, result.failed), (1, 1, 0))
        self.assertEqual([message.to for message in mailer.outbox], ['boss@example.com'])
        self.assertIn('Milk', mailer.outbox[0].html)
        self.assertIn('EXPIRES TODAY', mailer.outbox[0].text)
        audit = self.db.execute(select(AuditLog)).scalar_one()
        self.assertEqual(audit.action, 'EXPIRY_DIGEST_STUB_SENT')

    def test_digest_skips_when_nothing_expires(self) -> None:
        add_user(self.db, email='boss@example.com', role=UserRole.MANAGER)
        mailer = StubMailer()

        result = send_expiry_digest(self.db, mailer=mailer, now=NOW, tz=KOLKATA)

        self.assertTrue(result.success)
        self.assertEqual(result.skipped_reason, 'No expiring items')
        self.assertEqual(mailer.outbox, [])


if __name__ == '__main__':
    unittest.main()
