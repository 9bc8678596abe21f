from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone

from db_support import add_batch, make_session_factory
from pms.models import Alert, AlertType
from pms.services.alert_service import expiry_summary, list_alerts, mark_alert_read, mark_all_alerts_read

TODAY = date(2026, 5, 1)
# Midday UTC on the first of May.
NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


class AlertServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def _alert(self, batch_id: int, alert_type: AlertType, *, minutes: int = 0) -> Alert:
        alert = Alert(
            batch_id=batch_id,
            alert_type=alert_type,
            message=f'{alert_type.value} alert',
            is_read=False,
            alert_date=TODAY,
            created_at=NOW + timedelta(minutes=minutes),
        )
        self.db.add(alert)
        self.db.flush()
        return alert

    def test_list_newest_first_and_mark_read(self) -> None:
        batch = add_batch(self.db, sku='MILK', base_price='1', quantity=1, expiry_date=TODAY)
        older = self._alert(batch.id, AlertType.EXPIRING_TODAY)
        newer = self._alert(batch.id, AlertType.EXPIRING_1_DAY, minutes=5)
        self.db.commit()

        self.assertEqual([row['id'] for row in list_alerts(self.db)], [newer.id, older.id])

        mark_alert_read(self.db, alert_id=older.id)
        self.assertEqual([row['id'] for row in list_alerts(self.db, unread_only=True)], [newer.id])
        self.assertEqual(mark_all_alerts_read(self.db), 1)
        with self.assertRaises(LookupError):
            mark_alert_read(self.db, alert_id=999)
        with self.assertRaises(ValueError):
            list_alerts(self.db, limit=0)

    def test_summary_buckets_by_hours_left(self) -> None:
        add_batch(self.db, sku='GONE', base_price='1', quantity=1, expiry_date=TODAY)
        add_batch(self.db, sku='HIGH', base_price='1', quantity=1, expiry_date=TODAY + timedelta(days=1))
        add_batch(self.db, sku='LOW', base_price='1', quantity=1, expiry_date=TODAY + timedelta(days=2))
        add_batch(self.db, sku='FAR', base_price='1', quantity=1, expiry_date=TODAY + timedelta(days=5))
        self.db.commit()

        summary = expiry_summary(self.db, now=NOW, tz=timezone.utc)

        self.assertEqual(summary['counts'], {'expired': 1, 'high': 1, 'medium': 0, 'low': 1, 'total': 3})
        self.assertEqual([row['sku'] for row in summary['top_critical']], ['GONE', 'HIGH', 'LOW'])


if __name__ == '__main__':
    unittest.main()
