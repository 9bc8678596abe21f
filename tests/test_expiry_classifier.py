from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from pms.models import AlertType, BatchStatus
from pms.services.expiry_classifier import (
    alert_message,
    alert_type_for,
    batch_status_for,
    classify,
    days_until_expiry,
    discount_tier_for,
    estimated_revenue,
    profit_margin,
    to_local_date,
    urgency_for,
)

KOLKATA = ZoneInfo('Asia/Kolkata')


class ExpiryClassifierTests(unittest.TestCase):
    def test_status_boundaries(self) -> None:
        self.assertEqual(batch_status_for(-1), BatchStatus.EXPIRED)
        self.assertEqual(batch_status_for(0), BatchStatus.EXPIRING_SOON)
        self.assertEqual(batch_status_for(3), BatchStatus.EXPIRING_SOON)
        self.assertEqual(batch_status_for(4), BatchStatus.ACTIVE)

    def test_alert_types_stop_after_two_days(self) -> None:
        self.assertEqual(alert_type_for(-3), AlertType.EXPIRED)
        self.assertEqual(alert_type_for(0), AlertType.EXPIRING_TODAY)
        self.assertEqual(alert_type_for(1), AlertType.EXPIRING_1_DAY)
        self.assertEqual(alert_type_for(2), AlertType.EXPIRING_2_DAYS)
        self.assertIsNone(alert_type_for(3))

    def test_discount_tiers(self) -> None:
        self.assertEqual(discount_tier_for(-1), 0)
        self.assertEqual(discount_tier_for(0), 40)
        self.assertEqual(discount_tier_for(1), 25)
        self.assertEqual(discount_tier_for(2), 10)
        self.assertEqual(discount_tier_for(3), 0)
        self.assertEqual(discount_tier_for(30), 0)

    def test_revenue_scenarios(self) -> None:
        cases = [
            (50, '40', 0, Decimal('1200.00')),
            (20, '60', 1, Decimal('900.00')),
            (30, '120', 2, Decimal('3240.00')),
            (40, '50', 5, Decimal('2000.00')),
        ]
        for quantity, price, days, expected in cases:
            with self.subTest(days=days):
                self.assertEqual(estimated_revenue(quantity, price, discount_tier_for(days)), expected)

    def test_revenue_never_increases_with_discount(self) -> None:
        revenues = [estimated_revenue(17, Decimal('33.30'), pct) for pct in (0, 10, 25, 40)]
        self.assertEqual(revenues, sorted(revenues, reverse=True))
        self.assertGreater(revenues[0], revenues[-1])

    def test_revenue_rejects_bad_input(self) -> None:
        with self.assertRaises(ValueError):
            estimated_revenue(-1, '10', 0)
        with self.assertRaises(ValueError):
            estimated_revenue(1, '10', 101)

    def test_days_use_calendar_dates_not_hours(self) -> None:
        late_evening = datetime(2026, 3, 10, 23, 30, tzinfo=KOLKATA)
        self.assertEqual(days_until_expiry(late_evening, date(2026, 3, 11)), 1)
        self.assertEqual(days_until_expiry(late_evening, date(2026, 3, 10)), 0)

    def test_utc_instant_is_reduced_in_business_timezone(self) -> None:
        # 20:00 UTC is already the next morning in Kolkata.
        instant = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)
        self.assertEqual(to_local_date(instant, KOLKATA), date(2026, 3, 11))
        self.assertEqual(to_local_date(instant, timezone.utc), date(2026, 3, 10))

    def test_classify_combines_all_decisions(self) -> None:
        today = date(2026, 5, 1)
        result = classify(today, today + timedelta(days=1))
        self.assertEqual(result.days_until_expiry, 1)
        self.assertEqual(result.status, BatchStatus.EXPIRING_SOON)
        self.assertEqual(result.alert_type, AlertType.EXPIRING_1_DAY)
        self.assertEqual(result.discount_percentage, 25)

        expired = classify(today, today - timedelta(days=2))
        self.assertEqual(expired.status, BatchStatus.EXPIRED)
        self.assertEqual(expired.discount_percentage, 0)

    def test_profit_margin_after_discount(self) -> None:
        self.assertEqual(profit_margin('100', 0), Decimal('40.00'))
        self.assertEqual(profit_margin('100', 25), Decimal('20.00'))
        with self.assertRaises(ValueError):
            profit_margin('100', 100)

    def test_alert_message_and_urgency(self) -> None:
        message = alert_message(AlertType.EXPIRING_TODAY, 'Milk', 'MILK-1L', date(2026, 5, 1))
        self.assertEqual(message, 'Milk (MILK-1L) expires today (2026-05-01)')
        self.assertEqual(urgency_for(-1), ('expired', 'EXPIRED'))
        self.assertEqual(urgency_for(0), ('today', 'EXPIRES TODAY'))
        self.assertEqual(urgency_for(2), ('soon', '2 DAYS LEFT'))


if __name__ == '__main__':
    unittest.main()
