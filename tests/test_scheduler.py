from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timezone

from pms.scheduler import CronExpression, CronScheduler


class CronExpressionTests(unittest.TestCase):
    def test_daily_expression(self) -> None:
        cron = CronExpression('0 6 * * *')
        self.assertTrue(cron.matches(datetime(2026, 5, 1, 6, 0)))
        self.assertFalse(cron.matches(datetime(2026, 5, 1, 6, 1)))
        self.assertFalse(cron.matches(datetime(2026, 5, 1, 7, 0)))

    def test_steps_ranges_and_lists(self) -> None:
        cron = CronExpression('*/15 9-17 * * 1-5')
        # 2026-05-01 is a Friday, 2026-05-02 a Saturday.
        self.assertTrue(cron.matches(datetime(2026, 5, 1, 9, 45)))
        self.assertFalse(cron.matches(datetime(2026, 5, 1, 9, 50)))
        self.assertFalse(cron.matches(datetime(2026, 5, 2, 9, 45)))
        self.assertEqual(CronExpression('5,35 * * * *').minutes, frozenset({5, 35}))

    def test_seven_means_sunday(self) -> None:
        # 2026-05-03 is a Sunday.
        self.assertTrue(CronExpression('0 0 * * 7').matches(datetime(2026, 5, 3, 0, 0)))
        self.assertTrue(CronExpression('0 0 * * 0').matches(datetime(2026, 5, 3, 0, 0)))

    def test_day_of_month_or_day_of_week(self) -> None:
        cron = CronExpression('0 0 1 * 0')
        self.assertTrue(cron.matches(datetime(2026, 5, 1, 0, 0)))
        self.assertTrue(cron.matches(datetime(2026, 5, 3, 0, 0)))
        self.assertFalse(cron.matches(datetime(2026, 5, 4, 0, 0)))

    def test_next_after(self) -> None:
        cron = CronExpression('0 6 * * *')
        self.assertEqual(cron.next_after(datetime(2026, 5, 1, 6, 0)), datetime(2026, 5, 2, 6, 0))

    def test_invalid_expressions(self) -> None:
        for expression in ('0 6 * *', '60 * * * *', '* 24 * * *', 'a * * * *', '*/0 * * * *', '5-1 * * * *'):
            with self.subTest(expression=expression):
                with self.assertRaises(ValueError):
                    CronExpression(expression)

    def test_expressions_that_never_fire_are_rejected(self) -> None:
        for expression in ('0 0 30 2 *', '0 0 31 4,6,9,11 *', '0 0 30-31 2 *'):
            with self.subTest(expression=expression):
                with self.assertRaises(ValueError):
                    CronExpression(expression)
        # Leap days and weekday fallbacks can still fire.
        self.assertEqual(CronExpression('0 0 29 2 *').days, frozenset({29}))
        self.assertEqual(CronExpression('0 0 30 2 1').weekdays, frozenset({1}))


class CronSchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scheduler = CronScheduler(tz=timezone.utc)
        self.calls: list[str] = []

    def test_tick_fires_matching_job_once_per_minute(self) -> None:
        self.scheduler.schedule('0 6 * * *', lambda: self.calls.append('monitor'), name='monitor')
        self.scheduler.schedule('0 7 * * *', lambda: self.calls.append('pricing'), name='pricing')

        first = asyncio.run(self.scheduler.tick(datetime(2026, 5, 1, 6, 0, 5, tzinfo=timezone.utc)))
        again = asyncio.run(self.scheduler.tick(datetime(2026, 5, 1, 6, 0, 40, tzinfo=timezone.utc)))

        self.assertEqual(first, ['monitor'])
        self.assertEqual(again, [])
        self.assertEqual(self.calls, ['monitor'])
        self.assertEqual(self.scheduler.jobs['monitor'].runs, 1)

    def test_run_now_returns_result_and_records_errors(self) -> None:
        self.scheduler.schedule('0 6 * * *', lambda: {'success': True}, name='ok')

        def _boom():
            raise RuntimeError('boom')

        self.scheduler.schedule('0 6 * * *', _boom, name='broken')

        self.assertEqual(asyncio.run(self.scheduler.run_now('ok')), {'success': True})
        self.assertIsNone(asyncio.run(self.scheduler.run_now('broken')))
        self.assertEqual(self.scheduler.jobs['broken'].last_error, 'boom')
        with self.assertRaises(LookupError):
            asyncio.run(self.scheduler.run_now('missing'))

    def test_duplicate_job_names_are_rejected(self) -> None:
        self.scheduler.schedule('0 6 * * *', lambda: None, name='monitor')
        with self.assertRaises(ValueError):
            self.scheduler.schedule('0 7 * * *', lambda: None, name='monitor')

    def test_schedule_rejects_expression_that_never_fires(self) -> None:
        with self.assertRaises(ValueError):
            self.scheduler.schedule('0 0 30 2 *', lambda: None, name='never')
        self.assertEqual(self.scheduler.jobs, {})
        self.assertEqual(self.scheduler.status()['jobs'], [])

    def test_start_and_stop_inside_event_loop(self) -> None:
        async def _lifecycle() -> tuple[bool, bool]:
            self.scheduler.start()
            started = self.scheduler.is_running
            self.scheduler.stop()
            await asyncio.sleep(0)
            return started, self.scheduler.is_running

        self.assertEqual(asyncio.run(_lifecycle()), (True, False))

    def test_status_lists_jobs_with_next_run(self) -> None:
        self.scheduler.schedule('30 8 * * *', lambda: None, name='digest')

        status = self.scheduler.status()

        self.assertFalse(status['running'])
        self.assertEqual(status['jobs'][0]['name'], 'digest')
        self.assertEqual(status['jobs'][0]['next_run_at'].minute, 30)


if __name__ == '__main__':
    unittest.main()
