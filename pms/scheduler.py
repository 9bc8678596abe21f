"""In-process cron scheduler.

Jobs are plain callables registered against a five-field cron expression
(minute hour day-of-month month day-of-week). The loop wakes every
`check_interval` seconds, fires each job at most once per matching minute, and
runs the callable in a worker thread so blocking database work does not stall
the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any

logger = logging.getLogger(__name__)

FIELD_RANGES = (
    ('minute', 0, 59),
    ('hour', 0, 23),
    ('day', 1, 31),
    ('month', 1, 12),
    ('weekday', 0, 7),
)

# February counts 29 days so leap-day schedules stay valid.
MONTH_LENGTHS = {1: 31, 2: 29, 3: 31, 4: 30, 5: 31, 6: 30, 7: 31, 8: 31, 9: 30, 10: 31, 11: 30, 12: 31}


def _parse_field(raw: str, name: str, low: int, high: int) -> frozenset[int]:
    values: set[int] = set()
    for part in raw.split(','):
        if not part:
            raise ValueError(f'Empty {name} field')
        step = 1
        if '/' in part:
            part, step_raw = part.split('/', 1)
            if not step_raw.isdigit() or int(step_raw) < 1:
                raise ValueError(f'Invalid step in {name} field: {step_raw!r}')
            step = int(step_raw)

        if part == '*':
            start, end = low, high
        elif '-' in part:
            start_raw, end_raw = part.split('-', 1)
            if not (start_raw.isdigit() and end_raw.isdigit()):
                raise ValueError(f'Invalid range in {name} field: {part!r}')
            start, end = int(start_raw), int(end_raw)
        elif part.isdigit():
            start = int(part)
            end = high if step > 1 else start
        else:
            raise ValueError(f'Invalid {name} field: {part!r}')

        if start < low or end > high or start > end:
            raise ValueError(f'{name} field out of range: {part!r}')
        values.update(range(start, end + 1, step))
    return frozenset(values)


class CronExpression:
    def __init__(self, expression: str):
        parts = expression.split()
        if len(parts) != 5:
            raise ValueError(f'Cron expression must have 5 fields: {expression!r}')
        self.expression = expression
        parsed = [_parse_field(raw, name, low, high) for raw, (name, low, high) in zip(parts, FIELD_RANGES)]
        self.minutes, self.hours, self.days, self.months, weekdays = parsed
        # 0 and 7 both mean Sunday.
        self.weekdays = frozenset(day % 7 for day in weekdays)
        self._day_restricted = parts[2] != '*'
        self._weekday_restricted = parts[4] != '*'
        if self._day_restricted and not self._weekday_restricted:
            if min(self.days) > max(MONTH_LENGTHS[month] for month in self.months):
                raise ValueError(f'Cron expression never fires: {expression!r}')

    def __repr__(self) -> str:
        return f'CronExpression({self.expression!r})'

    def matches(self, moment: datetime) -> bool:
        if moment.minute not in self.minutes or moment.hour not in self.hours or moment.month not in self.months:
            return False
        day_ok = moment.day in self.days
        weekday_ok = (moment.weekday() + 1) % 7 in self.weekdays
        if self._day_restricted and self._weekday_restricted:
            return day_ok or weekday_ok
        return day_ok and weekday_ok

    def next_after(self, moment: datetime) -> datetime:
        candidate = moment.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = candidate + timedelta(days=366 * 4)
        while candidate < limit:
            if self.matches(candidate):
                return candidate
            candidate += timedelta(minutes=1)
        raise ValueError(f'Cron expression never fires: {self.expression!r}')


@dataclass
class ScheduledJob:
    name: str
    cron: CronExpression
    task: Callable[[], Any]
    last_fired_minute: datetime | None = None
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_result: Any = None
    last_error: str | None = None
    running: bool = False
    runs: int = 0


@dataclass
class CronScheduler:
    tz: tzinfo = timezone.utc
    check_interval: float = 30.0
    jobs: dict[str, ScheduledJob] = field(default_factory=dict)
    _task: asyncio.Task | None = field(default=None, init=False, repr=False)

    def schedule(self, cron_expr: str, task: Callable[[], Any], *, name: str) -> ScheduledJob:
        if name in self.jobs:
            raise ValueError(f'Job {name!r} is already scheduled')
        job = ScheduledJob(name=name, cron=CronExpression(cron_expr), task=task)
        self.jobs[name] = job
        logger.info('Scheduled job %s (%s)', name, cron_expr)
        return job

    def start(self) -> None:
        if self.is_running:
            logger.warning('Scheduler already running')
            return
        self._task = asyncio.create_task(self._run_loop())
        logger.info('Scheduler started with %d job(s)', len(self.jobs))

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            logger.info('Scheduler stopped')
        self._task = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _now(self) -> datetime:
        return datetime.now(tz=self.tz)

    async def _run_loop(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception('Scheduler tick failed')
            await asyncio.sleep(self.check_interval)

    async def tick(self, now: datetime | None = None) -> list[str]:
        now = (now or self._now()).astimezone(self.tz)
        minute = now.replace(second=0, microsecond=0)
        fired = []
        for job in self.jobs.values():
            if job.last_fired_minute == minute or not job.cron.matches(minute):
                continue
            job.last_fired_minute = minute
            fired.append(job.name)
            logger.info('Scheduled trigger for job %s', job.name)
            await self._execute(job)
        return fired

    async def run_now(self, name: str) -> Any:
        job = self.jobs.get(name)
        if job is None:
            raise LookupError(f'Unknown job {name!r}')
        logger.info('Manual trigger for job %s', name)
        return await self._execute(job)

    async def _execute(self, job: ScheduledJob) -> Any:
        job.running = True
        job.last_started_at = self._now()
        job.last_error = None
        try:
            result = await asyncio.to_thread(job.task)
        except Exception as exc:
            logger.exception('Job %s raised', job.name)
            job.last_error = str(exc)
            result = None
        finally:
            job.running = False
            job.last_finished_at = self._now()
            job.runs += 1
        job.last_result = result
        return result

    def status(self) -> dict:
        now = self._now()
        return {
            'running': self.is_running,
            'jobs': [
                {
                    'name': job.name,
                    'cron': job.cron.expression,
                    'running': job.running,
                    'runs': job.runs,
                    'last_started_at': job.last_started_at,
                    'last_finished_at': job.last_finished_at,
                    'last_error': job.last_error,
                    'next_run_at': job.cron.next_after(now),
                }
                for job in self.jobs.values()
            ],
        }
