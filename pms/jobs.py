from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, tzinfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pms.config import Settings
from pms.scheduler import CronScheduler
from pms.services.expiry_monitor_service import monitor_expiring_batches
from pms.services.notification_service import Mailer, StubMailer, send_expiry_digest
from pms.services.pricing_service import analyze_pricing_and_suggest_discounts
from pms.services.run_guard import JobAlreadyRunning, RunGuard

logger = logging.getLogger(__name__)

EXPIRY_MONITOR_JOB = 'expiry-monitor'
PRICING_ANALYSIS_JOB = 'pricing-analysis'
EXPIRY_DIGEST_JOB = 'expiry-digest'
JOB_NAMES = (EXPIRY_MONITOR_JOB, PRICING_ANALYSIS_JOB, EXPIRY_DIGEST_JOB)


@dataclass
class JobContext:
    session_factory: Callable[[], Session]
    tz: tzinfo
    guard: RunGuard = field(default_factory=RunGuard)
    mailer: Mailer = field(default_factory=StubMailer)


def _run_guarded(ctx: JobContext, name: str, body: Callable[[Session], object]) -> dict:
    try:
        with ctx.guard.hold(name):
            with ctx.session_factory() as db:
                result = body(db)
                if result.success:
                    db.commit()
                else:
                    db.rollback()
                return result.to_dict()
    except JobAlreadyRunning as exc:
        logger.warning('Skipping %s: %s', name, exc)
        return {'success': False, 'error': str(exc), 'already_running': True}
    except SQLAlchemyError as exc:
        logger.exception('Job %s could not commit its changes', name)
        return {'success': False, 'error': str(exc)}


def run_expiry_monitor(ctx: JobContext, *, now: datetime | None = None) -> dict:
    return _run_guarded(ctx, EXPIRY_MONITOR_JOB, lambda db: monitor_expiring_batches(db, now=now, tz=ctx.tz))


def run_pricing_analysis(ctx: JobContext, *, now: datetime | None = None) -> dict:
    return _run_guarded(
        ctx,
        PRICING_ANALYSIS_JOB,
        lambda db: analyze_pricing_and_suggest_discounts(db, now=now, tz=ctx.tz),
    )


def run_expiry_digest(ctx: JobContext, *, now: datetime | None = None) -> dict:
    return _run_guarded(
        ctx,
        EXPIRY_DIGEST_JOB,
        lambda db: send_expiry_digest(db, mailer=ctx.mailer, now=now, tz=ctx.tz),
    )


def register_jobs(scheduler: CronScheduler, ctx: JobContext, settings: Settings) -> None:
    scheduler.schedule(settings.expiry_monitor_cron, lambda: run_expiry_monitor(ctx), name=EXPIRY_MONITOR_JOB)
    scheduler.schedule(settings.pricing_analysis_cron, lambda: run_pricing_analysis(ctx), name=PRICING_ANALYSIS_JOB)
    scheduler.schedule(settings.expiry_digest_cron, lambda: run_expiry_digest(ctx), name=EXPIRY_DIGEST_JOB)
