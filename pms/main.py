from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from sqlalchemy.orm import Session

from pms.config import Settings, settings as default_settings
from pms.db import SessionLocal
from pms.jobs import JobContext, register_jobs
from pms.routers import admin, alerts, audit, auth, inventory, items, jobs, reports, suggestions
from pms.scheduler import CronScheduler
from pms.security.headers import install_security_headers
from pms.security.login_throttle import InMemoryLoginAttemptStore, LoginAttemptStore, LoginThrottle
from pms.security.sessions import install_auth_session_middleware
from pms.services.notification_service import Mailer, StubMailer

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def create_app(
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    settings: Settings = default_settings,
    login_store: LoginAttemptStore | None = None,
    mailer: Mailer | None = None,
) -> FastAPI:
    job_context = JobContext(session_factory=session_factory, tz=settings.tz, mailer=mailer or StubMailer())
    scheduler = CronScheduler(tz=settings.tz)
    register_jobs(scheduler, job_context, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.scheduler_enabled:
            scheduler.start()
        else:
            logger.info('Scheduler disabled; jobs can still be triggered manually')
        yield
        scheduler.stop()

    app = FastAPI(title='Perishables Management System', lifespan=lifespan)
    app.state.session_factory = session_factory
    app.state.scheduler = scheduler
    app.state.job_context = job_context
    app.state.login_throttle = LoginThrottle(
        login_store or InMemoryLoginAttemptStore(),
        max_attempts=settings.login_max_attempts,
        lockout=timedelta(minutes=settings.login_lockout_minutes),
    )

    install_security_headers(app)
    install_auth_session_middleware(app)

    app.include_router(auth.router)
    app.include_router(inventory.router)
    app.include_router(items.router)
    app.include_router(suggestions.router)
    app.include_router(alerts.router)
    app.include_router(reports.router)
    app.include_router(audit.router)
    app.include_router(admin.router)
    app.include_router(jobs.router)

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok', 'scheduler_running': scheduler.is_running}

    return app


configure_logging(default_settings.log_level)
app = create_app()
