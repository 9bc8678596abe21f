from fastapi import Request

from pms.jobs import JobContext
from pms.scheduler import CronScheduler
from pms.security.login_throttle import LoginThrottle


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_scheduler(request: Request) -> CronScheduler:
    return request.app.state.scheduler


def get_job_context(request: Request) -> JobContext:
    return request.app.state.job_context


def get_login_throttle(request: Request) -> LoginThrottle:
    return request.app.state.login_throttle
