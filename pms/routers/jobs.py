from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from pms.auth import Principal, admin_access
from pms.dependencies import get_scheduler
from pms.scheduler import CronScheduler

router = APIRouter(prefix='/api/jobs', tags=['jobs'])


async def trigger_job(scheduler: CronScheduler, name: str) -> dict:
    try:
        result = await scheduler.run_now(name)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if result is None:
        raise HTTPException(status_code=500, detail=f'Job {name} failed')
    if result.get('already_running'):
        raise HTTPException(status_code=409, detail=result['error'])
    return result


@router.get('')
def job_status(
    scheduler: CronScheduler = Depends(get_scheduler),
    principal: Principal = Depends(admin_access),
):
    return scheduler.status()


@router.post('/{name}/run')
async def run_job(
    name: str,
    scheduler: CronScheduler = Depends(get_scheduler),
    principal: Principal = Depends(admin_access),
):
    return await trigger_job(scheduler, name)
