from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pms.auth import Principal, manager_access
from pms.config import settings
from pms.db import get_db
from pms.services.expiry_classifier import to_local_date
from pms.services.report_service import summary_report, waste_report

router = APIRouter(prefix='/api/reports', tags=['reports'])

DEFAULT_WASTE_WINDOW_DAYS = 30


@router.get('/waste')
def waste(
    start_date: date | None = None,
    end_date: date | None = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manager_access),
):
    end_date = end_date or to_local_date(datetime.now(tz=timezone.utc), settings.tz)
    start_date = start_date or end_date - timedelta(days=DEFAULT_WASTE_WINDOW_DAYS - 1)
    try:
        report = waste_report(db, start_date=start_date, end_date=end_date, tz=settings.tz)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {'success': True, 'data': report}


@router.get('/summary')
def summary(db: Session = Depends(get_db), principal: Principal = Depends(manager_access)):
    return {'success': True, 'data': summary_report(db)}
