from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pms.auth import Principal, any_user
from pms.config import settings
from pms.db import get_db
from pms.services.alert_service import expiry_summary, list_alerts, mark_alert_read, mark_all_alerts_read

router = APIRouter(prefix='/api/alerts', tags=['alerts'])


@router.get('')
def alerts(
    unread_only: bool = False,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(any_user),
):
    try:
        rows = list_alerts(db, unread_only=unread_only, limit=limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {'success': True, 'count': len(rows), 'data': rows}


@router.get('/summary')
def summary(db: Session = Depends(get_db), principal: Principal = Depends(any_user)):
    return {'success': True, 'data': expiry_summary(db, tz=settings.tz)}


@router.post('/read-all')
def read_all(db: Session = Depends(get_db), principal: Principal = Depends(any_user)):
    updated = mark_all_alerts_read(db)
    db.commit()
    return {'success': True, 'updated': updated}


@router.post('/{alert_id}/read')
def read_one(alert_id: int, db: Session = Depends(get_db), principal: Principal = Depends(any_user)):
    try:
        alert = mark_alert_read(db, alert_id=alert_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': {'id': alert.id, 'is_read': alert.is_read}}
