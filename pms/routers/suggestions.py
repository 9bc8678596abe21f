from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pms.auth import Principal, any_user, manager_access
from pms.db import get_db
from pms.dependencies import get_client_ip, get_scheduler
from pms.jobs import PRICING_ANALYSIS_JOB
from pms.models import StockBatch
from pms.routers.jobs import trigger_job
from pms.scheduler import CronScheduler
from pms.schemas import ApproveSuggestionRequest, RejectSuggestionRequest
from pms.services.discount_suggestion_service import (
    approve_suggestion,
    discount_state_for_batch,
    list_pending_suggestions,
    reject_suggestion,
    suggestion_stats,
)

router = APIRouter(prefix='/api/suggestions', tags=['suggestions'])


@router.get('/pending')
def pending(db: Session = Depends(get_db), principal: Principal = Depends(manager_access)):
    rows = list_pending_suggestions(db)
    return {'success': True, 'count': len(rows), 'data': rows}


@router.get('/stats')
def stats(db: Session = Depends(get_db), principal: Principal = Depends(manager_access)):
    return {'success': True, 'data': suggestion_stats(db)}


@router.get('/batches/{batch_id}')
def batch_state(batch_id: int, db: Session = Depends(get_db), principal: Principal = Depends(any_user)):
    if not db.get(StockBatch, batch_id):
        raise HTTPException(status_code=404, detail='Batch not found')
    return {'success': True, 'data': asdict(discount_state_for_batch(db, batch_id))}


@router.post('/analyze')
async def analyze(
    scheduler: CronScheduler = Depends(get_scheduler),
    principal: Principal = Depends(manager_access),
):
    return await trigger_job(scheduler, PRICING_ANALYSIS_JOB)


@router.post('/{suggestion_id}/approve')
def approve(
    suggestion_id: int,
    payload: ApproveSuggestionRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manager_access),
):
    try:
        result = approve_suggestion(
            db,
            suggestion_id=suggestion_id,
            approved_discount_percentage=payload.approved_discount_percentage,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': result}


@router.post('/{suggestion_id}/reject')
def reject(
    suggestion_id: int,
    payload: RejectSuggestionRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manager_access),
):
    try:
        result = reject_suggestion(
            db,
            suggestion_id=suggestion_id,
            rejection_reason=payload.rejection_reason,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': result}
