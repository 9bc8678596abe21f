from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pms.auth import Principal, any_user, manager_access
from pms.config import settings
from pms.db import get_db
from pms.dependencies import get_client_ip
from pms.models import Item
from pms.schemas import QuantityUpdateRequest, StockCreateRequest, WasteRequest
from pms.services.expiry_classifier import to_local_date
from pms.services.inventory_service import (
    add_stock_batch,
    batch_row,
    delete_batch,
    list_inventory,
    mark_batch_as_waste,
    parse_status_filter,
    update_batch_quantity,
)

router = APIRouter(prefix='/api/inventory', tags=['inventory'])


def _today() -> date:
    return to_local_date(datetime.now(tz=timezone.utc), settings.tz)


@router.get('')
def inventory(
    search: str | None = None,
    status: str | None = None,
    expiry_from: date | None = None,
    expiry_to: date | None = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
    principal: Principal = Depends(any_user),
):
    try:
        result = list_inventory(
            db,
            search=search,
            status=parse_status_filter(status),
            expiry_from=expiry_from,
            expiry_to=expiry_to,
            page=page,
            limit=limit,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {'success': True, **result}


@router.post('', status_code=201)
def add_stock(
    payload: StockCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(any_user),
):
    try:
        batch = add_stock_batch(
            db,
            sku=payload.sku,
            name=payload.name,
            category=payload.category,
            base_price=payload.base_price,
            quantity=payload.quantity,
            delivery_date=payload.delivery_date,
            expiry_date=payload.expiry_date,
            supplier_batch_number=payload.supplier_batch_number,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    item = db.get(Item, batch.item_id)
    return {'success': True, 'data': batch_row(batch, item, today=_today())}


@router.patch('/{batch_id}/quantity')
def change_quantity(
    batch_id: int,
    payload: QuantityUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(any_user),
):
    try:
        batch, transaction = update_batch_quantity(
            db,
            batch_id=batch_id,
            quantity_change=payload.quantity_change,
            reason=payload.reason,
            notes=payload.notes,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {
        'success': True,
        'data': {
            'batch_id': batch.id,
            'quantity': batch.quantity,
            'status': batch.status,
            'transaction_id': transaction.id,
            'previous_quantity': transaction.previous_quantity,
            'new_quantity': transaction.new_quantity,
        },
    }


@router.post('/{batch_id}/waste', status_code=201)
def waste(
    batch_id: int,
    payload: WasteRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(any_user),
):
    try:
        waste_log = mark_batch_as_waste(
            db,
            batch_id=batch_id,
            quantity=payload.quantity,
            reason=payload.reason,
            notes=payload.notes,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {
        'success': True,
        'data': {
            'id': waste_log.id,
            'batch_id': waste_log.batch_id,
            'quantity': waste_log.quantity,
            'reason': waste_log.reason,
            'estimated_loss': waste_log.estimated_loss,
        },
    }


@router.delete('/{batch_id}')
def remove_batch(
    batch_id: int,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manager_access),
):
    try:
        delete_batch(db, batch_id=batch_id, actor_user_id=principal.id, ip=get_client_ip(request))
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    db.commit()
    return {'success': True}
