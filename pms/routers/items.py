from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pms.auth import Principal, any_user, manager_access
from pms.db import get_db
from pms.dependencies import get_client_ip
from pms.schemas import ItemCreateRequest, ItemUpdateRequest
from pms.services.item_service import create_item, delete_item, get_item, item_to_dict, list_items, update_item

router = APIRouter(prefix='/api/items', tags=['items'])


@router.get('')
def items(db: Session = Depends(get_db), principal: Principal = Depends(any_user)):
    return {'success': True, 'data': [item_to_dict(item) for item in list_items(db)]}


@router.get('/{item_id}')
def item_detail(item_id: int, db: Session = Depends(get_db), principal: Principal = Depends(any_user)):
    try:
        item = get_item(db, item_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {'success': True, 'data': item_to_dict(item)}


@router.post('', status_code=201)
def add_item(
    payload: ItemCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manager_access),
):
    try:
        item = create_item(
            db,
            sku=payload.sku,
            name=payload.name,
            base_price=payload.base_price,
            category=payload.category,
            unit=payload.unit,
            description=payload.description,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': item_to_dict(item)}


@router.patch('/{item_id}')
def edit_item(
    item_id: int,
    payload: ItemUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manager_access),
):
    try:
        item = update_item(
            db,
            item_id=item_id,
            changes=payload.model_dump(exclude_unset=True),
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': item_to_dict(item)}


@router.delete('/{item_id}')
def remove_item(
    item_id: int,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manager_access),
):
    try:
        delete_item(db, item_id=item_id, actor_user_id=principal.id, ip=get_client_ip(request))
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    db.commit()
    return {'success': True}
