from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pms.auth import Principal, admin_access
from pms.db import get_db
from pms.dependencies import get_client_ip
from pms.models import UserRole
from pms.schemas import ActiveChangeRequest, ApprovalRequest, RoleChangeRequest, UserCreateRequest
from pms.services.user_service import (
    create_user,
    list_users,
    set_approval_status,
    set_user_active,
    set_user_role,
    user_to_dict,
)

router = APIRouter(prefix='/api/admin/users', tags=['admin'])


@router.get('')
def users(
    role: UserRole | None = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_access),
):
    return {'success': True, 'data': [user_to_dict(user) for user in list_users(db, role=role)]}


@router.post('', status_code=201)
def add_user(
    payload: UserCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_access),
):
    try:
        user = create_user(
            db,
            email=payload.email,
            name=payload.name,
            password=payload.password,
            role=payload.role,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': user_to_dict(user)}


@router.post('/{user_id}/approval')
def approval(
    user_id: int,
    payload: ApprovalRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_access),
):
    try:
        user = set_approval_status(
            db,
            user_id=user_id,
            approval_status=payload.approval_status,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': user_to_dict(user)}


@router.post('/{user_id}/role')
def change_role(
    user_id: int,
    payload: RoleChangeRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_access),
):
    try:
        user = set_user_role(
            db,
            user_id=user_id,
            role=payload.role,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': user_to_dict(user)}


@router.post('/{user_id}/active')
def change_active(
    user_id: int,
    payload: ActiveChangeRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(admin_access),
):
    try:
        user = set_user_active(
            db,
            user_id=user_id,
            active=payload.active,
            actor_user_id=principal.id,
            ip=get_client_ip(request),
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': user_to_dict(user)}
