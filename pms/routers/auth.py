from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from pms.auth import Principal, any_user
from pms.config import settings
from pms.db import get_db
from pms.dependencies import get_client_ip, get_login_throttle
from pms.models import ApprovalStatus, UserRole
from pms.schemas import LoginRequest, SignupRequest
from pms.security.login_throttle import LoginThrottle
from pms.security.passwords import verify_and_rehash
from pms.security.sessions import create_web_session, revoke_web_session, token_from_request
from pms.services.audit_service import log_audit
from pms.services.user_service import get_user_by_email, register_user, user_to_dict

router = APIRouter(prefix='/api/auth', tags=['auth'])

INVALID_CREDENTIALS = 'Invalid email or password'


@router.post('/login')
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    throttle: LoginThrottle = Depends(get_login_throttle),
):
    ip = get_client_ip(request)
    identifier = payload.email.strip().lower()
    decision = throttle.register_attempt(identifier)
    if not decision.allowed:
        raise HTTPException(
            status_code=429,
            detail=f'Too many login attempts. Try again in {decision.retry_after_minutes} minutes.',
        )

    try:
        user = get_user_by_email(db, payload.email)
    except ValueError:
        user = None
    valid, new_hash = verify_and_rehash(payload.password, user.password_hash) if user else (False, None)
    if not user or not user.active or not valid:
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)
    if user.role == UserRole.MANAGER and user.approval_status != ApprovalStatus.APPROVED:
        raise HTTPException(status_code=403, detail='Account pending approval')

    throttle.reset(identifier)
    if new_hash:
        user.password_hash = new_hash
    token = create_web_session(db, user.id, ip=ip, user_agent=request.headers.get('user-agent'))
    log_audit(
        db,
        actor_user_id=user.id,
        action='AUTH_LOGIN',
        entity_type='users',
        entity_id=user.id,
        ip=ip,
    )
    db.commit()

    response = JSONResponse({'token': token, 'user': {'id': user.id, 'email': user.email, 'name': user.name, 'role': user.role.value}})
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/signup', status_code=201)
def signup(payload: SignupRequest, request: Request, db: Session = Depends(get_db)):
    try:
        user = register_user(
            db,
            email=payload.email,
            name=payload.name,
            password=payload.password,
            role=payload.role,
            ip=get_client_ip(request),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    db.commit()
    return {'success': True, 'data': user_to_dict(user)}


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), principal: Principal = Depends(any_user)):
    token = token_from_request(request)
    if token:
        revoke_web_session(db, token)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='AUTH_LOGOUT',
        entity_type='users',
        entity_id=principal.id,
        ip=get_client_ip(request),
    )
    db.commit()

    response = JSONResponse({'success': True})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me')
def me(principal: Principal = Depends(any_user)):
    return {
        'id': principal.id,
        'email': principal.email,
        'name': principal.name,
        'role': principal.role,
        'approval_status': principal.approval_status,
    }
