from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from sqlalchemy import select

from pms.auth import Principal
from pms.config import settings
from pms.models import ApprovalStatus, User, UserRole, WebSession


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def create_web_session(db, user_id: int, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    web_session = WebSession(
        session_token=token,
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
        expires_at=_session_expiry(),
    )
    db.add(web_session)
    db.flush()
    return token


def revoke_web_session(db, token: str) -> None:
    session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def load_principal_from_token(db, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, User)
        .join(User, User.id == WebSession.user_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, user = row
    now = _now()
    if web_session.revoked_at is not None or _as_utc(web_session.expires_at) <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    return Principal(
        id=user.id,
        email=user.email,
        name=user.name,
        role=UserRole(user.role),
        approval_status=ApprovalStatus(user.approval_status),
        active=user.active,
    )


def token_from_request(request: Request) -> str | None:
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith('bearer '):
        token = authorization[7:].strip()
        if token:
            return token
    return request.cookies.get(settings.session_cookie_name)


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        token = token_from_request(request)
        principal = None
        if token:
            with app.state.session_factory() as db:
                principal = load_principal_from_token(db, token)
                db.commit()
        request.state.principal = principal
        return await call_next(request)
