from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from pms.models import ApprovalStatus, User, UserRole
from pms.security.passwords import hash_password
from pms.services.audit_service import log_audit


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def normalize_email(raw: str) -> str:
    email = (raw or '').strip().lower()
    if '@' not in email or email.startswith('@') or email.endswith('@'):
        raise ValueError('A valid email address is required')
    return email


def user_to_dict(user: User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role,
        'approval_status': user.approval_status,
        'active': user.active,
        'created_at': user.created_at,
    }


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise LookupError('User not found')
    return user


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()


def list_users(db: Session, *, role: UserRole | None = None) -> list[User]:
    query = select(User).order_by(User.created_at.asc(), User.id.asc())
    if role is not None:
        query = query.where(User.role == role)
    return db.execute(query).scalars().all()


def list_manager_recipients(db: Session) -> list[User]:
    return db.execute(
        select(User)
        .where(
            User.role == UserRole.MANAGER,
            User.active.is_(True),
            User.approval_status == ApprovalStatus.APPROVED,
        )
        .order_by(User.id.asc())
    ).scalars().all()


def register_user(
    db: Session,
    *,
    email: str,
    name: str,
    password: str,
    role: UserRole,
    ip: str | None = None,
) -> User:
    email = normalize_email(email)
    name = (name or '').strip()
    if not name:
        raise ValueError('Name is required')
    if role == UserRole.ADMIN:
        raise ValueError('Admin accounts cannot be self-registered')
    if get_user_by_email(db, email):
        raise ValueError('An account with this email already exists')

    approval = ApprovalStatus.PENDING if role == UserRole.MANAGER else ApprovalStatus.APPROVED
    user = User(
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=role,
        approval_status=approval,
        active=True,
    )
    db.add(user)
    db.flush()
    log_audit(
        db,
        actor_user_id=user.id,
        action='USER_REGISTERED',
        entity_type='users',
        entity_id=user.id,
        ip=ip,
        new_values={'email': email, 'role': role.value, 'approval_status': approval.value},
    )
    return user


def create_user(
    db: Session,
    *,
    email: str,
    name: str,
    password: str,
    role: UserRole,
    actor_user_id: int | None,
    ip: str | None = None,
) -> User:
    email = normalize_email(email)
    if get_user_by_email(db, email):
        raise ValueError('An account with this email already exists')
    user = User(
        email=email,
        name=(name or '').strip() or email,
        password_hash=hash_password(password),
        role=role,
        approval_status=ApprovalStatus.APPROVED,
        active=True,
    )
    db.add(user)
    db.flush()
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='USER_CREATED',
        entity_type='users',
        entity_id=user.id,
        ip=ip,
        new_values={'email': email, 'role': role.value},
    )
    return user


def set_approval_status(
    db: Session,
    *,
    user_id: int,
    approval_status: ApprovalStatus,
    actor_user_id: int | None,
    ip: str | None = None,
) -> User:
    user = get_user(db, user_id)
    if approval_status == ApprovalStatus.PENDING:
        raise ValueError('Approval status can only be set to APPROVED or REJECTED')
    previous = ApprovalStatus(user.approval_status)
    if previous != ApprovalStatus.PENDING:
        raise ValueError(f'User approval is already {previous.value}')

    user.approval_status = approval_status
    user.updated_at = _now()
    db.flush()
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action=f'USER_{approval_status.value}',
        entity_type='users',
        entity_id=user.id,
        ip=ip,
        old_values={'approval_status': previous.value},
        new_values={'approval_status': approval_status.value},
    )
    return user


def set_user_role(
    db: Session,
    *,
    user_id: int,
    role: UserRole,
    actor_user_id: int | None,
    ip: str | None = None,
) -> User:
    user = get_user(db, user_id)
    if user.id == actor_user_id and role != UserRole(user.role):
        raise ValueError('You cannot change your own role')

    previous = UserRole(user.role)
    user.role = role
    user.updated_at = _now()
    db.flush()
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='USER_ROLE_CHANGED',
        entity_type='users',
        entity_id=user.id,
        ip=ip,
        old_values={'role': previous.value},
        new_values={'role': role.value},
    )
    return user


def set_user_active(
    db: Session,
    *,
    user_id: int,
    active: bool,
    actor_user_id: int | None,
    ip: str | None = None,
) -> User:
    user = get_user(db, user_id)
    if user.id == actor_user_id and not active:
        raise ValueError('You cannot deactivate your own account')

    previous = user.active
    user.active = active
    user.updated_at = _now()
    db.flush()
    log_audit(
        db,
        actor_user_id=actor_user_id,
        action='USER_ACTIVATED' if active else 'USER_DEACTIVATED',
        entity_type='users',
        entity_id=user.id,
        ip=ip,
        old_values={'active': previous},
        new_values={'active': active},
    )
    return user
