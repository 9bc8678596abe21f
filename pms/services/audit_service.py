from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from pms.models import AuditLog, User


def log_audit(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | str | None,
    ip: str | None,
    old_values: dict | None = None,
    new_values: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            old_values=old_values,
            new_values=new_values,
            ip=ip,
        )
    )


def list_audit_logs(
    db: Session,
    *,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict], int]:
    if limit < 1 or limit > 500:
        raise ValueError('Limit must be between 1 and 500')
    if offset < 0:
        raise ValueError('Offset cannot be negative')

    filters = []
    if search:
        pattern = f'%{search.strip()}%'
        filters.append(or_(AuditLog.action.ilike(pattern), AuditLog.entity_type.ilike(pattern)))

    total = db.execute(select(func.count(AuditLog.id)).where(*filters)).scalar_one()
    rows = db.execute(
        select(AuditLog, User.name, User.email)
        .outerjoin(User, User.id == AuditLog.actor_user_id)
        .where(*filters)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .offset(offset)
    ).all()

    return [
        {
            'id': entry.id,
            'action': entry.action,
            'entity_type': entry.entity_type,
            'entity_id': entry.entity_id,
            'old_values': entry.old_values,
            'new_values': entry.new_values,
            'ip': entry.ip,
            'created_at': entry.created_at,
            'user': {'name': name, 'email': email} if email else None,
        }
        for entry, name, email in rows
    ], total
