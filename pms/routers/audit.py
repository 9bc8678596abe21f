from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pms.auth import Principal, manager_access
from pms.db import get_db
from pms.services.audit_service import list_audit_logs

router = APIRouter(prefix='/api/audit-logs', tags=['audit'])


@router.get('')
def audit_logs(
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manager_access),
):
    try:
        rows, total = list_audit_logs(db, search=search, limit=limit, offset=offset)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {'success': True, 'count': total, 'data': rows}
