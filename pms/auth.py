from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from pms.models import ApprovalStatus, UserRole


@dataclass
class Principal:
    id: int
    email: str
    name: str
    role: UserRole
    approval_status: ApprovalStatus
    active: bool


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, 'principal', None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Authentication required')
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Account is inactive')
    if principal.role == UserRole.MANAGER and principal.approval_status != ApprovalStatus.APPROVED:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Account pending approval')
    return principal


def require_role(*allowed: UserRole):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f'This action requires one of the following roles: {", ".join(role.value for role in allowed)}',
            )
        return principal

    return _dep


any_user = require_role(UserRole.ADMIN, UserRole.MANAGER, UserRole.STAFF)
manager_access = require_role(UserRole.ADMIN, UserRole.MANAGER)
admin_access = require_role(UserRole.ADMIN)
