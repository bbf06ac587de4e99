from uuid import UUID

from fastapi import Depends, HTTPException, status

from schooltime.auth.dependencies import get_current_user
from schooltime.auth.schemas import CurrentUser
from schooltime.core.enums import UserRole
from schooltime.core.exceptions import NotAuthorized


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting an endpoint to the given roles.

    Example:
        Depends(require_roles(UserRole.ADMIN))
    """
    allowed = {r.value for r in roles}

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. Admin role required." if allowed == {"ADMIN"} else "Insufficient permissions",
            )
        return current_user

    return _checker


require_admin = require_roles(UserRole.ADMIN)


def is_admin(current_user: CurrentUser) -> bool:
    return current_user.role == UserRole.ADMIN.value


def ensure_school_access(current_user: CurrentUser, school_id: UUID) -> None:
    """Callers may only read or write their own school's data."""
    if current_user.school_id != school_id:
        raise NotAuthorized("Access denied for this school")
