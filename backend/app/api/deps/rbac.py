from __future__ import annotations

from collections.abc import Iterable

from fastapi import Depends, HTTPException, status

from app.api.routes.users import get_current_user
from app.domain.events.allocations import normalize_department
from app.models.user import User, UserRole


def enforce_roles(
    user: User,
    allowed: Iterable[UserRole],
    *,
    message: str = "Not authorized for this action",
) -> None:
    if user.role not in {UserRole(role).value for role in allowed}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


def enforce_department_scope(
    user: User,
    department_name: str,
    *,
    message: str = "You can only manage your own department",
) -> None:
    """Admins pass; everyone else must belong to ``department_name``."""
    if user.is_admin:
        return
    if normalize_department(user.department) != normalize_department(department_name):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


def require_roles(*allowed: UserRole, message: str = "Not authorized for this action"):
    async def _dependency(current_user: User = Depends(get_current_user)) -> User:
        enforce_roles(current_user, allowed, message=message)
        return current_user

    return _dependency


require_admin = require_roles(UserRole.admin, message="Admin access required")
