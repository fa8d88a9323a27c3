# backend/therapport/api/dependencies/auth.py
"""
Authenticated principal.

Session issuance lives upstream: the auth middleware verifies the token and
places ``user_id`` and ``role`` on ``request.state``. Routes only read them.
"""

from dataclasses import dataclass

from fastapi import Depends, Request

from ...core.enums import UserRole
from ...core.exceptions import ForbiddenException, UnauthorizedException


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_current_principal(request: Request) -> Principal:
    """
    Return the caller placed on the request by the auth middleware.

    Raises:
        UnauthorizedException: No authenticated caller
    """
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise UnauthorizedException("Not authenticated", code="NOT_AUTHENTICATED")
    raw_role = getattr(request.state, "role", None) or UserRole.PRACTITIONER.value
    try:
        role = UserRole(raw_role)
    except ValueError:
        raise UnauthorizedException("Unknown role", code="NOT_AUTHENTICATED")
    return Principal(user_id=str(user_id), role=role)


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise ForbiddenException("Admin access required", code="ADMIN_REQUIRED")
    return principal
