"""Caller identity and role-based access dependencies.

Tokens are issued and validated upstream; this module only turns a Bearer
token into a ``Caller`` (user ID + role) and enforces role restrictions.
"""

import uuid
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from sos_api.core.security import TokenData, decode_access_token
from sos_api.logging_config import get_logger
from sos_api.models.user import UserRole

logger = get_logger(__name__)


@dataclass(frozen=True)
class Caller:
    """Authenticated principal making the current request."""

    user_id: uuid.UUID
    role: UserRole

    @property
    def is_responder(self) -> bool:
        return self.role == UserRole.RESPONDER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_current_caller(request: Request) -> Caller:
    """Resolve the caller from the ``Authorization: Bearer`` header.

    Raises:
        HTTPException 401: If the token is missing, invalid or carries an
            unknown role.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise credentials_exception

    payload = decode_access_token(auth_header[7:])
    if payload is None:
        raise credentials_exception

    try:
        token_data = TokenData(payload)
        role = UserRole(token_data.role)
    except (KeyError, ValueError):
        raise credentials_exception

    return Caller(user_id=token_data.user_id, role=role)


CurrentCaller = Annotated[Caller, Depends(get_current_caller)]


class RoleChecker:
    """Dependency that only lets callers with one of the given roles through.

    Usage:
        @router.get("/active-alerts")
        async def active(caller: Caller = Depends(require_responder_or_admin)):
            ...
    """

    def __init__(self, allowed_roles: list[UserRole]):
        self.allowed_roles = allowed_roles

    async def __call__(self, request: Request, caller: CurrentCaller) -> Caller:
        if caller.role not in self.allowed_roles:
            logger.warning(
                "Unauthorized access attempt",
                user_id=str(caller.user_id),
                user_role=caller.role.value,
                required_roles=[r.value for r in self.allowed_roles],
                path=request.url.path,
                method=request.method,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You don't have permission to access this resource",
            )
        return caller


def require_roles(*roles: UserRole) -> RoleChecker:
    """Create a RoleChecker for the given roles."""
    return RoleChecker(list(roles))


require_responder = require_roles(UserRole.RESPONDER)
require_responder_or_admin = require_roles(UserRole.RESPONDER, UserRole.ADMIN)

ResponderCaller = Annotated[Caller, Depends(require_responder)]
DashboardCaller = Annotated[Caller, Depends(require_responder_or_admin)]
