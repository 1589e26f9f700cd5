"""
How Sitter Backend — Request Dependencies
===========================================

What:  FastAPI dependencies resolving the caller's identity from a bearer token.
Who:   Every route that needs an authenticated user or a specific role.

Failure mapping:
    no/invalid/expired token      → AuthenticationError (401)
    token for a user that is gone → AuthenticationError (401)
    wrong role                    → AuthorizationError (403)
"""

import logging
import uuid
from typing import Awaitable, Callable, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from howsitter.database import get_db_session
from howsitter.exceptions import AuthenticationError, AuthorizationError
from howsitter.models.user import User
from howsitter.security import decode_access_token

logger = logging.getLogger(__name__)

# auto_error=False: a missing header reaches get_current_user, which answers
# with our own 401 body instead of FastAPI's default 403
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Resolve the bearer token to a User row."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = uuid.UUID(payload["sub"])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session expired. Please log in again.")
    except (jwt.InvalidTokenError, ValueError) as e:
        logger.info("Rejected bearer token: %s", type(e).__name__)
        raise AuthenticationError("Invalid token")

    user = await db.get(User, user_id)
    if user is None:
        raise AuthenticationError("User no longer exists")
    return user


def require_roles(*roles: str) -> Callable[..., Awaitable[User]]:
    """
    Dependency factory: the current user must hold one of `roles`.

    Usage:
        @router.post("", dependencies=[Depends(require_roles("homeowner"))])
    or
        user: User = Depends(require_roles("homeowner", "admin"))
    """

    async def _checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise AuthorizationError(
                f"This action requires one of the roles: {', '.join(roles)}",
                context={"role": user.role, "required": list(roles)},
            )
        return user

    return _checker
