"""
FastAPI dependencies that authenticate API requests

Usage:
    @router.get("/balance")
    async def balance(
        user: User = Depends(require_wallet_user),
        db: AsyncSession = Depends(get_db),
    ):
        ...
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reach.core.auth import verify_cron_secret, verify_token
from reach.core.config import settings
from reach.core.exceptions import AuthenticationException, AuthorizationException
from reach.core.logging import get_logger
from reach.db.database import get_db
from reach.db.models.user import User, UserRole, WALLET_ROLES

logger = get_logger(__name__)

# auto_error=False: the session cookie is an accepted fallback
security = HTTPBearer(auto_error=False)


def _extract_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the caller from the bearer token or the session cookie.

    Raises 401 when no token is sent, the token does not verify, or the user it
    names is unknown or inactive.
    """
    token = _extract_token(request, credentials)
    if not token:
        raise AuthenticationException()

    token_data = verify_token(token)
    if not token_data:
        raise AuthenticationException("Invalid or expired token")

    result = await db.execute(select(User).where(User.id == token_data.sub))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        logger.warning(
            "Authentication rejected, user inactive or missing",
            extra_data={
                "user_id": token_data.sub,
                "user_found": user is not None,
            },
        )
        raise AuthenticationException("User account is not active")

    return user


def require_roles(*roles: UserRole):
    """Build a dependency that admits only the given roles"""
    allowed = frozenset(roles)

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            logger.warning(
                "Access denied, wrong role",
                extra_data={
                    "user_id": user.id,
                    "role": user.role.value,
                    "allowed": sorted(role.value for role in allowed),
                },
            )
            raise AuthorizationException()
        return user

    return dependency


require_buyer = require_roles(UserRole.BUYER)
require_developer = require_roles(UserRole.DEVELOPER)
require_creator = require_roles(UserRole.CREATOR)
require_admin = require_roles(UserRole.ADMIN)
require_wallet_user = require_roles(*WALLET_ROLES)


async def require_cron(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> None:
    """External schedulers authenticate with ``Authorization: Bearer <CRON_SECRET>``"""
    provided = credentials.credentials if credentials else None
    if not verify_cron_secret(provided):
        logger.warning("Cron request rejected")
        raise AuthenticationException("Invalid cron secret")
