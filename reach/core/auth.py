"""
Access tokens for the marketplace API.

Tokens are HS256 JWTs issued by the auth backend with the user id in ``sub`` and the
marketplace role in ``role``. The API only verifies them; ``create_access_token`` exists
for the login bridge and for tests.
"""
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from pydantic import BaseModel, ValidationError

from reach.core.config import settings
from reach.core.logging import get_logger

logger = get_logger(__name__)


class TokenPayload(BaseModel):
    """Decoded JWT claims"""
    sub: int
    role: str
    exp: int


def create_access_token(user_id: int, role: str, expires_minutes: int | None = None) -> str:
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY is not configured")
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {
        # PyJWT 2.10+ insists that "sub" is a string
        "sub": str(user_id),
        "role": role,
        "exp": int(expire.timestamp()),
    }
    return pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[TokenPayload]:
    """Return the claims, or None when the token is invalid or expired"""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY empty, refusing to verify tokens")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("JWT token invalid or expired")
        return None
    except (KeyError, ValidationError) as e:
        logger.warning("JWT payload malformed", extra_data={"error": str(e)})
        return None


def verify_cron_secret(provided: str | None) -> bool:
    """Constant-time check of the bearer secret used by external schedulers"""
    if not settings.CRON_SECRET or not provided:
        return False
    return hmac.compare_digest(provided, settings.CRON_SECRET)
