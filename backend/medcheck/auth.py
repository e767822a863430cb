"""
MedCheck Backend - Access Token Verification
============================================

What:  FastAPI dependency that turns the `Authorization: Bearer <jwt>`
       header into the caller's user id.
How:   Tokens are issued by the hosted auth provider and signed with the
       project's HS256 secret. We only verify them: signature, expiry and
       audience. The `sub` claim is the owner id stamped on every row.
Who:   Every /api route except /health.

Usage:
    @router.get("/medications")
    async def list_medications(user_id: UUID = Depends(get_current_user_id)):
        ...

Tests replace the dependency with app.dependency_overrides.
"""

import logging
import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from medcheck.config import settings
from medcheck.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

# auto_error=False so a missing header reaches our handler and gets the
# standard error body instead of FastAPI's default 403
_bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> uuid.UUID:
    """
    Verify a token and return its subject as a UUID.

    Raises:
        AuthenticationError: bad signature, expired, wrong audience, or a
            subject that is not a UUID.
    """
    if not settings.auth_jwt_secret:
        logger.error("AUTH_JWT_SECRET is not configured; rejecting token")
        raise AuthenticationError(context={"reason": "not_configured"})

    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
        )
    except ExpiredSignatureError:
        raise AuthenticationError(
            message="Your session has expired. Please sign in again.",
            context={"reason": "expired"},
        )
    except JWTError as e:
        logger.info("Rejected access token: %s", str(e))
        raise AuthenticationError(context={"reason": "invalid"})

    subject = payload.get("sub")
    try:
        return uuid.UUID(str(subject))
    except ValueError:
        raise AuthenticationError(context={"reason": "invalid_subject"})


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> uuid.UUID:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(context={"reason": "missing"})
    return decode_access_token(credentials.credentials)
