"""
Bearer-token authentication for the ramp API.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from loguru import logger
from sqlalchemy.orm import Session

from nexuspay.config.settings import settings
from nexuspay.core.database import get_db
from nexuspay.core.exceptions import AuthenticationError
from nexuspay.core.models import User
from nexuspay.core.repositories import UserRepository

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(claims: dict, secret: Optional[str] = None, algorithm: Optional[str] = None) -> str:
    """Sign ``claims`` into a JWT; claims must carry the user ``id``."""
    return jwt.encode(
        claims,
        secret or settings.security.jwt_secret,
        algorithm=algorithm or settings.security.jwt_algorithm,
    )


def decode_access_token(token: str) -> dict:
    """
    Verify a JWT and return its claims.

    Raises:
        AuthenticationError: ``TOKEN_EXPIRED`` or ``INVALID_TOKEN``
    """
    try:
        return jwt.decode(
            token,
            settings.security.jwt_secret,
            algorithms=[settings.security.jwt_algorithm],
        )
    except ExpiredSignatureError:
        raise AuthenticationError(
            message="Authentication session expired",
            error_code="TOKEN_EXPIRED",
        ) from None
    except JWTError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise AuthenticationError(
            message="Invalid authentication token",
            error_code="INVALID_TOKEN",
        ) from None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the authenticated user from the ``Authorization: Bearer`` header."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(
            message="Authentication required",
            error_code="AUTH_REQUIRED",
        )

    claims = decode_access_token(credentials.credentials)
    user_id = claims.get("id")
    if not user_id:
        raise AuthenticationError(
            message="Invalid authentication token",
            error_code="INVALID_TOKEN",
        )

    user = UserRepository(db).get_by_id(str(user_id))
    if user is None:
        raise AuthenticationError(
            message="User not found",
            error_code="USER_NOT_FOUND",
            details={"user_id": str(user_id)},
        )
    return user
