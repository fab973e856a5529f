"""JWT token management for authentication."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from tubely.core.config import settings

ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenPayload(BaseModel):
    """JWT token payload structure."""

    sub: str  # User ID
    exp: datetime
    iat: datetime
    type: str  # "access" or "refresh"
    jti: str


class AuthTokens(BaseModel):
    """Authentication tokens response."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


def create_token(
    user_id: uuid.UUID,
    token_type: str,
    expires_delta: timedelta,
    secret_key: Optional[str] = None,
) -> str:
    """Create a signed JWT.

    Args:
        user_id: User UUID
        token_type: "access" or "refresh"
        expires_delta: Token lifetime, may be negative to mint expired tokens
        secret_key: Signing secret (defaults to SECRET_KEY)

    Returns:
        str: The encoded token
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "exp": now + expires_delta,
        "iat": now,
        "type": token_type,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, secret_key or settings.SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(user_id: uuid.UUID) -> str:
    expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return create_token(user_id, ACCESS_TOKEN_TYPE, expires_delta)


def create_refresh_token(user_id: uuid.UUID) -> str:
    expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return create_token(user_id, REFRESH_TOKEN_TYPE, expires_delta)


def create_auth_tokens(user_id: uuid.UUID) -> AuthTokens:
    """Create both access and refresh tokens for a user."""
    return AuthTokens(
        access_token=create_access_token(user_id),
        refresh_token=create_refresh_token(user_id),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def decode_token(token: str, secret_key: Optional[str] = None) -> TokenPayload | None:
    """Decode and validate a JWT token.

    Signature and expiry are checked by python-jose; any failure, including
    a payload missing required claims, yields None.

    Args:
        token: Encoded JWT token
        secret_key: Verification secret (defaults to SECRET_KEY)

    Returns:
        TokenPayload | None: Decoded payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, secret_key or settings.SECRET_KEY, algorithms=[ALGORITHM])
        return TokenPayload(
            sub=payload["sub"],
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            type=payload["type"],
            jti=payload["jti"],
        )
    except (JWTError, KeyError, TypeError, ValueError):
        return None


def validate_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> TokenPayload | None:
    """Validate a JWT token and check its type.

    Args:
        token: Encoded JWT token
        expected_type: Expected token type ("access" or "refresh")

    Returns:
        TokenPayload | None: Decoded payload if valid, None otherwise
    """
    payload = decode_token(token)

    if payload is None:
        return None

    if payload.type != expected_type:
        return None

    if payload.exp < datetime.now(timezone.utc):
        return None

    return payload


def get_user_id_from_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> uuid.UUID | None:
    """Extract user ID from a valid token.

    Args:
        token: Encoded JWT token
        expected_type: Expected token type

    Returns:
        uuid.UUID | None: User ID if token is valid
    """
    payload = validate_token(token, expected_type)
    if payload is None:
        return None

    try:
        return uuid.UUID(payload.sub)
    except ValueError:
        return None


# FastAPI dependencies
# auto_error is off so a missing header yields 401 rather than 403
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _user_id_from_credentials(
    credentials: Optional[HTTPAuthorizationCredentials],
    expected_type: str,
) -> uuid.UUID:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Couldn't find JWT")

    user_id = get_user_id_from_token(credentials.credentials, expected_type)
    if user_id is None:
        raise _unauthorized("Couldn't validate JWT")
    return user_id


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> uuid.UUID:
    """Get the authenticated user ID from an access token.

    This is a FastAPI dependency that should be used with Depends().

    Raises:
        HTTPException: 401 if the token is missing, malformed, expired or
            signed with another secret
    """
    return _user_id_from_credentials(credentials, ACCESS_TOKEN_TYPE)


async def get_refresh_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> uuid.UUID:
    """Get the user ID from a refresh token presented as a bearer token."""
    return _user_id_from_credentials(credentials, REFRESH_TOKEN_TYPE)
