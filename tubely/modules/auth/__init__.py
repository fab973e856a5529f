"""Authentication module."""

from tubely.modules.auth.jwt import (
    AuthTokens,
    TokenPayload,
    create_access_token,
    create_auth_tokens,
    create_refresh_token,
    create_token,
    decode_token,
    get_current_user_id,
    get_user_id_from_token,
    validate_token,
)
from tubely.modules.auth.models import User, hash_password, verify_password
from tubely.modules.auth.repository import UserRepository
from tubely.modules.auth.router import router as auth_router
from tubely.modules.auth.service import AuthService, AuthenticationError, UserExistsError

__all__ = [
    # Models
    "User",
    "hash_password",
    "verify_password",
    # Repository
    "UserRepository",
    # JWT
    "AuthTokens",
    "TokenPayload",
    "create_token",
    "create_access_token",
    "create_refresh_token",
    "create_auth_tokens",
    "decode_token",
    "validate_token",
    "get_user_id_from_token",
    "get_current_user_id",
    # Service
    "AuthService",
    "AuthenticationError",
    "UserExistsError",
    # Router
    "auth_router",
]
