"""Authentication service for user registration and login."""

import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.modules.auth.jwt import AuthTokens, create_access_token, create_auth_tokens
from tubely.modules.auth.models import User
from tubely.modules.auth.repository import UserRepository


class AuthenticationError(Exception):
    """Exception raised for authentication failures."""

    pass


class UserExistsError(Exception):
    """Exception raised when user already exists."""

    pass


class AuthService:
    """Service for authentication operations."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.user_repo = UserRepository(session)

    async def register(self, email: str, password: str) -> User:
        """Register a new user.

        Raises:
            UserExistsError: If the email is already registered
        """
        if await self.user_repo.get_by_email(email):
            raise UserExistsError(f"User with email {email} already exists")

        try:
            return await self.user_repo.create(email=email, password=password)
        except IntegrityError as e:
            raise UserExistsError(f"User with email {email} already exists") from e

    async def login(self, email: str, password: str) -> tuple[User, AuthTokens]:
        """Authenticate a user and issue tokens.

        Raises:
            AuthenticationError: If the credentials do not match
        """
        user = await self.user_repo.get_by_email(email)
        # Same message for unknown email and wrong password
        if user is None or not user.verify_password(password):
            raise AuthenticationError("Incorrect email or password")

        return user, create_auth_tokens(user.id)

    async def refresh(self, user_id: uuid.UUID) -> str:
        """Issue a new access token for the holder of a valid refresh token.

        Raises:
            AuthenticationError: If the user no longer exists
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise AuthenticationError("User not found")
        return create_access_token(user.id)
