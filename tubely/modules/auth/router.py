"""User registration and token endpoints."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.core.database import get_db
from tubely.core.logging import log_info
from tubely.modules.auth.jwt import get_refresh_user_id
from tubely.modules.auth.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshResponse,
    UserCreate,
    UserResponse,
)
from tubely.modules.auth.service import AuthService, AuthenticationError, UserExistsError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate, db: AsyncSession = Depends(get_db)):
    """Register a new user."""
    service = AuthService(db)
    try:
        user = await service.register(payload.email, payload.password)
    except UserExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    log_info(logger, "User created", user_id=str(user.id))
    return user


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Exchange email and password for an access and a refresh token."""
    service = AuthService(db)
    try:
        user, tokens = await service.login(payload.email.lower(), payload.password)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    return LoginResponse(
        id=user.id,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
        token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    user_id: uuid.UUID = Depends(get_refresh_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Issue a new access token. The refresh token is sent as the bearer token."""
    service = AuthService(db)
    try:
        token = await service.refresh(user_id)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    return RefreshResponse(token=token)
