"""Pydantic schemas for user registration and login."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserCreate(BaseModel):
    """Request schema for creating a user."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class LoginRequest(BaseModel):
    """Request schema for logging in."""

    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """Public view of a user."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LoginResponse(UserResponse):
    """User together with freshly issued tokens."""

    token: str
    refresh_token: str
    expires_in: int


class RefreshResponse(BaseModel):
    """New access token issued from a refresh token."""

    token: str
