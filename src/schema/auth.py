from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from src.schema.common import CamelModel


# Request Models
class UserRegisterRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(
        ..., min_length=8, description="Password must be at least 8 characters"
    )


class UserLoginRequest(CamelModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(CamelModel):
    refresh_token: str


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(
        ..., min_length=8, description="Password must be at least 8 characters"
    )


# Response Models
class UserResponse(CamelModel):
    id: UUID
    name: str
    email: EmailStr
    role: str
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None


class TokenResponse(CamelModel):
    user: UserResponse
    access_token: str
    refresh_token: str
    expires_at: datetime


class RefreshTokenResponse(CamelModel):
    access_token: str
    expires_at: datetime
