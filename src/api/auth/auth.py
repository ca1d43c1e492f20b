import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError

import src.schema.auth as schema
from src.database.refresh_tokens import RefreshToken
from src.database.session import get_session
from src.database.users import User
from src.exceptions.errors import (
    AuthenticationError,
    EmailAlreadyRegisteredError,
    ValidationError,
)
from src.middleware.auth_middleware import get_current_user
from src.schema.common import ApiResponse, MessageData
from src.services.auth_service import AuthService, TokenService

router = APIRouter()
logger = logging.getLogger(__name__)

auth_service = AuthService()


def _password_error() -> ValidationError:
    message = auth_service.get_password_requirements_error()
    return ValidationError(message, [{"field": "password", "message": message}])


@router.post(
    "/register",
    response_model=ApiResponse[schema.TokenResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(user_data: schema.UserRegisterRequest):
    """Register a new user."""
    if not auth_service.password_service.validate_password_strength(user_data.password):
        raise _password_error()

    async with get_session() as session:
        # Check if user already exists
        if await User.get_by_email(user_data.email.strip(), session):
            raise EmailAlreadyRegisteredError()

        user = User(
            name=user_data.name.strip(),
            email=user_data.email.strip().lower(),
            password_hash=auth_service.password_service.hash_password(user_data.password),
        )

        try:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        except IntegrityError:
            raise EmailAlreadyRegisteredError()

        access_token, refresh_token, expire = await auth_service.create_user_tokens(user, session)

    logger.info(f"User registered: {user.id}")
    return ApiResponse(
        message="User registered successfully",
        data=schema.TokenResponse(
            user=schema.UserResponse.model_validate(user),
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expire,
        ),
    )


@router.post("/login", response_model=ApiResponse[schema.TokenResponse])
async def login(user_data: schema.UserLoginRequest):
    """Authenticate user and return tokens."""
    async with get_session() as session:
        user = await auth_service.authenticate_user(
            user_data.email.strip(), user_data.password, session
        )
        if not user:
            raise AuthenticationError("Invalid credentials")

        if not user.is_active:
            raise AuthenticationError("Your account has been deactivated. Please contact support.")

        await user.touch_login(session)
        access_token, refresh_token, expire = await auth_service.create_user_tokens(user, session)

    return ApiResponse(
        message="Login successful",
        data=schema.TokenResponse(
            user=schema.UserResponse.model_validate(user),
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expire,
        ),
    )


@router.post("/refresh", response_model=ApiResponse[schema.RefreshTokenResponse])
async def refresh_token(token_data: schema.RefreshTokenRequest):
    """Refresh access token using refresh token."""
    async with get_session() as session:
        token_hash = TokenService.hash_token(token_data.refresh_token)

        refresh_token = await RefreshToken.get_by_token_hash(token_hash, session)
        if not refresh_token:
            raise AuthenticationError("Invalid or expired refresh token")

        user = await User.get_by_id(refresh_token.user_id, session)
        if not user or not user.is_active:
            raise AuthenticationError("User not found")

    access_token, expire = TokenService.create_access_token(user.id, user.email, user.role)
    return ApiResponse(data=schema.RefreshTokenResponse(access_token=access_token, expires_at=expire))


@router.post("/logout", response_model=ApiResponse[MessageData])
async def logout(
    logout_data: schema.LogoutRequest, current_user: User = Depends(get_current_user)
):
    """Logout user and revoke refresh token."""
    async with get_session() as session:
        if logout_data.refresh_token:
            await RefreshToken.revoke_token(TokenService.hash_token(logout_data.refresh_token), session)
        else:
            await RefreshToken.revoke_all_user_tokens(current_user.id, session)

    return ApiResponse(message="Logged out successfully", data=MessageData(message="Logged out successfully"))


@router.get("/me", response_model=ApiResponse[schema.UserResponse])
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information."""
    return ApiResponse(data=schema.UserResponse.model_validate(current_user))


@router.post("/change-password", response_model=ApiResponse[MessageData])
async def change_password(
    request_data: schema.ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
):
    """Change user's password."""
    if not auth_service.password_service.verify_password(
        request_data.current_password, current_user.password_hash
    ):
        raise ValidationError(
            "Current password is incorrect",
            [{"field": "currentPassword", "message": "Current password is incorrect"}],
        )

    if not auth_service.password_service.validate_password_strength(request_data.new_password):
        raise _password_error()

    async with get_session() as session:
        user = await User.get_by_id(current_user.id, session)
        user.password_hash = auth_service.password_service.hash_password(request_data.new_password)
        await session.commit()

        # Revoke all refresh tokens for security
        await RefreshToken.revoke_all_user_tokens(user.id, session)

    return ApiResponse(message="Password changed successfully", data=MessageData(message="Password changed successfully"))
