from typing import Optional
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.database.session import get_session
from src.database.users import User
from src.exceptions.errors import AuthenticationError, AuthorizationError
from src.services.auth_service import TokenService

security = HTTPBearer(auto_error=False)


def _user_id_from_credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> UUID:
    if not credentials:
        raise AuthenticationError(
            "Not authorized to access this route. Please provide a valid token."
        )

    payload = TokenService.verify_access_token(credentials.credentials)

    user_id_str = payload.get("sub")
    if not user_id_str:
        raise AuthenticationError("Invalid token: missing user id")

    try:
        return UUID(user_id_str)
    except ValueError:
        raise AuthenticationError("Invalid token: malformed user id")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """Get the current authenticated user from JWT token."""
    user_id = _user_id_from_credentials(credentials)

    async with get_session() as session:
        user = await User.get_by_id(user_id, session)

    if not user:
        raise AuthenticationError("User no longer exists")

    if not user.is_active:
        raise AuthorizationError("Your account has been deactivated. Please contact support.")

    return user


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[User]:
    """Get the current user if authenticated, otherwise return None."""
    if not credentials:
        return None

    try:
        return await get_current_user(credentials)
    except (AuthenticationError, AuthorizationError):
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise AuthorizationError(f"User role '{user.role}' is not authorized to access this route")
    return user
