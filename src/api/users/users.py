import logging

from fastapi import APIRouter, Depends

import src.schema.users as schema
from src.api.dependencies import get_subscription_ledger
from src.database.session import get_session
from src.database.users import User
from src.middleware.auth_middleware import get_current_user
from src.schema.auth import UserResponse
from src.schema.common import ApiResponse
from src.schema.subscriptions import SubscriptionResponse
from src.services.subscription_ledger import SubscriptionLedger

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/profile", response_model=ApiResponse[schema.ProfileData])
async def get_profile(
    user: User = Depends(get_current_user),
    ledger: SubscriptionLedger = Depends(get_subscription_ledger),
):
    subscription = await ledger.get_active(user.id)
    return ApiResponse(
        data=schema.ProfileData(
            user=UserResponse.model_validate(user),
            subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
        )
    )


@router.put("/profile", response_model=ApiResponse[schema.UserData])
async def update_profile(
    request: schema.ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
):
    async with get_session() as session:
        user = await User.get_by_id(current_user.id, session)
        if request.name is not None:
            user.name = request.name.strip()
        await session.commit()
        await session.refresh(user)

    logger.info(f"Profile updated: {user.id}")
    return ApiResponse(message="Profile updated", data=schema.UserData(user=UserResponse.model_validate(user)))
