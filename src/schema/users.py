from typing import Optional

from pydantic import Field

from src.schema.auth import UserResponse
from src.schema.common import CamelModel
from src.schema.subscriptions import SubscriptionResponse


class ProfileUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)


class UserData(CamelModel):
    user: UserResponse


class ProfileData(CamelModel):
    user: UserResponse
    subscription: Optional[SubscriptionResponse]
