from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from src.database.plans import AccessLevel, QualityLevel
from src.schema.common import CamelModel


def _quality_label(value):
    if isinstance(value, int):
        return QualityLevel(value).label
    return value


def _access_label(value):
    if isinstance(value, int):
        return AccessLevel(value).label
    return value


# Plans
class PlanResponse(CamelModel):
    id: UUID
    name: str
    description: str
    price: float
    currency: str
    duration_days: int
    quality_level: str
    access_level: str
    max_devices: int
    max_concurrent_streams: int
    max_profiles: int
    trial_days: int
    features: list[str]
    is_active: bool

    @field_validator("quality_level", mode="before")
    @classmethod
    def quality_as_label(cls, value):
        return _quality_label(value)

    @field_validator("access_level", mode="before")
    @classmethod
    def access_as_label(cls, value):
        return _access_label(value)


class PlanCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    price: float
    duration_days: int
    quality_level: str
    access_level: str = "Basic"
    max_devices: int = 1
    max_concurrent_streams: int = 1
    max_profiles: int = 1
    currency: str = Field("USD", min_length=3, max_length=3)
    trial_days: int = Field(0, ge=0)
    features: list[str] = Field(default_factory=list)
    is_active: bool = True


class PlanUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[float] = None
    duration_days: Optional[int] = None
    quality_level: Optional[str] = None
    access_level: Optional[str] = None
    max_devices: Optional[int] = None
    max_concurrent_streams: Optional[int] = None
    max_profiles: Optional[int] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    trial_days: Optional[int] = Field(None, ge=0)
    features: Optional[list[str]] = None
    is_active: Optional[bool] = None


class PlanData(CamelModel):
    plan: PlanResponse


class PlanListData(CamelModel):
    plans: list[PlanResponse]


# Subscriptions
class SubscribeRequest(CamelModel):
    plan_id: UUID
    payment_method: str = Field("card", min_length=1, max_length=32)
    auto_renew: bool = True


class CancelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class RenewRequest(CamelModel):
    plan_id: Optional[UUID] = None


class SubscriptionResponse(CamelModel):
    id: UUID
    user_id: UUID
    plan_id: Optional[UUID]
    plan_name: str
    status: str
    start_date: datetime
    end_date: datetime
    quality_level: str
    access_level: str
    max_devices: int
    max_concurrent_streams: int
    auto_renew: bool
    is_trial: bool
    transaction_id: Optional[str]
    amount: float
    currency: str
    payment_method: str
    payment_date: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    created_at: datetime

    @field_validator("quality_level", mode="before")
    @classmethod
    def quality_as_label(cls, value):
        return _quality_label(value)

    @field_validator("access_level", mode="before")
    @classmethod
    def access_as_label(cls, value):
        return _access_label(value)


class SubscriptionData(CamelModel):
    subscription: Optional[SubscriptionResponse]


class SubscriptionHistoryData(CamelModel):
    subscriptions: list[SubscriptionResponse]
