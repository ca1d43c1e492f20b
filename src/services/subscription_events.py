from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Optional, Protocol
from uuid import UUID

from src.database.subscriptions import UserSubscription


class SubscriptionEventType(StrEnum):
    CREATED = "created"
    CANCELLED = "cancelled"
    RENEWED = "renewed"
    EXPIRING = "expiring"


@dataclass(frozen=True)
class SubscriptionEvent:
    type: SubscriptionEventType
    user_id: UUID
    subscription_id: UUID
    plan_name: str
    start_date: datetime
    end_date: datetime
    amount: float
    currency: str
    days_left: Optional[int] = None

    @classmethod
    def from_subscription(
        cls,
        event_type: SubscriptionEventType,
        subscription: UserSubscription,
        days_left: Optional[int] = None,
    ) -> "SubscriptionEvent":
        return cls(
            type=event_type,
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            plan_name=subscription.plan_name,
            start_date=subscription.start_date,
            end_date=subscription.end_date,
            amount=subscription.amount,
            currency=subscription.currency,
            days_left=days_left,
        )


class EventPublisher(Protocol):
    def publish(self, event: SubscriptionEvent) -> None: ...
