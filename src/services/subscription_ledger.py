import logging
import math
import os
import secrets
from datetime import UTC, datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.plans import SubscriptionPlan
from src.database.session import get_session
from src.database.subscriptions import SubscriptionStatus, UserSubscription
from src.exceptions.errors import (
    DuplicateActiveSubscriptionError,
    NoActiveSubscriptionError,
    PlanNotFoundError,
)
from src.services.subscription_events import (
    EventPublisher,
    SubscriptionEvent,
    SubscriptionEventType,
)

logger = logging.getLogger(__name__)


class SubscriptionConfig:
    """Subscription lifecycle configuration."""

    EXPIRY_WARNING_DAYS = int(os.getenv("EXPIRY_WARNING_DAYS", "3"))
    EXPIRY_CHECK_INTERVAL_MINUTES = int(os.getenv("EXPIRY_CHECK_INTERVAL_MINUTES", "60"))
    SWEEP_INTERVAL_HOURS = int(os.getenv("SUBSCRIPTION_SWEEP_INTERVAL_HOURS", "12"))


def utc_now() -> datetime:
    return datetime.now(UTC)


class SubscriptionLedger:
    """Owns user subscription records and their lifecycle.

    "Active" is always evaluated against the clock at read time; the stored
    status is only trusted together with the subscription window. Every
    successful transition publishes a `SubscriptionEvent`.
    """

    def __init__(
        self,
        publisher: EventPublisher,
        session_factory: Callable[[], AsyncSession] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.publisher = publisher
        self._session_factory = session_factory
        self.clock = clock

    def _publish(self, event_type: SubscriptionEventType, subscription: UserSubscription, **kwargs) -> None:
        self.publisher.publish(SubscriptionEvent.from_subscription(event_type, subscription, **kwargs))

    async def _create(
        self, user_id: UUID, plan_id: UUID, payment_method: str, auto_renew: bool
    ) -> UserSubscription:
        now = self.clock()
        async with self._session_factory() as session:
            plan = await SubscriptionPlan.get_by_id(plan_id, session)
            if not plan or not plan.is_active:
                raise PlanNotFoundError()

            # Flipping lapsed rows first frees the user's unique active slot
            # and takes the write lock before the existence check.
            await UserSubscription.expire_lapsed_for_user(user_id, now, session)

            if await UserSubscription.get_active_for_user(user_id, now, session):
                raise DuplicateActiveSubscriptionError()

            subscription = self._build(
                user_id, plan, now, now + timedelta(days=plan.duration_days), payment_method, auto_renew
            )
            session.add(subscription)
            try:
                await session.commit()
            except IntegrityError as e:
                # Another request inserted an active row between our check and insert.
                await session.rollback()
                raise DuplicateActiveSubscriptionError() from e

        return subscription

    def _build(
        self,
        user_id: UUID,
        plan: SubscriptionPlan,
        start_date: datetime,
        end_date: datetime,
        payment_method: str,
        auto_renew: bool,
    ) -> UserSubscription:
        return UserSubscription(
            user_id=user_id,
            plan_id=plan.id,
            start_date=start_date,
            end_date=end_date,
            plan_name=plan.name,
            quality_level=plan.quality_level,
            access_level=plan.access_level,
            max_devices=plan.max_devices,
            max_concurrent_streams=plan.max_concurrent_streams,
            auto_renew=auto_renew,
            is_trial=plan.trial_days > 0,
            transaction_id=f"txn_{secrets.token_hex(12)}",
            amount=plan.price,
            currency=plan.currency,
            payment_method=payment_method,
            payment_date=self.clock(),
        )

    async def subscribe(
        self,
        user_id: UUID,
        plan_id: UUID,
        payment_method: str = "card",
        auto_renew: bool = True,
    ) -> UserSubscription:
        subscription = await self._create(user_id, plan_id, payment_method, auto_renew)
        logger.info(f"User {user_id} subscribed to {subscription.plan_name} until {subscription.end_date}")
        self._publish(SubscriptionEventType.CREATED, subscription)
        return subscription

    async def cancel(self, user_id: UUID, reason: Optional[str] = None) -> UserSubscription:
        """Cancel the active subscription. Access remains until its end date."""
        now = self.clock()
        async with self._session_factory() as session:
            subscription = await UserSubscription.get_active_for_user(user_id, now, session)
            if not subscription:
                raise NoActiveSubscriptionError()

            subscription.status = SubscriptionStatus.CANCELLED.value
            subscription.cancelled_at = now
            subscription.cancellation_reason = reason
            subscription.auto_renew = False
            await session.commit()

        logger.info(f"User {user_id} cancelled subscription {subscription.id}")
        self._publish(SubscriptionEventType.CANCELLED, subscription)
        return subscription

    async def renew(
        self, user_id: UUID, plan_id: Optional[UUID] = None, payment_method: Optional[str] = None
    ) -> UserSubscription:
        """Start a new period, on the last plan unless another one is given."""
        now = self.clock()
        async with self._session_factory() as session:
            if await UserSubscription.get_active_for_user(user_id, now, session):
                raise DuplicateActiveSubscriptionError("Cannot renew an active subscription")

            latest = await UserSubscription.get_latest_for_user(user_id, session)

        if plan_id is None:
            if not latest or latest.plan_id is None:
                raise NoActiveSubscriptionError("No previous subscription to renew")
            plan_id = latest.plan_id

        if payment_method is None:
            payment_method = latest.payment_method if latest else "card"

        subscription = await self._create(user_id, plan_id, payment_method, auto_renew=True)
        logger.info(f"User {user_id} renewed {subscription.plan_name} until {subscription.end_date}")
        self._publish(SubscriptionEventType.RENEWED, subscription)
        return subscription

    async def find_renewable(self, window: timedelta) -> list[UserSubscription]:
        async with self._session_factory() as session:
            return await UserSubscription.find_renewable(self.clock() + window, session)

    async def auto_renew(self, subscription: UserSubscription) -> UserSubscription:
        """Roll an auto-renewing subscription into its next period before it lapses.

        The new period starts now and ends one plan duration after the old end
        date, so access never drops between the two rows.
        """
        now = self.clock()
        async with self._session_factory() as session:
            current = await UserSubscription.get_by_id(subscription.id, session)
            if (
                not current
                or current.status != SubscriptionStatus.ACTIVE.value
                or not current.auto_renew
                or current.plan_id is None
            ):
                raise NoActiveSubscriptionError("Subscription is no longer set to renew")

            plan = await SubscriptionPlan.get_by_id(current.plan_id, session)
            if not plan or not plan.is_active:
                raise PlanNotFoundError()

            anchor = max(current.end_date, now)
            current.status = SubscriptionStatus.EXPIRED.value
            # The old row must leave the active slot before the new one is inserted.
            await session.flush()

            renewed = self._build(
                current.user_id,
                plan,
                now,
                anchor + timedelta(days=plan.duration_days),
                current.payment_method,
                auto_renew=True,
            )
            session.add(renewed)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateActiveSubscriptionError() from e

        logger.info(f"Auto-renewed {renewed.plan_name} for user {renewed.user_id} until {renewed.end_date}")
        self._publish(SubscriptionEventType.RENEWED, renewed)
        return renewed

    async def get_active(self, user_id: UUID) -> Optional[UserSubscription]:
        async with self._session_factory() as session:
            return await UserSubscription.get_active_for_user(user_id, self.clock(), session)

    async def get_entitled(self, user_id: UUID) -> Optional[UserSubscription]:
        """The subscription that currently grants access, including a cancelled one in its grace period."""
        async with self._session_factory() as session:
            return await UserSubscription.get_entitled_for_user(user_id, self.clock(), session)

    async def history(self, user_id: UUID, page: int = 1, limit: int = 10) -> tuple[list[UserSubscription], int]:
        page = max(page, 1)
        limit = max(limit, 1)
        async with self._session_factory() as session:
            items = await UserSubscription.list_for_user(
                user_id, session, offset=(page - 1) * limit, limit=limit
            )
            total = await UserSubscription.count_for_user(user_id, session)
        return items, total

    async def find_expiring_unnotified(self, window: timedelta) -> list[UserSubscription]:
        now = self.clock()
        async with self._session_factory() as session:
            return await UserSubscription.find_expiring_unnotified(now, now + window, session)

    async def mark_expiry_notified(self, subscription_id: UUID) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(UserSubscription)
                .where(
                    UserSubscription.id == subscription_id,
                    UserSubscription.expiry_notification_sent.is_(False),
                )
                .values(expiry_notification_sent=True)
            )
            await session.commit()
        return result.rowcount > 0

    def publish_expiring(self, subscription: UserSubscription) -> None:
        remaining = (subscription.end_date - self.clock()).total_seconds()
        days_left = max(math.ceil(remaining / 86400), 1)
        self._publish(SubscriptionEventType.EXPIRING, subscription, days_left=days_left)

    async def expire_lapsed(self) -> list[UserSubscription]:
        """Mark active subscriptions past their end date as expired and return them.

        Bookkeeping only; access checks never wait for this.
        """
        now = self.clock()
        async with self._session_factory() as session:
            lapsed = await UserSubscription.find_lapsed(now, session)
            for subscription in lapsed:
                subscription.status = SubscriptionStatus.EXPIRED.value
            await session.commit()

        if lapsed:
            logger.info(f"Expired {len(lapsed)} lapsed subscriptions")
        return lapsed
