from datetime import datetime
from enum import StrEnum
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    and_,
    func,
    select,
    text,
    update,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseEntity, SQLAlchemyIntEnum
from src.database.plans import AccessLevel, QualityLevel


class SubscriptionStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class UserSubscription(BaseEntity):
    __tablename__ = "user_subscriptions"
    __table_args__ = (
        # At most one active subscription per user, enforced by the database.
        Index(
            "uq_user_subscriptions_one_active",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_user_subscriptions_user_status", "user_id", "status"),
        Index("ix_user_subscriptions_end_date", "end_date"),
    )

    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # Kept nullable so a plan without active subscribers can still be deleted.
    plan_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True
    )
    start_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)

    # Entitlements are copied from the plan when the subscription is created,
    # later plan edits only apply to new subscriptions.
    plan_name: Mapped[str] = mapped_column(String(100), nullable=False)
    quality_level: Mapped[QualityLevel] = mapped_column(SQLAlchemyIntEnum(QualityLevel), nullable=False)
    access_level: Mapped[AccessLevel] = mapped_column(SQLAlchemyIntEnum(AccessLevel), nullable=False)
    max_devices: Mapped[int] = mapped_column(Integer, nullable=False)
    max_concurrent_streams: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_trial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    transaction_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, default=None)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default="card")
    payment_date: Mapped[Optional[datetime]] = mapped_column(nullable=True, default=None)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(nullable=True, default=None)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True, default=None)
    expiry_notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def is_active_at(self, now: datetime) -> bool:
        return (
            self.status == SubscriptionStatus.ACTIVE.value
            and self.start_date <= now < self.end_date
        )

    def is_entitled_at(self, now: datetime) -> bool:
        """Active, or cancelled but still inside the paid period."""
        return (
            self.status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.CANCELLED.value)
            and self.start_date <= now < self.end_date
        )

    @classmethod
    async def get_by_id(cls, subscription_id: UUID, session: AsyncSession) -> Optional["UserSubscription"]:
        return await session.get(cls, subscription_id)

    @classmethod
    async def get_active_for_user(
        cls, user_id: UUID, now: datetime, session: AsyncSession
    ) -> Optional["UserSubscription"]:
        """Active subscription whose window contains `now`; the stored status alone is not trusted."""
        query = (
            select(cls)
            .where(
                and_(
                    cls.user_id == user_id,
                    cls.status == SubscriptionStatus.ACTIVE.value,
                    cls.start_date <= now,
                    cls.end_date > now,
                )
            )
            .order_by(cls.start_date.desc())
            .limit(1)
        )
        return await session.scalar(query)

    @classmethod
    async def get_entitled_for_user(
        cls, user_id: UUID, now: datetime, session: AsyncSession
    ) -> Optional["UserSubscription"]:
        query = (
            select(cls)
            .where(
                and_(
                    cls.user_id == user_id,
                    cls.status.in_(
                        [SubscriptionStatus.ACTIVE.value, SubscriptionStatus.CANCELLED.value]
                    ),
                    cls.start_date <= now,
                    cls.end_date > now,
                )
            )
            .order_by(cls.start_date.desc(), cls.created_at.desc())
        )
        candidates = (await session.scalars(query)).all()
        # Prefer a live active row over a cancelled one in its grace period.
        for candidate in candidates:
            if candidate.status == SubscriptionStatus.ACTIVE.value:
                return candidate
        return candidates[0] if candidates else None

    @classmethod
    async def get_latest_for_user(cls, user_id: UUID, session: AsyncSession) -> Optional["UserSubscription"]:
        query = (
            select(cls)
            .where(cls.user_id == user_id)
            .order_by(cls.start_date.desc(), cls.created_at.desc())
            .limit(1)
        )
        return await session.scalar(query)

    @classmethod
    async def expire_lapsed_for_user(cls, user_id: UUID, now: datetime, session: AsyncSession) -> None:
        """Flip stale `active` rows to `expired` so they stop holding the unique slot."""
        await session.execute(
            update(cls)
            .where(
                and_(
                    cls.user_id == user_id,
                    cls.status == SubscriptionStatus.ACTIVE.value,
                    cls.end_date <= now,
                )
            )
            .values(status=SubscriptionStatus.EXPIRED.value)
        )

    @classmethod
    async def list_for_user(
        cls, user_id: UUID, session: AsyncSession, offset: int = 0, limit: int = 10
    ) -> list["UserSubscription"]:
        query = (
            select(cls)
            .where(cls.user_id == user_id)
            .order_by(cls.start_date.desc(), cls.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list((await session.scalars(query)).all())

    @classmethod
    async def count_for_user(cls, user_id: UUID, session: AsyncSession) -> int:
        query = select(func.count()).select_from(cls).where(cls.user_id == user_id)
        return await session.scalar(query) or 0

    @classmethod
    async def count_active_for_plan(cls, plan_id: UUID, session: AsyncSession) -> int:
        query = (
            select(func.count())
            .select_from(cls)
            .where(
                and_(
                    cls.plan_id == plan_id,
                    cls.status == SubscriptionStatus.ACTIVE.value,
                )
            )
        )
        return await session.scalar(query) or 0

    @classmethod
    async def find_expiring_unnotified(
        cls, now: datetime, horizon: datetime, session: AsyncSession
    ) -> list["UserSubscription"]:
        query = select(cls).where(
            and_(
                cls.status == SubscriptionStatus.ACTIVE.value,
                cls.end_date > now,
                cls.end_date <= horizon,
                cls.expiry_notification_sent.is_(False),
            )
        )
        return list((await session.scalars(query)).all())

    @classmethod
    async def find_renewable(cls, horizon: datetime, session: AsyncSession) -> list["UserSubscription"]:
        """Active auto-renewing subscriptions that end before `horizon`, lapsed ones included."""
        query = select(cls).where(
            and_(
                cls.status == SubscriptionStatus.ACTIVE.value,
                cls.auto_renew.is_(True),
                cls.plan_id.is_not(None),
                cls.end_date <= horizon,
            )
        )
        return list((await session.scalars(query)).all())

    @classmethod
    async def find_lapsed(cls, now: datetime, session: AsyncSession) -> list["UserSubscription"]:
        query = select(cls).where(
            and_(
                cls.status == SubscriptionStatus.ACTIVE.value,
                cls.end_date <= now,
            )
        )
        return list((await session.scalars(query)).all())
