from enum import IntEnum
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Float, Integer, String, Text, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseEntity, SQLAlchemyIntEnum


class QualityLevel(IntEnum):
    """Streaming quality tiers, ranked SD < HD < 4K."""

    SD = 0
    HD = 1
    UHD = 2

    @property
    def label(self) -> str:
        return "4K" if self is QualityLevel.UHD else self.name

    @classmethod
    def from_label(cls, label: str) -> "QualityLevel":
        labels = {member.label: member for member in cls}
        try:
            return labels[label]
        except KeyError:
            raise ValueError(f"Unknown quality level: {label}") from None


class AccessLevel(IntEnum):
    """Content access tiers, ranked Free < Basic < Premium < Ultimate."""

    FREE = 0
    BASIC = 1
    PREMIUM = 2
    ULTIMATE = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_label(cls, label: str) -> "AccessLevel":
        labels = {member.label: member for member in cls}
        try:
            return labels[label]
        except KeyError:
            raise ValueError(f"Unknown access level: {label}") from None


class SubscriptionPlan(BaseEntity):
    __tablename__ = "subscription_plans"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    quality_level: Mapped[QualityLevel] = mapped_column(
        SQLAlchemyIntEnum(QualityLevel), nullable=False, default=QualityLevel.SD
    )
    access_level: Mapped[AccessLevel] = mapped_column(
        SQLAlchemyIntEnum(AccessLevel), nullable=False, default=AccessLevel.BASIC
    )
    max_devices: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_concurrent_streams: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_profiles: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    trial_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    features: Mapped[list[str]] = mapped_column(default_factory=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @classmethod
    async def get_by_id(cls, plan_id: UUID, session: AsyncSession) -> Optional["SubscriptionPlan"]:
        return await session.get(cls, plan_id)

    @classmethod
    async def list_active(
        cls, session: AsyncSession, quality_level: QualityLevel | None = None
    ) -> list["SubscriptionPlan"]:
        """Active plans, cheapest first."""
        query = select(cls).where(cls.is_active.is_(True))
        if quality_level is not None:
            query = query.where(cls.quality_level == quality_level)
        query = query.order_by(cls.price.asc(), cls.name.asc())
        result = await session.scalars(query)
        return list(result.all())
