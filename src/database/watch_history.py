from datetime import UTC, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Float, ForeignKey, Integer, UniqueConstraint, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseEntity

COMPLETION_THRESHOLD = 90.0


class WatchHistory(BaseEntity):
    __tablename__ = "watch_history"
    __table_args__ = (UniqueConstraint("user_id", "content_id", name="uq_watch_history_user_content"),)

    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content_id: Mapped[UUID] = mapped_column(ForeignKey("content.id", ondelete="CASCADE"), nullable=False)
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    watch_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    watched_at: Mapped[datetime] = mapped_column(default_factory=lambda: datetime.now(UTC))

    @classmethod
    async def get_for_user_content(
        cls, user_id: UUID, content_id: UUID, session: AsyncSession
    ) -> Optional["WatchHistory"]:
        query = select(cls).where(and_(cls.user_id == user_id, cls.content_id == content_id))
        return await session.scalar(query)

    @classmethod
    async def continue_watching(cls, user_id: UUID, session: AsyncSession, limit: int = 10) -> list["WatchHistory"]:
        query = (
            select(cls)
            .where(
                and_(
                    cls.user_id == user_id,
                    cls.completed.is_(False),
                    cls.progress > 0,
                )
            )
            .order_by(cls.watched_at.desc())
            .limit(limit)
        )
        return list((await session.scalars(query)).all())

    @classmethod
    async def recently_watched(cls, user_id: UUID, session: AsyncSession, limit: int = 20) -> list["WatchHistory"]:
        query = select(cls).where(cls.user_id == user_id).order_by(cls.watched_at.desc()).limit(limit)
        return list((await session.scalars(query)).all())

    @classmethod
    async def stats_for_user(cls, user_id: UUID, session: AsyncSession) -> dict:
        query = select(
            func.count(cls.id),
            func.coalesce(func.sum(cls.watch_duration), 0),
            func.count(cls.id).filter(cls.completed.is_(True)),
        ).where(cls.user_id == user_id)
        titles, seconds, completed = (await session.execute(query)).one()
        return {
            "titles_watched": titles,
            "titles_completed": completed,
            "total_watch_seconds": int(seconds),
        }

    def record_position(self, position: int, total_seconds: int, watched_seconds: int = 0) -> None:
        self.last_position = max(position, 0)
        if total_seconds > 0:
            self.progress = min(100.0, round(self.last_position / total_seconds * 100, 2))
        self.watch_duration += max(watched_seconds, 0)
        self.completed = self.progress >= COMPLETION_THRESHOLD
        self.watched_at = datetime.now(UTC)
