from datetime import UTC, datetime
from enum import StrEnum
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, String, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseEntity


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"


class User(BaseEntity):
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.USER.value, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(nullable=True, default=None)

    @classmethod
    async def get_by_email(cls, email: str, session: AsyncSession) -> Optional["User"]:
        """Get user by email address."""
        # Perform case-insensitive email lookup
        query = select(cls).where(func.lower(cls.email) == email.lower())
        result = await session.execute(query)
        return result.scalar_one_or_none()

    @classmethod
    async def get_by_id(cls, user_id: UUID, session: AsyncSession) -> Optional["User"]:
        """Get user by ID."""
        return await session.get(cls, user_id)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    async def touch_login(self, session: AsyncSession) -> None:
        self.last_login_at = datetime.now(UTC)
        await session.commit()
