from enum import StrEnum
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Integer, String, Text, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import BaseEntity, SQLAlchemyIntEnum
from src.database.plans import AccessLevel


class ContentType(StrEnum):
    MOVIE = "movie"
    SERIES = "series"
    DOCUMENTARY = "documentary"


class ContentRating(StrEnum):
    G = "G"
    PG = "PG"
    PG_13 = "PG-13"
    R = "R"
    NC_17 = "NC-17"


SORTABLE_FIELDS = ("release_year", "title", "created_at", "duration")


class Content(BaseEntity):
    __tablename__ = "content"

    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    release_year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes
    rating: Mapped[str] = mapped_column(String(10), nullable=False)
    director: Mapped[str] = mapped_column(String(255), nullable=False)
    language: Mapped[str] = mapped_column(String(50), nullable=False)
    thumbnail_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    video_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    trailer_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True, default=None)
    genres: Mapped[list[str]] = mapped_column(default_factory=list)
    subtitles: Mapped[list[str]] = mapped_column(default_factory=list)
    quality_levels: Mapped[list[str]] = mapped_column(default_factory=list)
    access_level: Mapped[AccessLevel] = mapped_column(
        SQLAlchemyIntEnum(AccessLevel), nullable=False, default=AccessLevel.BASIC
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @classmethod
    async def get_by_id(cls, content_id: UUID, session: AsyncSession) -> Optional["Content"]:
        return await session.get(cls, content_id)

    @classmethod
    def browse_query(
        cls,
        type_: str | None = None,
        genre: str | None = None,
        search: str | None = None,
    ):
        query = select(cls).where(cls.is_active.is_(True))
        if type_:
            query = query.where(cls.type == type_)
        if genre:
            # genres is a JSON array; match the quoted element in its text form
            query = query.where(cast(cls.genres, String).like(f'%"{genre}"%'))
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(cls.title.ilike(pattern), cls.description.ilike(pattern)))
        return query

    @classmethod
    async def browse(
        cls,
        session: AsyncSession,
        *,
        type_: str | None = None,
        genre: str | None = None,
        search: str | None = None,
        sort_by: str = "release_year",
        descending: bool = True,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list["Content"], int]:
        base = cls.browse_query(type_=type_, genre=genre, search=search)
        total = await session.scalar(select(func.count()).select_from(base.subquery())) or 0

        column = getattr(cls, sort_by if sort_by in SORTABLE_FIELDS else "release_year")
        ordered = base.order_by(column.desc() if descending else column.asc())
        items = (await session.scalars(ordered.offset(offset).limit(limit))).all()
        return list(items), total
