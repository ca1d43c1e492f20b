from datetime import UTC, datetime
from enum import IntEnum
from typing import Any, Type
from uuid import UUID, uuid4

from sqlalchemy import JSON, TIMESTAMP, Integer, TypeDecorator, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    MappedAsDataclass,
    mapped_column,
)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always comes back in UTC.

    PostgreSQL keeps the offset; SQLite drops it, so naive values read back
    are tagged as UTC.
    """

    impl = TIMESTAMP(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


json_type = JSON().with_variant(JSONB(), "postgresql")


class Base(AsyncAttrs, MappedAsDataclass, DeclarativeBase):
    type_annotation_map = {
        dict[str, Any]: json_type,
        list[str]: json_type,
        datetime: UTCDateTime(),
    }


class BaseWithTimestamps(Base):
    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        init=False,
        default_factory=lambda: datetime.now(UTC),
        insert_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(init=False, default=None, onupdate=func.now())


class BaseEntity(BaseWithTimestamps):
    __abstract__ = True

    id: Mapped[UUID] = mapped_column(init=False, primary_key=True, default_factory=uuid4)


class SQLAlchemyIntEnum(TypeDecorator):
    impl = Integer
    cache_ok = True

    def __init__(self, enum: Type[IntEnum], *args, **kwargs):
        self.enum = enum
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):
        if value is None or isinstance(value, int):
            return value

        return value.value

    def process_result_value(self, value, dialect) -> IntEnum | None:
        if value is None:
            return None
        try:
            return self.enum(value)
        except ValueError:
            return None
