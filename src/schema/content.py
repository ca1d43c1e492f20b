from datetime import UTC, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import Field, field_validator

from src.database.content import ContentRating, ContentType
from src.database.plans import AccessLevel
from src.schema.common import CamelModel

QualityLabel = Literal["SD", "HD", "4K"]
AccessLabel = Literal["Free", "Basic", "Premium", "Ultimate"]


class ContentResponse(CamelModel):
    id: UUID
    title: str
    description: str
    type: str
    genres: list[str]
    release_year: int
    duration: int
    rating: str
    director: str
    language: str
    thumbnail_url: str
    trailer_url: Optional[str]
    subtitles: list[str]
    quality_levels: list[str]
    access_level: str
    is_active: bool
    created_at: datetime

    @field_validator("access_level", mode="before")
    @classmethod
    def access_as_label(cls, value):
        if isinstance(value, int):
            return AccessLevel(value).label
        return value


class ContentDetailResponse(ContentResponse):
    can_stream: Optional[bool] = None


class ContentAdminResponse(ContentResponse):
    video_url: str


class ContentCreateRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    type: ContentType
    genres: list[str] = Field(default_factory=list)
    release_year: int = Field(..., ge=1888, le=2100)
    duration: int = Field(..., ge=1, description="Duration in minutes")
    rating: ContentRating
    director: str = Field(..., min_length=1, max_length=255)
    language: str = "English"
    thumbnail_url: str
    video_url: str
    trailer_url: Optional[str] = None
    subtitles: list[str] = Field(default_factory=list)
    quality_levels: list[QualityLabel] = Field(default_factory=lambda: ["SD", "HD"])
    access_level: AccessLabel = "Basic"
    is_active: bool = True


class ContentUpdateRequest(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[ContentType] = None
    genres: Optional[list[str]] = None
    release_year: Optional[int] = Field(None, ge=1888, le=2100)
    duration: Optional[int] = Field(None, ge=1)
    rating: Optional[ContentRating] = None
    director: Optional[str] = None
    language: Optional[str] = None
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None
    trailer_url: Optional[str] = None
    subtitles: Optional[list[str]] = None
    quality_levels: Optional[list[QualityLabel]] = None
    access_level: Optional[AccessLabel] = None
    is_active: Optional[bool] = None


class ContentData(CamelModel):
    content: ContentDetailResponse


class ContentAdminData(CamelModel):
    content: ContentAdminResponse


class ContentListData(CamelModel):
    content: list[ContentResponse]


# Streaming
class StreamRequest(CamelModel):
    device_id: str = Field(..., min_length=1, max_length=128)
    device_name: Optional[str] = Field(None, max_length=100)
    device_type: Optional[str] = Field(None, max_length=32)
    quality: Optional[QualityLabel] = None


class StreamResponse(CamelModel):
    stream_url: str
    session_token: str
    session_id: str
    quality: str
    expires_at: datetime


class HeartbeatRequest(CamelModel):
    session_id: str = Field(..., min_length=1)
    playback_position: Optional[int] = Field(None, ge=0, description="Seconds from the start")


class HeartbeatResponse(CamelModel):
    status: str = "active"
    session_id: str
    last_heartbeat: datetime
    playback_position: Optional[int] = None

    @field_validator("last_heartbeat", mode="before")
    @classmethod
    def from_timestamp(cls, value):
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, UTC)
        return value


class ActiveStreamResponse(CamelModel):
    session_id: str
    content_id: UUID
    device_id: str
    device_name: str
    device_type: str
    quality: str
    start_time: datetime
    last_heartbeat: datetime
    playback_position: Optional[int] = None

    @field_validator("start_time", "last_heartbeat", mode="before")
    @classmethod
    def from_timestamp(cls, value):
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, UTC)
        return value


class ActiveStreamsData(CamelModel):
    streams: list[ActiveStreamResponse]
    count: int


class TerminateStreamData(CamelModel):
    terminated: bool


class StreamStatsData(CamelModel):
    total_active_sessions: int
    sessions_by_user: dict[str, int]
