from datetime import datetime
from uuid import UUID

from pydantic import Field

from src.schema.common import CamelModel


class ProgressRequest(CamelModel):
    position: int = Field(..., ge=0, description="Playback position in seconds")
    watched_seconds: int = Field(0, ge=0)


class WatchHistoryResponse(CamelModel):
    id: UUID
    content_id: UUID
    progress: float
    last_position: int
    watch_duration: int
    completed: bool
    watched_at: datetime


class WatchHistoryData(CamelModel):
    watch_history: WatchHistoryResponse


class WatchHistoryListData(CamelModel):
    items: list[WatchHistoryResponse]
    count: int


class WatchStatsData(CamelModel):
    titles_watched: int
    titles_completed: int
    total_watch_seconds: int
