import logging
from typing import Callable
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.content import Content
from src.database.session import get_session
from src.database.watch_history import WatchHistory
from src.exceptions.errors import ContentNotFoundError

logger = logging.getLogger(__name__)

CONTINUE_WATCHING_MAX = 20
RECENTLY_WATCHED_MAX = 50


class WatchHistoryService:
    def __init__(self, session_factory: Callable[[], AsyncSession] = get_session):
        self._session_factory = session_factory

    async def record_progress(
        self, user_id: UUID, content_id: UUID, position: int, watched_seconds: int = 0
    ) -> WatchHistory:
        """Store the playback position for a title, creating the record on first play."""
        async with self._session_factory() as session:
            content = await Content.get_by_id(content_id, session)
            if not content:
                raise ContentNotFoundError()

            entry = await WatchHistory.get_for_user_content(user_id, content_id, session)
            if entry is None:
                entry = WatchHistory(user_id=user_id, content_id=content_id)
                session.add(entry)
            entry.record_position(position, content.duration * 60, watched_seconds)

            try:
                await session.commit()
            except IntegrityError:
                # Lost the race to create the row; update the winner's instead.
                await session.rollback()
                entry = await WatchHistory.get_for_user_content(user_id, content_id, session)
                entry.record_position(position, content.duration * 60, watched_seconds)
                await session.commit()

        return entry

    async def continue_watching(self, user_id: UUID, limit: int = 10) -> list[WatchHistory]:
        async with self._session_factory() as session:
            return await WatchHistory.continue_watching(
                user_id, session, limit=min(max(limit, 1), CONTINUE_WATCHING_MAX)
            )

    async def recently_watched(self, user_id: UUID, limit: int = 20) -> list[WatchHistory]:
        async with self._session_factory() as session:
            return await WatchHistory.recently_watched(
                user_id, session, limit=min(max(limit, 1), RECENTLY_WATCHED_MAX)
            )

    async def stats(self, user_id: UUID) -> dict:
        async with self._session_factory() as session:
            return await WatchHistory.stats_for_user(user_id, session)
