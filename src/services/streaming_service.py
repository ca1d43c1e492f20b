import logging
from typing import Callable, Optional
from urllib.parse import urlencode, urljoin
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.content import Content
from src.database.plans import AccessLevel, QualityLevel
from src.database.session import get_session
from src.database.subscriptions import UserSubscription
from src.exceptions.errors import (
    AuthorizationError,
    ContentNotFoundError,
    StreamSessionNotFoundError,
    ValidationError,
)
from src.schema.content import StreamResponse
from src.services import access_evaluator
from src.services.session_registry import SessionConfig, SessionRegistry, StreamSession
from src.services.subscription_ledger import SubscriptionLedger
from src.services.watch_history_service import WatchHistoryService

logger = logging.getLogger(__name__)


def pick_quality(subscription: UserSubscription, offered: list[str], requested: Optional[str]) -> QualityLevel:
    """Resolve the quality to stream at.

    Without an explicit request this is the best quality the title offers
    within the plan's tier.
    """
    offered_levels = []
    for label in offered:
        try:
            offered_levels.append(QualityLevel.from_label(label))
        except ValueError:
            logger.warning(f"Ignoring unknown quality label on content: {label}")

    if requested is not None:
        try:
            quality = QualityLevel.from_label(requested)
        except ValueError:
            raise ValidationError(
                "Invalid quality", [{"field": "quality", "message": "Quality must be SD, HD or 4K"}]
            ) from None
        if offered_levels and quality not in offered_levels:
            raise ValidationError(
                f"This title is not available in {quality.label}",
                [{"field": "quality", "message": f"Available: {', '.join(q.label for q in sorted(offered_levels))}"}],
            )
        return quality

    tier = QualityLevel(subscription.quality_level)
    within_tier = [level for level in offered_levels if level <= tier]
    if within_tier:
        return max(within_tier)
    if offered_levels:
        return min(offered_levels)
    return tier


class StreamingService:
    """Admits stream requests and keeps their sessions alive."""

    def __init__(
        self,
        ledger: SubscriptionLedger,
        registry: SessionRegistry,
        watch_history: Optional[WatchHistoryService] = None,
        session_factory: Callable[[], AsyncSession] = get_session,
    ):
        self.ledger = ledger
        self.registry = registry
        self.watch_history = watch_history or WatchHistoryService(session_factory)
        self._session_factory = session_factory

    async def start_stream(
        self,
        user_id: UUID,
        content_id: UUID,
        device_id: str,
        device_name: Optional[str] = None,
        device_type: Optional[str] = None,
        quality: Optional[str] = None,
    ) -> StreamResponse:
        async with self._session_factory() as session:
            content = await Content.get_by_id(content_id, session)
        if not content or not content.is_active:
            raise ContentNotFoundError()

        subscription = await self.ledger.get_entitled(user_id)
        access_evaluator.ensure_content_level(subscription, AccessLevel(content.access_level))

        level = pick_quality(subscription, content.quality_levels, quality)
        access_evaluator.ensure_quality(subscription, level)

        admitted = await self.registry.create_session(
            user_id=user_id,
            content_id=content.id,
            device_id=device_id,
            quality=level.label,
            max_concurrent=subscription.max_concurrent_streams,
            device_name=device_name,
            device_type=device_type,
        )

        base = urljoin(SessionConfig.STREAM_BASE_URL.rstrip("/") + "/", content.video_url)
        stream_url = f"{base}?{urlencode({'quality': level.label, 'token': admitted.token})}"
        return StreamResponse(
            stream_url=stream_url,
            session_token=admitted.token,
            session_id=admitted.session_id,
            quality=level.label,
            expires_at=admitted.expires_at,
        )

    async def heartbeat(
        self, user_id: UUID, session_id: str, playback_position: Optional[int] = None
    ) -> StreamSession:
        subscription = await self.ledger.get_entitled(user_id)
        if subscription is None:
            await self.registry.terminate_session(user_id, session_id)
            raise AuthorizationError("Your subscription has ended. Please renew to continue watching.")

        session = await self.registry.heartbeat(user_id, session_id, playback_position)
        if session is None:
            raise StreamSessionNotFoundError()

        if playback_position is not None:
            try:
                await self.watch_history.record_progress(
                    user_id, UUID(session.content_id), playback_position
                )
            except ContentNotFoundError:
                logger.warning(f"Heartbeat for removed content {session.content_id} in session {session_id}")

        return session
