import logging

from src.database.refresh_tokens import RefreshToken
from src.database.session import get_session

logger = logging.getLogger(__name__)


async def cleanup_expired_refresh_tokens() -> None:
    async with get_session() as session:
        removed = await RefreshToken.cleanup_expired_tokens(session)
    if removed:
        logger.info(f"Removed {removed} expired refresh tokens")
