from src.cache.redis import get_redis
from src.services.session_registry import SessionRegistry


async def cleanup_stale_sessions() -> int:
    return await SessionRegistry(get_redis()).cleanup_stale_sessions()
