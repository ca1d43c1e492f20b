import logging
import os
import secrets
import time
from datetime import UTC, datetime
from typing import Callable, Optional
from uuid import UUID

from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.exceptions.errors import ConcurrentLimitExceededError, DependencyError

logger = logging.getLogger(__name__)


class SessionConfig:
    """Streaming session configuration."""

    TIMEOUT_SECONDS = int(os.getenv("SESSION_TIMEOUT_SECONDS", "3600"))
    STALE_SECONDS = int(os.getenv("SESSION_STALE_SECONDS", "120"))
    SWEEP_INTERVAL_SECONDS = int(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "300"))
    STREAM_BASE_URL = os.getenv("STREAM_BASE_URL", "https://stream.streamvault.tv/v1")


SESSION_PREFIX = "session:"
CONCURRENT_PREFIX = "concurrent:"

# Runs as one unit on the server: forget devices whose session key is gone,
# refuse a new device once the set is full, then write the session and
# reserve the device. A device that already holds a slot keeps it.
ADMIT_SESSION_SCRIPT = """
local members = redis.call('SMEMBERS', KEYS[1])
for _, device in ipairs(members) do
    if redis.call('EXISTS', ARGV[5] .. device) == 0 then
        redis.call('SREM', KEYS[1], device)
    end
end
if redis.call('SISMEMBER', KEYS[1], ARGV[1]) == 0
        and redis.call('SCARD', KEYS[1]) >= tonumber(ARGV[2]) then
    return 0
end
redis.call('SET', KEYS[2], ARGV[4], 'EX', tonumber(ARGV[3]))
redis.call('SADD', KEYS[1], ARGV[1])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[3]))
return 1
"""


# Refreshes a session only while the key still holds the same session; a
# terminated or replaced session is never written back.
REFRESH_SESSION_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
if not raw or not string.find(raw, ARGV[1], 1, true) then
    return 0
end
redis.call('SET', KEYS[1], ARGV[2], 'EX', tonumber(ARGV[3]))
redis.call('SADD', KEYS[2], ARGV[4])
redis.call('EXPIRE', KEYS[2], tonumber(ARGV[3]))
return 1
"""


def session_key(user_id: str, device_id: str) -> str:
    return f"{SESSION_PREFIX}{user_id}:{device_id}"


def concurrent_key(user_id: str) -> str:
    return f"{CONCURRENT_PREFIX}{user_id}"


class StreamSession(BaseModel):
    session_id: str
    user_id: str
    content_id: str
    device_id: str
    device_name: str = "Unknown Device"
    device_type: str = "other"
    quality: str
    start_time: float
    last_heartbeat: float
    playback_position: Optional[int] = None

    def is_stale(self, now: float, window: float) -> bool:
        return now - self.last_heartbeat > window


class AdmittedSession(BaseModel):
    session_id: str
    token: str
    expires_at: datetime


class SessionRegistry:
    """Per-device streaming sessions kept in redis.

    Each session lives under ``session:{user}:{device}`` with a TTL, and the
    user's live devices are tracked in the ``concurrent:{user}`` set. The TTL
    is the final backstop; stale sessions are also evicted lazily on read and
    by the periodic sweep.
    """

    def __init__(
        self,
        redis: Redis,
        timeout_seconds: int = SessionConfig.TIMEOUT_SECONDS,
        stale_seconds: int = SessionConfig.STALE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.timeout_seconds = timeout_seconds
        self.stale_seconds = stale_seconds
        self.clock = clock
        self._admit = redis.register_script(ADMIT_SESSION_SCRIPT)
        self._refresh = redis.register_script(REFRESH_SESSION_SCRIPT)

    async def create_session(
        self,
        user_id: UUID | str,
        content_id: UUID | str,
        device_id: str,
        quality: str,
        max_concurrent: int,
        device_name: Optional[str] = None,
        device_type: Optional[str] = None,
    ) -> AdmittedSession:
        user_id = str(user_id)
        now = self.clock()

        # Evict stale sessions first so they stop holding a slot.
        await self.get_active_streams(user_id)

        session = StreamSession(
            session_id=f"session_{int(now * 1000)}_{secrets.token_hex(8)}",
            user_id=user_id,
            content_id=str(content_id),
            device_id=device_id,
            device_name=device_name or "Unknown Device",
            device_type=device_type or "other",
            quality=quality,
            start_time=now,
            last_heartbeat=now,
        )

        try:
            admitted = await self._admit(
                keys=[concurrent_key(user_id), session_key(user_id, device_id)],
                args=[
                    device_id,
                    max_concurrent,
                    self.timeout_seconds,
                    session.model_dump_json(),
                    f"{SESSION_PREFIX}{user_id}:",
                ],
            )
        except RedisError as e:
            logger.error(f"Session admission failed for user {user_id}: {e}")
            raise DependencyError("Streaming sessions are temporarily unavailable") from e

        if not int(admitted):
            logger.info(f"Rejected stream for user {user_id} on device {device_id}: limit {max_concurrent} reached")
            raise ConcurrentLimitExceededError(max_concurrent)

        logger.info(f"Session created: {session.session_id} for user {user_id}")
        return AdmittedSession(
            session_id=session.session_id,
            token=secrets.token_hex(32),
            expires_at=datetime.fromtimestamp(now + self.timeout_seconds, UTC),
        )

    async def _user_sessions(self, user_id: str) -> list[tuple[str, StreamSession]]:
        sessions = []
        async for key in self.redis.scan_iter(match=f"{SESSION_PREFIX}{user_id}:*"):
            raw = await self.redis.get(key)
            if raw:
                sessions.append((key, StreamSession.model_validate_json(raw)))
        return sessions

    async def heartbeat(
        self, user_id: UUID | str, session_id: str, playback_position: Optional[int] = None
    ) -> Optional[StreamSession]:
        """Refresh a session; returns None when it no longer exists."""
        user_id = str(user_id)
        try:
            for key, session in await self._user_sessions(user_id):
                if session.session_id != session_id:
                    continue

                session.last_heartbeat = self.clock()
                if playback_position is not None:
                    session.playback_position = playback_position

                refreshed = await self._refresh(
                    keys=[key, concurrent_key(user_id)],
                    args=[
                        f'"session_id":"{session_id}"',
                        session.model_dump_json(),
                        self.timeout_seconds,
                        session.device_id,
                    ],
                )
                return session if int(refreshed) else None
        except RedisError as e:
            logger.error(f"Heartbeat failed for user {user_id}: {e}")
            raise DependencyError("Streaming sessions are temporarily unavailable") from e

        return None

    async def get_active_streams(self, user_id: UUID | str) -> list[StreamSession]:
        """Live sessions for a user. Stale ones found on the way are terminated."""
        user_id = str(user_id)
        now = self.clock()
        active = []
        try:
            for key, session in await self._user_sessions(user_id):
                if session.is_stale(now, self.stale_seconds):
                    await self._evict(key, user_id, session.device_id)
                    logger.info(f"Evicted stale session {session.session_id} for user {user_id}")
                else:
                    active.append(session)
        except RedisError as e:
            logger.error(f"Listing sessions failed for user {user_id}: {e}")
            raise DependencyError("Streaming sessions are temporarily unavailable") from e

        return active

    async def terminate_session(self, user_id: UUID | str, session_id: str) -> bool:
        user_id = str(user_id)
        try:
            for key, session in await self._user_sessions(user_id):
                if session.session_id == session_id:
                    await self._evict(key, user_id, session.device_id)
                    logger.info(f"Session terminated: {session_id}")
                    return True
        except RedisError as e:
            logger.error(f"Terminating session {session_id} failed: {e}")
            raise DependencyError("Streaming sessions are temporarily unavailable") from e

        return False

    async def terminate_all_sessions(self, user_id: UUID | str) -> int:
        user_id = str(user_id)
        try:
            keys = [key async for key in self.redis.scan_iter(match=f"{SESSION_PREFIX}{user_id}:*")]
            if keys:
                await self.redis.delete(*keys)
            await self.redis.delete(concurrent_key(user_id))
        except RedisError as e:
            logger.error(f"Terminating sessions for user {user_id} failed: {e}")
            raise DependencyError("Streaming sessions are temporarily unavailable") from e

        if keys:
            logger.info(f"Terminated {len(keys)} sessions for user {user_id}")
        return len(keys)

    async def cleanup_stale_sessions(self) -> int:
        """Evict every stale session in the store. Errors are logged, not raised."""
        now = self.clock()
        cleaned = 0
        try:
            async for key in self.redis.scan_iter(match=f"{SESSION_PREFIX}*"):
                raw = await self.redis.get(key)
                if not raw:
                    continue
                _, user_id, device_id = key.split(":", 2)
                try:
                    session = StreamSession.model_validate_json(raw)
                except ValidationError:
                    logger.warning(f"Evicting unreadable session record {key}")
                    await self._evict(key, user_id, device_id)
                    cleaned += 1
                    continue
                if session.is_stale(now, self.stale_seconds):
                    await self._evict(key, user_id, device_id)
                    cleaned += 1
        except RedisError as e:
            logger.error(f"Cleanup stale sessions error: {e}")
            return cleaned

        if cleaned > 0:
            logger.info(f"Cleaned up {cleaned} stale sessions")
        return cleaned

    async def get_session_stats(self) -> dict:
        stats = {"total_active_sessions": 0, "sessions_by_user": {}}
        try:
            async for key in self.redis.scan_iter(match=f"{SESSION_PREFIX}*"):
                _, user_id, _ = key.split(":", 2)
                stats["total_active_sessions"] += 1
                stats["sessions_by_user"][user_id] = stats["sessions_by_user"].get(user_id, 0) + 1
        except RedisError as e:
            logger.error(f"Session stats failed: {e}")
            raise DependencyError("Streaming sessions are temporarily unavailable") from e

        return stats

    async def _evict(self, key: str, user_id: str, device_id: str) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.srem(concurrent_key(user_id), device_id)
            pipe.delete(key)
            await pipe.execute()
