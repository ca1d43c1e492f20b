import os
from redis.asyncio import Redis

from functools import lru_cache


@lru_cache
def get_redis() -> Redis:
    redis = Redis(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", "6379")),
        decode_responses=True,
        username=os.getenv("REDIS_USERNAME"),
        password=os.getenv("REDIS_PASSWORD"),
        socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "5")),
    )
    return redis
