from functools import lru_cache

from fastapi import Depends
from redis.asyncio import Redis

from src.cache.redis import get_redis
from src.services.notification_dispatcher import NotificationDispatcher
from src.services.plan_catalog import PlanCatalog
from src.services.session_registry import SessionRegistry
from src.services.streaming_service import StreamingService
from src.services.subscription_ledger import SubscriptionLedger
from src.services.watch_history_service import WatchHistoryService


@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


def get_plan_catalog() -> PlanCatalog:
    return PlanCatalog()


def get_subscription_ledger(
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> SubscriptionLedger:
    return SubscriptionLedger(publisher=dispatcher)


def get_redis_client() -> Redis:
    return get_redis()


def get_session_registry(redis: Redis = Depends(get_redis_client)) -> SessionRegistry:
    return SessionRegistry(redis)


def get_watch_history_service() -> WatchHistoryService:
    return WatchHistoryService()


def get_streaming_service(
    ledger: SubscriptionLedger = Depends(get_subscription_ledger),
    registry: SessionRegistry = Depends(get_session_registry),
    watch_history: WatchHistoryService = Depends(get_watch_history_service),
) -> StreamingService:
    return StreamingService(ledger, registry, watch_history)
