import logging
from datetime import timedelta
from typing import Optional

from src.api.dependencies import get_notification_dispatcher
from src.cache.redis import get_redis
from src.exceptions.errors import DomainError
from src.services.session_registry import SessionRegistry
from src.services.subscription_ledger import SubscriptionConfig, SubscriptionLedger

logger = logging.getLogger(__name__)


def _ledger() -> SubscriptionLedger:
    return SubscriptionLedger(publisher=get_notification_dispatcher())


async def send_expiry_notifications(ledger: Optional[SubscriptionLedger] = None) -> int:
    """Warn users whose subscription ends within the warning window, once per subscription."""
    ledger = ledger or _ledger()
    expiring = await ledger.find_expiring_unnotified(timedelta(days=SubscriptionConfig.EXPIRY_WARNING_DAYS))

    sent = 0
    for subscription in expiring:
        # Claim the flag first so a concurrent run cannot send the same warning.
        if await ledger.mark_expiry_notified(subscription.id):
            ledger.publish_expiring(subscription)
            sent += 1

    logger.info(f"Queued {sent} subscription expiry notifications")
    return sent


async def expire_lapsed_subscriptions(
    ledger: Optional[SubscriptionLedger] = None,
    registry: Optional[SessionRegistry] = None,
) -> dict:
    """Renew auto-renewing subscriptions due before the next sweep, then expire the lapsed rest."""
    ledger = ledger or _ledger()
    registry = registry or SessionRegistry(get_redis())

    renewed = 0
    due = await ledger.find_renewable(timedelta(hours=SubscriptionConfig.SWEEP_INTERVAL_HOURS))
    for subscription in due:
        try:
            await ledger.auto_renew(subscription)
            renewed += 1
        except DomainError as e:
            logger.warning(f"Auto-renew failed for subscription {subscription.id}: {e.message}")

    ended = 0
    for subscription in await ledger.expire_lapsed():
        if await ledger.get_entitled(subscription.user_id) is None:
            try:
                await registry.terminate_all_sessions(subscription.user_id)
            except DomainError as e:
                logger.error(f"Could not end sessions for user {subscription.user_id}: {e.message}")
        ended += 1

    return {"renewed": renewed, "expired": ended}
