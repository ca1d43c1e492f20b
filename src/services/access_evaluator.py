"""Entitlement checks against a subscription's plan snapshot.

The tier checks are pure functions of the subscription they are given and
trust the caller to pass one that is currently valid. ``require_premium``
checks the subscription window itself. ``None`` means the user has nothing
and every check fails.
"""

from datetime import UTC, datetime
from typing import Optional

from src.database.plans import AccessLevel, QualityLevel
from src.database.subscriptions import UserSubscription
from src.exceptions.errors import AuthorizationError


def can_access_quality(subscription: Optional[UserSubscription], requested: QualityLevel) -> bool:
    if subscription is None:
        return False
    return QualityLevel(subscription.quality_level) >= requested


def can_access_content_level(subscription: Optional[UserSubscription], required: AccessLevel) -> bool:
    if subscription is None:
        return False
    return AccessLevel(subscription.access_level) >= required


def require_premium(subscription: Optional[UserSubscription], now: Optional[datetime] = None) -> bool:
    """Any paid or trial subscription that is active right now, whatever its tier."""
    if subscription is None:
        return False
    return subscription.is_active_at(now or datetime.now(UTC))


def ensure_quality(subscription: Optional[UserSubscription], requested: QualityLevel) -> None:
    if subscription is None:
        raise AuthorizationError("Active subscription required to stream content")
    if not can_access_quality(subscription, requested):
        raise AuthorizationError(
            f"Your plan does not include {requested.label} quality. "
            f"Maximum available: {QualityLevel(subscription.quality_level).label}"
        )


def ensure_content_level(subscription: Optional[UserSubscription], required: AccessLevel) -> None:
    if subscription is None:
        raise AuthorizationError("Active subscription required to stream content")
    if not can_access_content_level(subscription, required):
        raise AuthorizationError(
            f"This title requires a {required.label} plan. "
            f"Your plan includes {AccessLevel(subscription.access_level).label} content."
        )
