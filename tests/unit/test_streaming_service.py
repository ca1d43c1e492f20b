from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from src.database.plans import AccessLevel, QualityLevel
from src.database.session import get_session
from src.database.watch_history import WatchHistory
from src.exceptions.errors import (
    AuthorizationError,
    ConcurrentLimitExceededError,
    ContentNotFoundError,
    StreamSessionNotFoundError,
    ValidationError,
)
from src.services.session_registry import SessionRegistry
from src.services.streaming_service import StreamingService, pick_quality
from src.services.subscription_ledger import SubscriptionLedger


class Clock:
    def __init__(self):
        self.now = datetime.now(UTC).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def ledger(publisher, clock):
    return SubscriptionLedger(publisher=publisher, clock=clock)


@pytest.fixture
def streaming(ledger, redis):
    return StreamingService(ledger, SessionRegistry(redis))


@pytest.fixture
async def subscriber(ledger, make_user, make_plan):
    user = await make_user()
    plan = await make_plan()
    await ledger.subscribe(user.id, plan.id)
    return user


def tier(quality):
    return SimpleNamespace(quality_level=quality)


def test_pick_quality_defaults_to_best_within_tier():
    assert pick_quality(tier(QualityLevel.HD), ["SD", "HD", "4K"], None) is QualityLevel.HD
    assert pick_quality(tier(QualityLevel.UHD), ["SD", "HD"], None) is QualityLevel.HD
    assert pick_quality(tier(QualityLevel.SD), ["HD", "4K"], None) is QualityLevel.HD
    assert pick_quality(tier(QualityLevel.SD), [], None) is QualityLevel.SD


def test_pick_quality_validates_request():
    assert pick_quality(tier(QualityLevel.SD), ["SD", "HD"], "HD") is QualityLevel.HD

    with pytest.raises(ValidationError, match="Invalid quality"):
        pick_quality(tier(QualityLevel.HD), ["SD", "HD"], "8K")
    with pytest.raises(ValidationError, match="not available"):
        pick_quality(tier(QualityLevel.UHD), ["SD", "HD"], "4K")


async def test_start_stream_without_subscription(streaming, make_user, make_content):
    user = await make_user()
    content = await make_content()

    with pytest.raises(AuthorizationError, match="subscription"):
        await streaming.start_stream(user.id, content.id, "tv")


async def test_start_stream(streaming, subscriber, make_content):
    content = await make_content()

    response = await streaming.start_stream(subscriber.id, content.id, "tv", device_name="Living room")

    assert response.quality == "HD"
    assert response.session_id.startswith("session_")
    assert response.stream_url.endswith(f"videos/long-night/master.m3u8?quality=HD&token={response.session_token}")
    assert response.expires_at > datetime.now(UTC)


async def test_start_stream_checks_content(streaming, subscriber, make_content):
    hidden = await make_content(is_active=False)

    with pytest.raises(ContentNotFoundError):
        await streaming.start_stream(subscriber.id, uuid4(), "tv")
    with pytest.raises(ContentNotFoundError):
        await streaming.start_stream(subscriber.id, hidden.id, "tv")


async def test_start_stream_enforces_tiers(streaming, subscriber, make_content):
    ultimate = await make_content(access_level=AccessLevel.ULTIMATE)
    basic = await make_content()

    with pytest.raises(AuthorizationError, match="Ultimate"):
        await streaming.start_stream(subscriber.id, ultimate.id, "tv")
    with pytest.raises(AuthorizationError, match="4K"):
        await streaming.start_stream(subscriber.id, basic.id, "tv", quality="4K")


async def test_start_stream_enforces_concurrency(streaming, subscriber, make_content):
    content = await make_content()
    await streaming.start_stream(subscriber.id, content.id, "tv")
    await streaming.start_stream(subscriber.id, content.id, "phone")

    with pytest.raises(ConcurrentLimitExceededError):
        await streaming.start_stream(subscriber.id, content.id, "laptop")


async def test_cancelled_subscription_streams_until_end_date(streaming, ledger, clock, subscriber, make_content):
    content = await make_content()
    await ledger.cancel(subscriber.id)

    grant = await streaming.start_stream(subscriber.id, content.id, "tv")
    assert await streaming.heartbeat(subscriber.id, grant.session_id) is not None

    clock.now += timedelta(days=31)
    with pytest.raises(AuthorizationError, match="ended"):
        await streaming.heartbeat(subscriber.id, grant.session_id)
    assert await streaming.registry.get_active_streams(subscriber.id) == []

    with pytest.raises(AuthorizationError):
        await streaming.start_stream(subscriber.id, content.id, "tv")


async def test_heartbeat_unknown_session(streaming, subscriber):
    with pytest.raises(StreamSessionNotFoundError):
        await streaming.heartbeat(subscriber.id, "session_missing")


async def test_heartbeat_records_watch_progress(streaming, subscriber, make_content):
    content = await make_content(duration=100)
    grant = await streaming.start_stream(subscriber.id, content.id, "tv")

    session = await streaming.heartbeat(subscriber.id, grant.session_id, playback_position=5700)

    assert session.playback_position == 5700
    async with get_session() as db_session:
        entry = await WatchHistory.get_for_user_content(subscriber.id, content.id, db_session)
    assert entry.last_position == 5700
    assert entry.progress == 95.0
    assert entry.completed is True
