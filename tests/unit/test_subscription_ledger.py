import asyncio
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from src.database.session import get_session
from src.database.subscriptions import SubscriptionStatus, UserSubscription
from src.exceptions.errors import (
    DuplicateActiveSubscriptionError,
    NoActiveSubscriptionError,
    PlanNotFoundError,
)
from src.services.subscription_ledger import SubscriptionLedger

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class Clock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def ledger(publisher, clock):
    return SubscriptionLedger(publisher=publisher, clock=clock)


async def count_active(user_id) -> int:
    async with get_session() as session:
        query = select(func.count()).select_from(UserSubscription).where(
            UserSubscription.user_id == user_id,
            UserSubscription.status == SubscriptionStatus.ACTIVE.value,
        )
        return await session.scalar(query)


async def test_subscribe_snapshots_plan_and_publishes_created(ledger, publisher, make_user, make_plan):
    user = await make_user()
    plan = await make_plan(trial_days=7, price=9.5, currency="EUR")

    subscription = await ledger.subscribe(user.id, plan.id, payment_method="paypal", auto_renew=False)

    assert subscription.status == SubscriptionStatus.ACTIVE.value
    assert subscription.start_date == T0
    assert subscription.end_date == T0 + timedelta(days=30)
    assert subscription.plan_name == "Premium"
    assert subscription.max_concurrent_streams == 2
    assert subscription.amount == 9.5
    assert subscription.currency == "EUR"
    assert subscription.payment_method == "paypal"
    assert subscription.transaction_id.startswith("txn_")
    assert subscription.is_trial is True
    assert subscription.auto_renew is False
    assert publisher.types() == ["created"]
    assert publisher.events[0].subscription_id == subscription.id


async def test_subscribe_rejects_missing_or_inactive_plan(ledger, make_user, make_plan):
    user = await make_user()
    inactive = await make_plan(is_active=False)

    with pytest.raises(PlanNotFoundError):
        await ledger.subscribe(user.id, uuid4())
    with pytest.raises(PlanNotFoundError):
        await ledger.subscribe(user.id, inactive.id)


async def test_duplicate_subscribe_is_rejected(ledger, publisher, make_user, make_plan):
    user = await make_user()
    plan = await make_plan()
    await ledger.subscribe(user.id, plan.id)

    with pytest.raises(DuplicateActiveSubscriptionError) as exc_info:
        await ledger.subscribe(user.id, plan.id)

    assert exc_info.value.status_code == 400
    assert await count_active(user.id) == 1
    assert publisher.types() == ["created"]


async def test_concurrent_subscribes_leave_exactly_one_active(ledger, make_user, make_plan):
    user = await make_user()
    plan = await make_plan()

    results = await asyncio.gather(
        *[ledger.subscribe(user.id, plan.id) for _ in range(5)],
        return_exceptions=True,
    )

    created = [r for r in results if isinstance(r, UserSubscription)]
    failed = [r for r in results if not isinstance(r, UserSubscription)]
    assert len(created) == 1
    assert all(isinstance(r, DuplicateActiveSubscriptionError) for r in failed)
    assert await count_active(user.id) == 1


async def test_database_rejects_second_active_row(make_user, make_plan):
    user = await make_user()
    plan = await make_plan()

    def row():
        return UserSubscription(
            user_id=user.id,
            plan_id=plan.id,
            start_date=T0,
            end_date=T0 + timedelta(days=30),
            plan_name=plan.name,
            quality_level=plan.quality_level,
            access_level=plan.access_level,
            max_devices=plan.max_devices,
            max_concurrent_streams=plan.max_concurrent_streams,
        )

    async with get_session() as session:
        session.add(row())
        await session.commit()

        session.add(row())
        with pytest.raises(IntegrityError):
            await session.commit()


async def test_active_is_evaluated_lazily(ledger, clock, make_user, make_plan):
    user = await make_user()
    plan = await make_plan(duration_days=30)
    subscription = await ledger.subscribe(user.id, plan.id)

    clock.advance(days=29, hours=23)
    assert (await ledger.get_active(user.id)).id == subscription.id

    clock.advance(hours=1)  # exactly at end_date
    assert await ledger.get_active(user.id) is None
    assert await ledger.get_entitled(user.id) is None

    # Nothing flipped the stored status.
    async with get_session() as session:
        stored = await UserSubscription.get_by_id(subscription.id, session)
    assert stored.status == SubscriptionStatus.ACTIVE.value


async def test_lapsed_subscription_does_not_block_a_new_one(ledger, clock, make_user, make_plan):
    user = await make_user()
    plan = await make_plan(duration_days=7)
    first = await ledger.subscribe(user.id, plan.id)

    clock.advance(days=8)
    second = await ledger.subscribe(user.id, plan.id)

    assert second.id != first.id
    async with get_session() as session:
        stored = await UserSubscription.get_by_id(first.id, session)
    assert stored.status == SubscriptionStatus.EXPIRED.value
    assert await count_active(user.id) == 1


async def test_cancel_keeps_entitlement_until_end_date(ledger, publisher, clock, make_user, make_plan):
    user = await make_user()
    plan = await make_plan(duration_days=30)
    await ledger.subscribe(user.id, plan.id)

    clock.advance(days=3)
    cancelled = await ledger.cancel(user.id, reason="Too expensive")

    assert cancelled.status == SubscriptionStatus.CANCELLED.value
    assert cancelled.cancelled_at == clock.now
    assert cancelled.cancellation_reason == "Too expensive"
    assert cancelled.auto_renew is False
    assert publisher.types() == ["created", "cancelled"]

    assert await ledger.get_active(user.id) is None
    assert (await ledger.get_entitled(user.id)).id == cancelled.id

    clock.advance(days=27)
    assert await ledger.get_entitled(user.id) is None


async def test_cancel_without_active_subscription(ledger, make_user):
    user = await make_user()
    with pytest.raises(NoActiveSubscriptionError) as exc_info:
        await ledger.cancel(user.id)
    assert exc_info.value.status_code == 404


async def test_history_is_paged_newest_first(ledger, clock, make_user, make_plan):
    user = await make_user()
    plan = await make_plan(duration_days=1)

    ids = []
    for _ in range(3):
        ids.append((await ledger.subscribe(user.id, plan.id)).id)
        clock.advance(days=2)

    page_one, total = await ledger.history(user.id, page=1, limit=2)
    page_two, _ = await ledger.history(user.id, page=2, limit=2)

    assert total == 3
    assert [s.id for s in page_one] == [ids[2], ids[1]]
    assert [s.id for s in page_two] == [ids[0]]


async def test_renew_uses_last_plan(ledger, publisher, clock, make_user, make_plan):
    user = await make_user()
    plan = await make_plan(duration_days=7)
    await ledger.subscribe(user.id, plan.id, payment_method="paypal")

    with pytest.raises(DuplicateActiveSubscriptionError):
        await ledger.renew(user.id)

    clock.advance(days=8)
    renewed = await ledger.renew(user.id)

    assert renewed.plan_id == plan.id
    assert renewed.start_date == clock.now
    assert renewed.payment_method == "paypal"
    assert publisher.types() == ["created", "renewed"]


async def test_renew_without_history(ledger, make_user):
    user = await make_user()
    with pytest.raises(NoActiveSubscriptionError):
        await ledger.renew(user.id)


async def test_expiring_subscriptions_are_notified_once(ledger, clock, make_user, make_plan):
    soon = await make_user()
    later = await make_user()
    plan = await make_plan(duration_days=30)
    await ledger.subscribe(soon.id, plan.id)
    clock.advance(days=10)
    await ledger.subscribe(later.id, plan.id)

    clock.advance(days=18)  # soon ends in 2 days, later in 12
    expiring = await ledger.find_expiring_unnotified(timedelta(days=3))
    assert [s.user_id for s in expiring] == [soon.id]

    assert await ledger.mark_expiry_notified(expiring[0].id) is True
    assert await ledger.mark_expiry_notified(expiring[0].id) is False
    assert await ledger.find_expiring_unnotified(timedelta(days=3)) == []


async def test_expire_lapsed_flips_status(ledger, clock, make_user, make_plan):
    user = await make_user()
    plan = await make_plan(duration_days=1)
    subscription = await ledger.subscribe(user.id, plan.id)

    assert await ledger.expire_lapsed() == []

    clock.advance(days=2)
    lapsed = await ledger.expire_lapsed()

    assert [s.id for s in lapsed] == [subscription.id]
    assert await count_active(user.id) == 0
