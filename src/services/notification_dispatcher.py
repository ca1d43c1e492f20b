import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_session
from src.database.users import User
from src.services.email_service import EmailService
from src.services.subscription_events import SubscriptionEvent, SubscriptionEventType

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Turns subscription lifecycle events into emails.

    Events are handed over through an in-process queue; a single consumer
    task drains it. A failed delivery is logged and dropped, the ledger
    operation that produced the event has already committed.
    """

    def __init__(
        self,
        email_service: Optional[EmailService] = None,
        session_factory: Callable[[], AsyncSession] = get_session,
    ):
        self.email_service = email_service or EmailService()
        self._session_factory = session_factory
        self._queue: asyncio.Queue[SubscriptionEvent] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def publish(self, event: SubscriptionEvent) -> None:
        self._queue.put_nowait(event)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._consume(), name="notification-dispatcher")
        logger.info("Notification dispatcher started")

    async def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Dropping {self._queue.qsize()} undelivered notifications on shutdown")
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Notification dispatcher stopped")

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.deliver(event)
            except Exception:
                logger.exception(f"Failed to deliver {event.type} notification for user {event.user_id}")
            finally:
                self._queue.task_done()

    async def deliver(self, event: SubscriptionEvent) -> bool:
        async with self._session_factory() as session:
            user = await User.get_by_id(event.user_id, session)

        if not user:
            logger.warning(f"Skipping {event.type} notification: user {event.user_id} not found")
            return False

        if event.type == SubscriptionEventType.CREATED:
            sent = await self.email_service.send_subscription_confirmation(
                user.email,
                user.name,
                event.plan_name,
                event.start_date,
                event.end_date,
                event.amount,
                event.currency,
            )
        elif event.type == SubscriptionEventType.CANCELLED:
            sent = await self.email_service.send_subscription_cancellation(
                user.email, user.name, event.end_date
            )
        elif event.type == SubscriptionEventType.RENEWED:
            sent = await self.email_service.send_subscription_renewal(
                user.email,
                user.name,
                event.plan_name,
                event.start_date,
                event.end_date,
                event.amount,
                event.currency,
            )
        elif event.type == SubscriptionEventType.EXPIRING:
            sent = await self.email_service.send_subscription_expiring(
                user.email, user.name, event.end_date, event.days_left or 0
            )
        else:
            logger.warning(f"Unknown subscription event type: {event.type}")
            return False

        if not sent:
            logger.warning(f"Email for {event.type} event was not sent to {user.email}")
        return sent
