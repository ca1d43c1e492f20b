import logging
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.plans import AccessLevel, QualityLevel, SubscriptionPlan
from src.database.session import get_session
from src.database.subscriptions import UserSubscription
from src.exceptions.errors import PlanInUseError, PlanNotFoundError, ValidationError

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "name",
    "description",
    "price",
    "duration_days",
    "quality_level",
    "access_level",
    "max_devices",
    "max_concurrent_streams",
    "max_profiles",
    "currency",
    "trial_days",
    "features",
    "is_active",
}


def validate_plan_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Check plan attributes and normalise the enum ones.

    Quality and access levels may be given as members or as their labels
    ("4K", "Premium").
    """
    errors = []
    cleaned = dict(fields)

    if "price" in cleaned and (cleaned["price"] is None or cleaned["price"] < 0):
        errors.append({"field": "price", "message": "Price must not be negative"})
    if "duration_days" in cleaned and (cleaned["duration_days"] is None or cleaned["duration_days"] < 1):
        errors.append({"field": "durationDays", "message": "Duration must be at least 1 day"})
    for field in ("max_devices", "max_concurrent_streams", "max_profiles"):
        if field in cleaned and (cleaned[field] is None or cleaned[field] < 1):
            errors.append({"field": field, "message": "Must be at least 1"})

    if "quality_level" in cleaned and not isinstance(cleaned["quality_level"], QualityLevel):
        try:
            cleaned["quality_level"] = QualityLevel.from_label(cleaned["quality_level"])
        except ValueError:
            errors.append({"field": "qualityLevel", "message": "Quality level must be SD, HD or 4K"})
    if "access_level" in cleaned and not isinstance(cleaned["access_level"], AccessLevel):
        try:
            cleaned["access_level"] = AccessLevel.from_label(cleaned["access_level"])
        except ValueError:
            errors.append(
                {"field": "accessLevel", "message": "Access level must be Free, Basic, Premium or Ultimate"}
            )

    if errors:
        raise ValidationError("Validation errors", errors)
    return cleaned


class PlanCatalog:
    def __init__(self, session_factory: Callable[[], AsyncSession] = get_session):
        self._session_factory = session_factory

    async def get_plan(self, plan_id: UUID) -> SubscriptionPlan:
        async with self._session_factory() as session:
            plan = await SubscriptionPlan.get_by_id(plan_id, session)
        if not plan:
            raise PlanNotFoundError("Subscription plan not found")
        return plan

    async def list_active_plans(self, quality_level: Optional[QualityLevel] = None) -> list[SubscriptionPlan]:
        async with self._session_factory() as session:
            return await SubscriptionPlan.list_active(session, quality_level=quality_level)

    async def create_plan(self, **fields) -> SubscriptionPlan:
        fields = validate_plan_fields(fields)
        plan = SubscriptionPlan(**fields)
        async with self._session_factory() as session:
            session.add(plan)
            await session.commit()
        logger.info(f"Plan created: {plan.name} ({plan.id})")
        return plan

    async def update_plan(self, plan_id: UUID, **fields) -> SubscriptionPlan:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown plan fields: {', '.join(sorted(unknown))}")
        fields = validate_plan_fields(fields)

        async with self._session_factory() as session:
            plan = await SubscriptionPlan.get_by_id(plan_id, session)
            if not plan:
                raise PlanNotFoundError("Subscription plan not found")
            for name, value in fields.items():
                setattr(plan, name, value)
            await session.commit()
            await session.refresh(plan)

        logger.info(f"Plan updated: {plan.id}")
        return plan

    async def deactivate_plan(self, plan_id: UUID) -> SubscriptionPlan:
        return await self.update_plan(plan_id, is_active=False)

    async def delete_plan(self, plan_id: UUID) -> None:
        async with self._session_factory() as session:
            plan = await SubscriptionPlan.get_by_id(plan_id, session)
            if not plan:
                raise PlanNotFoundError("Subscription plan not found")

            active = await UserSubscription.count_active_for_plan(plan_id, session)
            if active > 0:
                raise PlanInUseError(active)

            await session.delete(plan)
            await session.commit()

        logger.info(f"Plan deleted: {plan_id}")
