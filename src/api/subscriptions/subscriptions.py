import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

import src.schema.subscriptions as schema
from src.api.dependencies import get_plan_catalog, get_subscription_ledger
from src.database.plans import QualityLevel
from src.database.users import User
from src.exceptions.errors import ValidationError
from src.middleware.auth_middleware import get_current_user, require_admin
from src.schema.common import ApiResponse, MessageData, Pagination
from src.services.plan_catalog import PlanCatalog
from src.services.subscription_ledger import SubscriptionLedger

router = APIRouter()
logger = logging.getLogger(__name__)


# Plans
@router.get("/plans", response_model=ApiResponse[schema.PlanListData])
async def list_plans(
    quality_level: Optional[str] = Query(None, alias="qualityLevel"),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    """List active plans, cheapest first."""
    level = None
    if quality_level is not None:
        try:
            level = QualityLevel.from_label(quality_level)
        except ValueError:
            raise ValidationError(
                "Invalid quality level",
                [{"field": "qualityLevel", "message": "Quality level must be SD, HD or 4K"}],
            )

    plans = await catalog.list_active_plans(quality_level=level)
    return ApiResponse(
        data=schema.PlanListData(plans=[schema.PlanResponse.model_validate(plan) for plan in plans])
    )


@router.get("/plans/{plan_id}", response_model=ApiResponse[schema.PlanData])
async def get_plan(plan_id: UUID, catalog: PlanCatalog = Depends(get_plan_catalog)):
    plan = await catalog.get_plan(plan_id)
    return ApiResponse(data=schema.PlanData(plan=schema.PlanResponse.model_validate(plan)))


@router.post(
    "/plans",
    response_model=ApiResponse[schema.PlanData],
    status_code=status.HTTP_201_CREATED,
)
async def create_plan(
    plan_data: schema.PlanCreateRequest,
    admin: User = Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    plan = await catalog.create_plan(**plan_data.model_dump())
    return ApiResponse(
        message="Subscription plan created",
        data=schema.PlanData(plan=schema.PlanResponse.model_validate(plan)),
    )


@router.put("/plans/{plan_id}", response_model=ApiResponse[schema.PlanData])
async def update_plan(
    plan_id: UUID,
    plan_data: schema.PlanUpdateRequest,
    admin: User = Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    plan = await catalog.update_plan(plan_id, **plan_data.model_dump(exclude_unset=True))
    return ApiResponse(
        message="Subscription plan updated",
        data=schema.PlanData(plan=schema.PlanResponse.model_validate(plan)),
    )


@router.patch("/plans/{plan_id}/deactivate", response_model=ApiResponse[schema.PlanData])
async def deactivate_plan(
    plan_id: UUID,
    admin: User = Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    plan = await catalog.deactivate_plan(plan_id)
    return ApiResponse(
        message="Subscription plan deactivated",
        data=schema.PlanData(plan=schema.PlanResponse.model_validate(plan)),
    )


@router.delete("/plans/{plan_id}", response_model=ApiResponse[MessageData])
async def delete_plan(
    plan_id: UUID,
    admin: User = Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    await catalog.delete_plan(plan_id)
    return ApiResponse(
        message="Subscription plan deleted",
        data=MessageData(message="Subscription plan deleted"),
    )


# Subscriptions
@router.post(
    "/subscribe",
    response_model=ApiResponse[schema.SubscriptionData],
    status_code=status.HTTP_201_CREATED,
)
async def subscribe(
    request: schema.SubscribeRequest,
    user: User = Depends(get_current_user),
    ledger: SubscriptionLedger = Depends(get_subscription_ledger),
):
    subscription = await ledger.subscribe(
        user.id,
        request.plan_id,
        payment_method=request.payment_method,
        auto_renew=request.auto_renew,
    )
    return ApiResponse(
        message="Subscription created successfully",
        data=schema.SubscriptionData(subscription=schema.SubscriptionResponse.model_validate(subscription)),
    )


@router.get("/status", response_model=ApiResponse[schema.SubscriptionData])
async def subscription_status(
    user: User = Depends(get_current_user),
    ledger: SubscriptionLedger = Depends(get_subscription_ledger),
):
    subscription = await ledger.get_active(user.id)
    return ApiResponse(
        data=schema.SubscriptionData(
            subscription=schema.SubscriptionResponse.model_validate(subscription) if subscription else None
        ),
    )


@router.get("/history", response_model=ApiResponse[schema.SubscriptionHistoryData])
async def subscription_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    ledger: SubscriptionLedger = Depends(get_subscription_ledger),
):
    items, total = await ledger.history(user.id, page=page, limit=limit)
    return ApiResponse(
        data=schema.SubscriptionHistoryData(
            subscriptions=[schema.SubscriptionResponse.model_validate(item) for item in items]
        ),
        pagination=Pagination.build(page, limit, total),
    )


@router.put("/cancel", response_model=ApiResponse[schema.SubscriptionData])
async def cancel_subscription(
    request: Optional[schema.CancelRequest] = None,
    user: User = Depends(get_current_user),
    ledger: SubscriptionLedger = Depends(get_subscription_ledger),
):
    subscription = await ledger.cancel(user.id, reason=request.reason if request else None)
    return ApiResponse(
        message="Subscription cancelled. You can keep watching until the end of the current period.",
        data=schema.SubscriptionData(subscription=schema.SubscriptionResponse.model_validate(subscription)),
    )


@router.post("/renew", response_model=ApiResponse[schema.SubscriptionData])
async def renew_subscription(
    request: Optional[schema.RenewRequest] = None,
    user: User = Depends(get_current_user),
    ledger: SubscriptionLedger = Depends(get_subscription_ledger),
):
    subscription = await ledger.renew(user.id, plan_id=request.plan_id if request else None)
    return ApiResponse(
        message="Subscription renewed successfully",
        data=schema.SubscriptionData(subscription=schema.SubscriptionResponse.model_validate(subscription)),
    )
