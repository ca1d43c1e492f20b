from uuid import UUID

from fastapi import APIRouter, Depends, Query

import src.schema.watch_history as schema
from src.api.dependencies import get_watch_history_service
from src.database.users import User
from src.middleware.auth_middleware import get_current_user
from src.schema.common import ApiResponse
from src.services.watch_history_service import WatchHistoryService

router = APIRouter()


@router.get("/continue-watching", response_model=ApiResponse[schema.WatchHistoryListData])
async def continue_watching(
    limit: int = Query(10, ge=1),
    user: User = Depends(get_current_user),
    service: WatchHistoryService = Depends(get_watch_history_service),
):
    """Titles started but not finished, most recent first."""
    items = await service.continue_watching(user.id, limit=limit)
    return ApiResponse(
        data=schema.WatchHistoryListData(
            items=[schema.WatchHistoryResponse.model_validate(item) for item in items],
            count=len(items),
        )
    )


@router.get("/recent", response_model=ApiResponse[schema.WatchHistoryListData])
async def recently_watched(
    limit: int = Query(20, ge=1),
    user: User = Depends(get_current_user),
    service: WatchHistoryService = Depends(get_watch_history_service),
):
    items = await service.recently_watched(user.id, limit=limit)
    return ApiResponse(
        data=schema.WatchHistoryListData(
            items=[schema.WatchHistoryResponse.model_validate(item) for item in items],
            count=len(items),
        )
    )


@router.get("/stats", response_model=ApiResponse[schema.WatchStatsData])
async def watch_stats(
    user: User = Depends(get_current_user),
    service: WatchHistoryService = Depends(get_watch_history_service),
):
    stats = await service.stats(user.id)
    return ApiResponse(data=schema.WatchStatsData(**stats))


@router.put("/{content_id}/progress", response_model=ApiResponse[schema.WatchHistoryData])
async def update_progress(
    content_id: UUID,
    request: schema.ProgressRequest,
    user: User = Depends(get_current_user),
    service: WatchHistoryService = Depends(get_watch_history_service),
):
    entry = await service.record_progress(
        user.id, content_id, request.position, watched_seconds=request.watched_seconds
    )
    return ApiResponse(
        message="Watch progress updated",
        data=schema.WatchHistoryData(watch_history=schema.WatchHistoryResponse.model_validate(entry)),
    )
