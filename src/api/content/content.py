import logging
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

import src.schema.content as schema
from src.api.dependencies import (
    get_session_registry,
    get_streaming_service,
    get_subscription_ledger,
)
from src.database.content import SORTABLE_FIELDS, Content, ContentType
from src.database.plans import AccessLevel
from src.database.session import get_session
from src.database.users import User
from src.exceptions.errors import ContentNotFoundError
from src.middleware.auth_middleware import (
    get_current_user,
    get_current_user_optional,
    require_admin,
)
from src.schema.common import ApiResponse, MessageData, Pagination
from src.services import access_evaluator
from src.services.session_registry import SessionRegistry
from src.services.streaming_service import StreamingService
from src.services.subscription_ledger import SubscriptionLedger

router = APIRouter()
logger = logging.getLogger(__name__)

SORT_ALIASES = {
    "releaseYear": "release_year",
    "title": "title",
    "createdAt": "created_at",
    "duration": "duration",
}


def _content_fields(data: dict) -> dict:
    # Only the trailer may be cleared with an explicit null.
    data = {k: v for k, v in data.items() if v is not None or k == "trailer_url"}
    if data.get("access_level") is not None:
        data["access_level"] = AccessLevel.from_label(data["access_level"])
    for field in ("type", "rating"):
        if data.get(field) is not None:
            data[field] = data[field].value
    return data


@router.get("", response_model=ApiResponse[schema.ContentListData])
async def browse_content(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    type: Optional[ContentType] = Query(None),
    genre: Optional[str] = Query(None, max_length=50),
    search: Optional[str] = Query(None, max_length=100),
    sort_by: str = Query("releaseYear", alias="sortBy"),
    order: Literal["asc", "desc"] = Query("desc"),
):
    """Browse active titles with filters and pagination."""
    column = SORT_ALIASES.get(sort_by, sort_by)
    if column not in SORTABLE_FIELDS:
        column = "release_year"

    async with get_session() as session:
        items, total = await Content.browse(
            session,
            type_=type.value if type else None,
            genre=genre,
            search=search,
            sort_by=column,
            descending=order == "desc",
            offset=(page - 1) * limit,
            limit=limit,
        )

    return ApiResponse(
        data=schema.ContentListData(content=[schema.ContentResponse.model_validate(item) for item in items]),
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/featured", response_model=ApiResponse[schema.ContentListData])
async def featured_content(limit: int = Query(10, ge=1, le=50)):
    async with get_session() as session:
        items, _ = await Content.browse(session, sort_by="release_year", descending=True, limit=limit)
    return ApiResponse(
        data=schema.ContentListData(content=[schema.ContentResponse.model_validate(item) for item in items])
    )


# Streaming sessions
@router.post("/stream/heartbeat", response_model=ApiResponse[schema.HeartbeatResponse])
async def stream_heartbeat(
    request: schema.HeartbeatRequest,
    user: User = Depends(get_current_user),
    streaming: StreamingService = Depends(get_streaming_service),
):
    session = await streaming.heartbeat(user.id, request.session_id, request.playback_position)
    return ApiResponse(
        data=schema.HeartbeatResponse(
            session_id=session.session_id,
            last_heartbeat=session.last_heartbeat,
            playback_position=session.playback_position,
        )
    )


@router.get("/stream/active", response_model=ApiResponse[schema.ActiveStreamsData])
async def active_streams(
    user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_session_registry),
):
    sessions = await registry.get_active_streams(user.id)
    return ApiResponse(
        data=schema.ActiveStreamsData(
            streams=[schema.ActiveStreamResponse.model_validate(s.model_dump()) for s in sessions],
            count=len(sessions),
        )
    )


@router.get("/stream/stats", response_model=ApiResponse[schema.StreamStatsData])
async def stream_stats(
    admin: User = Depends(require_admin),
    registry: SessionRegistry = Depends(get_session_registry),
):
    stats = await registry.get_session_stats()
    return ApiResponse(data=schema.StreamStatsData(**stats))


@router.delete("/stream/{session_id}", response_model=ApiResponse[schema.TerminateStreamData])
async def terminate_stream(
    session_id: str,
    user: User = Depends(get_current_user),
    registry: SessionRegistry = Depends(get_session_registry),
):
    terminated = await registry.terminate_session(user.id, session_id)
    return ApiResponse(
        message="Stream stopped" if terminated else "Stream was not active",
        data=schema.TerminateStreamData(terminated=terminated),
    )


# Titles
@router.get("/{content_id}", response_model=ApiResponse[schema.ContentData])
async def get_content(
    content_id: UUID,
    user: Optional[User] = Depends(get_current_user_optional),
    ledger: SubscriptionLedger = Depends(get_subscription_ledger),
):
    async with get_session() as session:
        content = await Content.get_by_id(content_id, session)
    if not content or not content.is_active:
        raise ContentNotFoundError()

    detail = schema.ContentDetailResponse.model_validate(content)
    if user is not None:
        subscription = await ledger.get_entitled(user.id)
        detail.can_stream = access_evaluator.can_access_content_level(
            subscription, AccessLevel(content.access_level)
        )
    return ApiResponse(data=schema.ContentData(content=detail))


@router.post("/{content_id}/stream", response_model=ApiResponse[schema.StreamResponse])
async def stream_content(
    content_id: UUID,
    request: schema.StreamRequest,
    user: User = Depends(get_current_user),
    streaming: StreamingService = Depends(get_streaming_service),
):
    grant = await streaming.start_stream(
        user.id,
        content_id,
        device_id=request.device_id,
        device_name=request.device_name,
        device_type=request.device_type,
        quality=request.quality,
    )
    return ApiResponse(message="Stream started", data=grant)


@router.post(
    "",
    response_model=ApiResponse[schema.ContentAdminData],
    status_code=status.HTTP_201_CREATED,
)
async def create_content(
    content_data: schema.ContentCreateRequest,
    admin: User = Depends(require_admin),
):
    content = Content(**_content_fields(content_data.model_dump()))
    async with get_session() as session:
        session.add(content)
        await session.commit()

    logger.info(f"Content created: {content.title} ({content.id})")
    return ApiResponse(
        message="Content created",
        data=schema.ContentAdminData(content=schema.ContentAdminResponse.model_validate(content)),
    )


@router.put("/{content_id}", response_model=ApiResponse[schema.ContentAdminData])
async def update_content(
    content_id: UUID,
    content_data: schema.ContentUpdateRequest,
    admin: User = Depends(require_admin),
):
    fields = _content_fields(content_data.model_dump(exclude_unset=True))
    async with get_session() as session:
        content = await Content.get_by_id(content_id, session)
        if not content:
            raise ContentNotFoundError()
        for name, value in fields.items():
            setattr(content, name, value)
        await session.commit()
        await session.refresh(content)

    return ApiResponse(
        message="Content updated",
        data=schema.ContentAdminData(content=schema.ContentAdminResponse.model_validate(content)),
    )


@router.delete("/{content_id}", response_model=ApiResponse[MessageData])
async def delete_content(content_id: UUID, admin: User = Depends(require_admin)):
    async with get_session() as session:
        content = await Content.get_by_id(content_id, session)
        if not content:
            raise ContentNotFoundError()
        await session.delete(content)
        await session.commit()

    logger.info(f"Content deleted: {content_id}")
    return ApiResponse(message="Content deleted", data=MessageData(message="Content deleted"))
