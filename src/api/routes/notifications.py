"""
Notification endpoints
======================

GET    /api/v1/notifications                 -- paginated inbox
GET    /api/v1/notifications/unread          -- sent but not yet read
PUT    /api/v1/notifications/read-all        -- mark everything read
PUT    /api/v1/notifications/{id}/read       -- mark one read
GET    /api/v1/notifications/{id}            -- one notification
DELETE /api/v1/notifications/{id}            -- delete one notification
POST   /api/v1/notifications                 -- send to a user (admin)
"""

from __future__ import annotations

import math

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    get_current_user,
    get_db,
    get_notification_service,
    require_admin,
)
from src.api.middleware import API_LIMIT, limiter
from src.api.schemas import (
    MessageResponse,
    NotificationListResponse,
    NotificationResponse,
    Pagination,
    ReadAllResponse,
    SendNotificationRequest,
)
from src.domain.clock import as_utc, utcnow
from src.infrastructure.models import UserModel
from src.infrastructure.notifications import NotificationService
from src.infrastructure.repositories import NotificationRepository, UserRepository

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Notification not found")


@router.get("", response_model=NotificationListResponse, summary="List notifications")
@limiter.limit(API_LIMIT)
async def list_notifications(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await NotificationRepository(db).list_for_user(
        user.id, page=page, limit=limit
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in items],
        pagination=Pagination(
            page=page, limit=limit, total=total, pages=math.ceil(total / limit)
        ),
    )


@router.get(
    "/unread", response_model=list[NotificationResponse], summary="Unread notifications"
)
@limiter.limit(API_LIMIT)
async def unread_notifications(
    request: Request,
    user: UserModel = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return await service.unread_for_user(user.id)


@router.put("/read-all", response_model=ReadAllResponse, summary="Mark all read")
@limiter.limit(API_LIMIT)
async def mark_all_read(
    request: Request,
    user: UserModel = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    updated = await service.mark_all_as_read(user.id)
    return ReadAllResponse(message="All notifications marked as read.", updated=updated)


@router.put(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark one notification read",
)
@limiter.limit(API_LIMIT)
async def mark_read(
    request: Request,
    notification_id: int,
    user: UserModel = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    notification = await service.mark_as_read(notification_id, user.id)
    if notification is None:
        raise _not_found()
    return notification


@router.get(
    "/{notification_id}",
    response_model=NotificationResponse,
    summary="Get a notification",
)
@limiter.limit(API_LIMIT)
async def get_notification(
    request: Request,
    notification_id: int,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationRepository(db).get_for_recipient(
        notification_id, user.id
    )
    if notification is None:
        raise _not_found()
    return notification


@router.delete(
    "/{notification_id}",
    response_model=MessageResponse,
    summary="Delete a notification",
)
@limiter.limit(API_LIMIT)
async def delete_notification(
    request: Request,
    notification_id: int,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    deleted = await NotificationRepository(db).delete_for_recipient(
        notification_id, user.id
    )
    if not deleted:
        raise _not_found()
    return MessageResponse(message="Notification deleted.")


@router.post(
    "",
    status_code=201,
    response_model=NotificationResponse,
    summary="Send a notification to a user",
)
@limiter.limit(API_LIMIT)
async def send_notification(
    request: Request,
    body: SendNotificationRequest,
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
):
    recipient = await UserRepository(db).get_by_id(body.user_id)
    if recipient is None:
        raise HTTPException(status_code=404, detail="User not found")

    kwargs = dict(
        recipient=recipient,
        notification_type=body.type.value,
        message=body.message,
        title=body.title,
        data=body.data,
        channels=body.channels.model_dump(),
        priority=body.priority.value,
    )
    if body.scheduled_for is not None and as_utc(body.scheduled_for) > utcnow():
        return await service.schedule(scheduled_for=body.scheduled_for, **kwargs)
    return await service.create(**kwargs)
