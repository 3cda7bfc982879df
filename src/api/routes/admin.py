"""
Admin endpoints
===============

GET  /api/v1/admin/rides                    -- all rides, filtered and sorted
POST /api/v1/admin/rides/{ride_id}/approve  -- approve a pending ride
POST /api/v1/admin/rides/{ride_id}/reject   -- reject a pending ride
GET  /api/v1/admin/analytics                -- rides per day, last 7 days
GET  /api/v1/admin/audit-logs               -- audit trail, newest first
GET  /api/v1/admin/health                   -- simple health check
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_notification_service, require_admin
from src.api.middleware import API_LIMIT, limiter
from src.api.schemas import (
    AnalyticsEntry,
    AuditLogResponse,
    HealthResponse,
    RejectRideRequest,
    RideResponse,
)
from src.domain.clock import as_utc, utcnow
from src.domain.entities import check_transition
from src.domain.enums import (
    AdminActionType,
    AuditAction,
    NotificationType,
    RideStatus,
)
from src.infrastructure.models import AdminActionModel, UserModel
from src.infrastructure.notifications import NotificationService
from src.infrastructure.repositories import (
    AdminActionRepository,
    AuditLogRepository,
    RideRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

ANALYTICS_DAYS = 7


async def _decide(
    db: AsyncSession,
    notifications: NotificationService,
    admin: UserModel,
    ride_id: int,
    action: AdminActionType,
    reason: Optional[str] = None,
):
    """Approve or reject a pending ride and tell its owner."""
    ride = await RideRepository(db).get_by_id(ride_id)
    if ride is None:
        raise HTTPException(status_code=404, detail="Ride not found")

    new_status = (
        RideStatus.APPROVED if action == AdminActionType.APPROVE else RideStatus.REJECTED
    )
    check_transition(RideStatus(ride.status), new_status)

    record = await AdminActionRepository(db).create(
        AdminActionModel(
            ride_id=ride.id, admin_id=admin.id, action=action.value, reason=reason
        )
    )
    ride.status = new_status.value
    ride.admin_action_id = record.id
    audit_action = (
        AuditAction.APPROVE_RIDE
        if action == AdminActionType.APPROVE
        else AuditAction.REJECT_RIDE
    )
    details = {"rideId": ride.id}
    if action == AdminActionType.REJECT:
        details["reason"] = reason
    await AuditLogRepository(db).record(admin.id, audit_action, details)
    logger.info("Admin %s %sd ride %s", admin.id, action.value, ride.id)

    owner = await UserRepository(db).get_by_id(ride.user_id)
    if owner is not None:
        if action == AdminActionType.APPROVE:
            await notifications.send_ride_notification(
                ride, owner, NotificationType.RIDE_APPROVED
            )
        else:
            await notifications.send_ride_notification(
                ride,
                owner,
                NotificationType.RIDE_REJECTED,
                {"reason": reason or "No reason provided"},
            )
    return ride


@router.get("/rides", response_model=list[RideResponse], summary="List all rides")
@limiter.limit(API_LIMIT)
async def list_all_rides(
    request: Request,
    status: Optional[RideStatus] = None,
    user_id: Optional[int] = None,
    pickup: Optional[str] = None,
    drop: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort_by: str = "date",
    order: str = Query("desc", pattern="^(asc|desc)$"),
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await RideRepository(db).search(
        user_id=user_id,
        status=status.value if status else None,
        pickup=pickup,
        drop=drop,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        order=order,
    )


@router.post(
    "/rides/{ride_id}/approve", response_model=RideResponse, summary="Approve a ride"
)
@limiter.limit(API_LIMIT)
async def approve_ride(
    request: Request,
    ride_id: int,
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
):
    return await _decide(db, notifications, admin, ride_id, AdminActionType.APPROVE)


@router.post(
    "/rides/{ride_id}/reject", response_model=RideResponse, summary="Reject a ride"
)
@limiter.limit(API_LIMIT)
async def reject_ride(
    request: Request,
    ride_id: int,
    body: Optional[RejectRideRequest] = None,
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
):
    return await _decide(
        db,
        notifications,
        admin,
        ride_id,
        AdminActionType.REJECT,
        reason=body.reason if body else None,
    )


@router.get(
    "/analytics",
    response_model=list[AnalyticsEntry],
    summary="Rides per day over the last 7 days",
)
@limiter.limit(API_LIMIT)
async def analytics(
    request: Request,
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    start = (now - timedelta(days=ANALYTICS_DAYS - 1)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    rides = await RideRepository(db).get_between(start, now)
    counts = Counter(as_utc(r.date).date().isoformat() for r in rides)

    days = [(start + timedelta(days=i)).date().isoformat() for i in range(ANALYTICS_DAYS)]
    return [AnalyticsEntry(date=day, count=counts.get(day, 0)) for day in days]


@router.get(
    "/audit-logs",
    response_model=list[AuditLogResponse],
    summary="Audit trail, newest first",
)
@limiter.limit(API_LIMIT)
async def audit_logs(
    request: Request,
    user_id: Optional[int] = Query(None),
    action: Optional[AuditAction] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await AuditLogRepository(db).search(
        user_id=user_id, action=action.value if action else None, limit=limit
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
