"""
Ride endpoints
==============

POST  /api/v1/rides                  -- book a ride (pending admin approval)
GET   /api/v1/rides                  -- list the caller's rides
GET   /api/v1/rides/{ride_id}        -- ride details (owner or admin)
PATCH /api/v1/rides/{ride_id}/cancel -- cancel a ride, applying the cancellation fee
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_current_user, get_db, get_notification_service
from src.api.middleware import API_LIMIT, RIDE_BOOKING_LIMIT, limiter
from src.api.schemas import CancelRideRequest, RideCreateRequest, RideResponse
from src.domain.clock import as_utc, utcnow
from src.domain.entities import check_transition
from src.domain.enums import (
    AuditAction,
    CancelledBy,
    NotificationType,
    RideStatus,
    RideType,
    UserRole,
)
from src.domain.pricing import cancellation_fee, compute_fare
from src.infrastructure.models import RideModel, UserModel
from src.infrastructure.notifications import NotificationService
from src.infrastructure.repositories import (
    AuditLogRepository,
    PricingRepository,
    RideRepository,
    ride_entity,
    to_pricing_configuration,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rides", tags=["rides"])


async def _estimate_fare(db: AsyncSession, ride: RideModel) -> None:
    """Snapshot the fare under the active pricing, when one applies."""
    if ride.estimated_distance_km is None:
        return
    pricing = await PricingRepository(db).get_active(utcnow())
    if pricing is None:
        logger.info("No active pricing; ride %s booked without a fare", ride.id)
        return

    breakdown = compute_fare(
        to_pricing_configuration(pricing), ride_entity(ride).fare_input()
    )
    ride.base_fare = breakdown.base_fare
    ride.distance_fare = breakdown.distance_fare
    ride.duration_fare = breakdown.duration_fare
    ride.total_fare = breakdown.total_fare
    ride.currency = breakdown.currency
    ride.fare_breakdown = asdict(breakdown)
    ride.pricing_config_id = pricing.id


def ensure_can_view(ride: Optional[RideModel], user: UserModel) -> RideModel:
    if ride is None:
        raise HTTPException(status_code=404, detail="Ride not found")
    if ride.user_id != user.id and user.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=403, detail="Access denied")
    return ride


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Book a ride",
)
@limiter.limit(RIDE_BOOKING_LIMIT)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
):
    ride = RideModel(
        user_id=user.id,
        pickup=body.pickup,
        drop=body.drop,
        date=as_utc(body.date),
        status=RideStatus.PENDING.value,
        ride_type=body.ride_type.value,
        vehicle_type=body.vehicle_type.value,
        passenger_count=body.passenger_count,
        estimated_distance_km=body.estimated_distance_km,
        estimated_duration_min=body.estimated_duration_min,
        is_corporate=True,
        is_recurring=body.is_recurring or body.ride_type == RideType.RECURRING,
    )
    await RideRepository(db).create(ride)
    await _estimate_fare(db, ride)
    await AuditLogRepository(db).record(
        user.id, AuditAction.CREATE_RIDE, {"rideId": ride.id}
    )

    await notifications.send_ride_notification(ride, user, NotificationType.RIDE_BOOKED)
    logger.info("Ride %s booked by user %s", ride.id, user.id)
    return ride


@router.get("", response_model=list[RideResponse], summary="List my rides")
@limiter.limit(API_LIMIT)
async def list_rides(
    request: Request,
    status: Optional[RideStatus] = None,
    pickup: Optional[str] = None,
    drop: Optional[str] = None,
    sort_by: str = "date",
    order: str = Query("desc", pattern="^(asc|desc)$"),
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await RideRepository(db).search(
        user_id=user.id,
        status=status.value if status else None,
        pickup=pickup,
        drop=drop,
        sort_by=sort_by,
        order=order,
    )


@router.get("/{ride_id}", response_model=RideResponse, summary="Get a ride")
@limiter.limit(API_LIMIT)
async def get_ride(
    request: Request,
    ride_id: int,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ensure_can_view(await RideRepository(db).get_by_id(ride_id), user)


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Transitions a pending or approved ride to cancelled and records the "
        "cancellation fee owed for the time left before pickup."
    ),
)
@limiter.limit(API_LIMIT)
async def cancel_ride(
    request: Request,
    ride_id: int,
    body: Optional[CancelRideRequest] = None,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
):
    ride = await RideRepository(db).get_by_id(ride_id)
    if ride is None:
        raise HTTPException(status_code=404, detail="Ride not found")
    if ride.user_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")

    check_transition(RideStatus(ride.status), RideStatus.CANCELLED)

    now = utcnow()
    pricing_repo = PricingRepository(db)
    pricing = None
    if ride.pricing_config_id is not None:
        pricing = await pricing_repo.get_by_id(ride.pricing_config_id)
    if pricing is None:
        pricing = await pricing_repo.get_active(now)

    fee = 0.0
    if pricing is not None:
        fee = cancellation_fee(to_pricing_configuration(pricing), ride.date, now)

    ride.status = RideStatus.CANCELLED.value
    ride.cancelled_by = CancelledBy.USER.value
    ride.cancellation_reason = body.reason if body else None
    ride.cancelled_at = now
    ride.cancellation_fee = fee
    await AuditLogRepository(db).record(
        user.id, AuditAction.CANCEL_RIDE, {"rideId": ride.id}
    )

    await notifications.send_ride_notification(
        ride,
        user,
        NotificationType.RIDE_CANCELLED,
        {"cancellationFee": f"{fee:.2f}"},
    )
    return ride
