"""
Pricing endpoints
=================

GET    /api/v1/pricing                 -- list pricing configurations
GET    /api/v1/pricing/active          -- the configuration in force now
POST   /api/v1/pricing/calculate-fare  -- quote a fare
GET    /api/v1/pricing/{pricing_id}    -- one configuration
POST   /api/v1/pricing                 -- create (admin)
PUT    /api/v1/pricing/{pricing_id}    -- replace (admin)
DELETE /api/v1/pricing/{pricing_id}    -- delete (admin)
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_current_user, get_db, require_admin
from src.api.middleware import API_LIMIT, limiter
from src.api.schemas import (
    FareBreakdownResponse,
    FareQuoteRequest,
    MessageResponse,
    PricingConfigRequest,
    PricingConfigResponse,
)
from src.domain.clock import as_utc, utcnow
from src.domain.enums import RideType
from src.domain.pricing import RideFareInput, compute_fare, waiting_charge
from src.infrastructure.models import PricingConfigModel, UserModel
from src.infrastructure.repositories import PricingRepository, to_pricing_configuration

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pricing", tags=["pricing"])


def _name_taken() -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={
            "error": "A pricing configuration with this name already exists.",
            "code": "PRICING_EXISTS",
        },
    )


def _apply(model: PricingConfigModel, body: PricingConfigRequest) -> None:
    values = body.model_dump()
    if values["valid_from"] is None:
        values["valid_from"] = model.valid_from or utcnow()
    for field, value in values.items():
        setattr(model, field, value)


@router.get("", response_model=list[PricingConfigResponse], summary="List pricing")
@limiter.limit(API_LIMIT)
async def list_pricing(
    request: Request,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await PricingRepository(db).list_all()


@router.get(
    "/active", response_model=PricingConfigResponse, summary="Active pricing"
)
@limiter.limit(API_LIMIT)
async def get_active_pricing(
    request: Request,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pricing = await PricingRepository(db).get_active(utcnow())
    if pricing is None:
        raise HTTPException(status_code=404, detail="No active pricing configuration")
    return pricing


@router.post(
    "/calculate-fare",
    response_model=FareBreakdownResponse,
    summary="Quote a fare",
    description=(
        "Uses the configuration given by ``pricing_id`` or, when omitted, the "
        "one currently in force."
    ),
)
@limiter.limit(API_LIMIT)
async def calculate_fare(
    request: Request,
    body: FareQuoteRequest,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    repo = PricingRepository(db)
    if body.pricing_id is not None:
        pricing = await repo.get_by_id(body.pricing_id)
    else:
        pricing = await repo.get_active(utcnow())
    if pricing is None:
        raise HTTPException(status_code=404, detail="Pricing configuration not found")

    ride = RideFareInput(
        distance=body.distance,
        duration=body.duration,
        vehicle_category=body.vehicle_type,
        ride_category=body.ride_type.value,
        is_emergency=body.is_emergency or body.ride_type == RideType.EMERGENCY,
        is_recurring=body.is_recurring or body.ride_type == RideType.RECURRING,
        is_airport_transfer=(
            body.is_airport_transfer or body.ride_type == RideType.AIRPORT_TRANSFER
        ),
        pickup_time=as_utc(body.pickup_time) or utcnow(),
        is_corporate=body.is_corporate,
    )
    config = to_pricing_configuration(pricing)
    breakdown = compute_fare(config, ride)
    return FareBreakdownResponse(
        pricing_name=pricing.name,
        waiting_charge=waiting_charge(config, body.waiting_minutes),
        **asdict(breakdown),
    )


@router.get(
    "/{pricing_id}", response_model=PricingConfigResponse, summary="Get pricing"
)
@limiter.limit(API_LIMIT)
async def get_pricing(
    request: Request,
    pricing_id: int,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    pricing = await PricingRepository(db).get_by_id(pricing_id)
    if pricing is None:
        raise HTTPException(status_code=404, detail="Pricing configuration not found")
    return pricing


@router.post(
    "",
    status_code=201,
    response_model=PricingConfigResponse,
    summary="Create a pricing configuration",
)
@limiter.limit(API_LIMIT)
async def create_pricing(
    request: Request,
    body: PricingConfigRequest,
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = PricingRepository(db)
    if await repo.get_by_name(body.name):
        raise _name_taken()

    pricing = PricingConfigModel(created_by=admin.id)
    _apply(pricing, body)
    await repo.create(pricing)
    logger.info("Pricing %r created by admin %s", pricing.name, admin.id)
    return pricing


@router.put(
    "/{pricing_id}",
    response_model=PricingConfigResponse,
    summary="Replace a pricing configuration",
)
@limiter.limit(API_LIMIT)
async def update_pricing(
    request: Request,
    pricing_id: int,
    body: PricingConfigRequest,
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = PricingRepository(db)
    pricing = await repo.get_by_id(pricing_id)
    if pricing is None:
        raise HTTPException(status_code=404, detail="Pricing configuration not found")
    if body.name != pricing.name:
        other = await repo.get_by_name(body.name)
        if other is not None and other.id != pricing.id:
            raise _name_taken()

    _apply(pricing, body)
    await db.flush()
    return pricing


@router.delete(
    "/{pricing_id}",
    response_model=MessageResponse,
    summary="Delete a pricing configuration",
)
@limiter.limit(API_LIMIT)
async def delete_pricing(
    request: Request,
    pricing_id: int,
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = PricingRepository(db)
    pricing = await repo.get_by_id(pricing_id)
    if pricing is None:
        raise HTTPException(status_code=404, detail="Pricing configuration not found")
    await repo.delete(pricing)
    return MessageResponse(message="Pricing configuration deleted.")
