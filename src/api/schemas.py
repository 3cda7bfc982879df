"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field

from src.domain.enums import (
    NotificationPriority,
    NotificationType,
    RideType,
    VehicleType,
)
from src.domain import notifications as notification_rules
from src.domain import pricing as pricing_rules
from src.domain.clock import utcnow
from src.domain.pricing import DEFAULT_VEHICLE_MULTIPLIERS

HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


# ── Users ─────────────────────────────────────────────────────────────


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    department: Optional[str] = None
    employee_id: Optional[str] = None
    designation: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    password: Optional[str] = Field(None, min_length=6)
    phone: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    notify_email: Optional[bool] = None
    notify_sms: Optional[bool] = None
    notify_push: Optional[bool] = None


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(..., min_length=6)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    is_active: bool
    phone: Optional[str] = None
    department: Optional[str] = None
    employee_id: Optional[str] = None
    designation: Optional[str] = None
    notify_email: bool = True
    notify_sms: bool = False
    notify_push: bool = True
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    token: str
    user: Optional[UserResponse] = None


class ProfileUpdatedResponse(BaseModel):
    message: str
    token: Optional[str] = None


class ForgotPasswordResponse(BaseModel):
    message: str
    token: str


# ── Rides ─────────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    pickup: str = Field(..., min_length=1, max_length=255)
    drop: str = Field(..., min_length=1, max_length=255)
    date: datetime
    ride_type: RideType = RideType.ONE_WAY
    vehicle_type: VehicleType = VehicleType.SEDAN
    passenger_count: int = Field(1, ge=1, le=50)
    estimated_distance_km: Optional[float] = Field(None, ge=0)
    estimated_duration_min: Optional[float] = Field(None, ge=0)
    is_recurring: bool = False


class CancelRideRequest(BaseModel):
    reason: Optional[str] = None


class RejectRideRequest(BaseModel):
    reason: Optional[str] = None


class RideResponse(BaseModel):
    id: int
    user_id: int
    pickup: str
    drop: str
    date: datetime
    status: str
    ride_type: str
    vehicle_type: str
    passenger_count: int
    estimated_distance_km: Optional[float] = None
    estimated_duration_min: Optional[float] = None
    is_corporate: bool
    base_fare: float
    distance_fare: float
    duration_fare: float
    total_fare: float
    currency: str
    fare_breakdown: Optional[dict[str, Any]] = None
    admin_action_id: Optional[int] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_fee: Optional[float] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AnalyticsEntry(BaseModel):
    date: str
    count: int


class AuditLogResponse(BaseModel):
    id: int
    user_id: int
    action: str
    details: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class MessageResponse(BaseModel):
    message: str


# ── Pricing ───────────────────────────────────────────────────────────


class TimeWindowSchema(BaseModel):
    enabled: bool = False
    multiplier: float = Field(1.0, ge=0)
    start_time: str = Field("00:00", pattern=HHMM)
    end_time: str = Field("00:00", pattern=HHMM)
    days: list[int] = Field(default_factory=list)


class TimeBasedPricingSchema(BaseModel):
    peak_hours: TimeWindowSchema = Field(
        default_factory=lambda: TimeWindowSchema(
            multiplier=1.2, start_time="07:00", end_time="09:00"
        )
    )
    night_hours: TimeWindowSchema = Field(
        default_factory=lambda: TimeWindowSchema(
            multiplier=1.1, start_time="22:00", end_time="06:00"
        )
    )
    weekend: TimeWindowSchema = Field(
        default_factory=lambda: TimeWindowSchema(multiplier=1.1)
    )


class DistanceTierSchema(BaseModel):
    min_distance: float = Field(..., ge=0)
    max_distance: Optional[float] = Field(None, ge=0)
    per_km_rate: float = Field(..., ge=0)
    description: Optional[str] = None


class SurgePricingSchema(BaseModel):
    enabled: bool = False
    base_multiplier: float = 1.0
    max_multiplier: float = 3.0
    factors: dict[str, float] = Field(
        default_factory=lambda: {
            "demand": 0.3,
            "weather": 0.2,
            "events": 0.2,
            "time": 0.3,
        }
    )


class CorporateDiscountSchema(BaseModel):
    enabled: bool = True
    percentage: float = Field(10.0, ge=0, le=100)
    minimum_rides: int = 0
    maximum_discount: float = Field(50.0, ge=0)
    applicable_ride_types: list[str] = Field(default_factory=list)


class AirportTransferSchema(BaseModel):
    enabled: bool = False
    additional_fare: float = Field(0.0, ge=0)
    description: Optional[str] = None


class EmergencyRideSchema(BaseModel):
    enabled: bool = False
    multiplier: float = Field(1.5, ge=0)
    description: Optional[str] = None


class RecurringRideSchema(BaseModel):
    enabled: bool = False
    discount_percentage: float = Field(5.0, ge=0, le=100)
    minimum_frequency: int = 5
    description: Optional[str] = None


class SpecialPricingSchema(BaseModel):
    airport_transfer: AirportTransferSchema = Field(default_factory=AirportTransferSchema)
    emergency_ride: EmergencyRideSchema = Field(default_factory=EmergencyRideSchema)
    recurring_ride: RecurringRideSchema = Field(default_factory=RecurringRideSchema)


class CancellationFeesSchema(BaseModel):
    within_1_hour: float = 0.0
    within_2_hours: float = 5.0
    within_4_hours: float = 10.0
    within_24_hours: float = 20.0
    after_24_hours: float = 50.0


class WaitingChargesSchema(BaseModel):
    free_wait_time: float = 5.0
    per_minute_charge: float = 1.0
    max_wait_time: float = 30.0


class PricingConfigRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    is_active: bool = True
    base_fare: float = Field(..., ge=0)
    per_km_rate: float = Field(..., ge=0)
    per_minute_rate: float = Field(..., ge=0)
    minimum_fare: float = Field(..., ge=0)
    maximum_fare: Optional[float] = Field(None, ge=0)
    vehicle_type_multipliers: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_VEHICLE_MULTIPLIERS)
    )
    time_based_pricing: TimeBasedPricingSchema = Field(
        default_factory=TimeBasedPricingSchema
    )
    distance_tiers: list[DistanceTierSchema] = Field(default_factory=list)
    surge_pricing: SurgePricingSchema = Field(default_factory=SurgePricingSchema)
    corporate_discounts: CorporateDiscountSchema = Field(
        default_factory=CorporateDiscountSchema
    )
    special_pricing: SpecialPricingSchema = Field(default_factory=SpecialPricingSchema)
    cancellation_fees: CancellationFeesSchema = Field(
        default_factory=CancellationFeesSchema
    )
    waiting_charges: WaitingChargesSchema = Field(default_factory=WaitingChargesSchema)
    currency: str = "USD"
    region: str = "US"
    timezone: str = "UTC"
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    version: str = "1.0"


class PricingConfigResponse(PricingConfigRequest):
    id: int
    valid_from: datetime
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def is_currently_valid(self) -> bool:
        return pricing_rules.is_currently_valid(
            pricing_rules.PricingConfiguration(
                name=self.name,
                base_fare=self.base_fare,
                per_km_rate=self.per_km_rate,
                per_minute_rate=self.per_minute_rate,
                minimum_fare=self.minimum_fare,
                is_active=self.is_active,
                valid_from=self.valid_from,
                valid_until=self.valid_until,
            ),
            utcnow(),
        )


class FareQuoteRequest(BaseModel):
    distance: float
    duration: float = 0.0
    vehicle_type: str = VehicleType.SEDAN.value
    ride_type: RideType = RideType.ONE_WAY
    is_emergency: bool = False
    is_recurring: bool = False
    is_airport_transfer: bool = False
    is_corporate: bool = True
    pickup_time: Optional[datetime] = None
    waiting_minutes: float = 0.0
    pricing_id: Optional[int] = None


class FareAdjustmentsSchema(BaseModel):
    peak_hours: bool
    night_hours: bool
    weekend: bool
    emergency: bool
    airport_transfer: bool
    airport_transfer_amount: float
    recurring: bool
    recurring_discount_amount: float
    corporate_discount: bool
    corporate_discount_amount: float


class FareBreakdownResponse(BaseModel):
    pricing_name: str
    base_fare: float
    distance_fare: float
    duration_fare: float
    vehicle_multiplier: float
    total_fare: float
    currency: str
    adjustments: FareAdjustmentsSchema
    # Billed on top of total_fare.
    waiting_charge: float = 0.0


# ── Notifications ─────────────────────────────────────────────────────


class ChannelsSchema(BaseModel):
    email: bool = False
    sms: bool = False
    push: bool = False
    in_app: bool = True


class SendNotificationRequest(BaseModel):
    user_id: int
    type: NotificationType
    message: str = Field(..., min_length=1)
    title: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    channels: ChannelsSchema = Field(default_factory=ChannelsSchema)
    scheduled_for: Optional[datetime] = None
    priority: NotificationPriority = NotificationPriority.NORMAL


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    data: Optional[dict[str, Any]] = None
    channels: dict[str, bool]
    delivery: dict[str, dict[str, Any]]
    status: str
    priority: str
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    related_ride_id: Optional[int] = None
    retry_count: int
    max_retries: int = 3
    next_retry_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def is_read(self) -> bool:
        return bool(self.delivery.get("in_app", {}).get("read"))

    @computed_field
    @property
    def is_delivered(self) -> bool:
        return notification_rules.is_delivered(self.delivery)

    @computed_field
    @property
    def is_expired(self) -> bool:
        return notification_rules.is_expired(self.expires_at, utcnow())

    @computed_field
    @property
    def can_retry(self) -> bool:
        return notification_rules.can_retry(
            self.status,
            self.retry_count,
            self.max_retries,
            self.next_retry_at,
            utcnow(),
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    pagination: Pagination


class ReadAllResponse(BaseModel):
    message: str
    updated: int
