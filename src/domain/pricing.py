"""
Fare Calculation Engine
=======================

Formula (applied in this exact order -- reordering changes results)
------------------------------------------------------------------
1. distance_fare = distance x tier_rate   (first matching tier)
                 | distance x per_km_rate (no tiers configured)
2. duration_fare = duration x per_minute_rate
3. total = (base_fare + distance_fare + duration_fare) x vehicle_multiplier
4. total *= peak? x night? x weekend?              (time windows)
5. total *= emergency?; total += airport?; total -= recurring%?
6. total -= min(total x corporate%, corporate_max)
7. total = clamp(total, minimum_fare, maximum_fare)
8. round to 2 dp, ROUND_HALF_UP

Weekdays follow the 0 = Sunday ... 6 = Saturday convention used by stored
configurations.  Surge settings are carried on the configuration but are
not part of the formula.

Complexity: O(T) per calculation where T = number of distance tiers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .clock import as_utc

logger = logging.getLogger(__name__)

DEFAULT_VEHICLE_MULTIPLIERS = {
    "sedan": 1.0,
    "suv": 1.2,
    "luxury": 1.5,
    "van": 1.3,
    "bus": 2.0,
}

_CENT = Decimal("0.01")


class InvalidInputError(ValueError):
    """Raised when a fare is requested for a negative distance or duration."""


# ── Configuration value objects ───────────────────────────────────────


@dataclass(frozen=True)
class TimeWindow:
    enabled: bool = False
    multiplier: float = 1.0
    start_time: str = "00:00"
    end_time: str = "00:00"
    days: tuple[int, ...] = ()

    @property
    def start_hour(self) -> int:
        return int(self.start_time.split(":")[0])

    @property
    def end_hour(self) -> int:
        return int(self.end_time.split(":")[0])


@dataclass(frozen=True)
class DistanceTier:
    min_distance: float
    per_km_rate: float
    max_distance: Optional[float] = None
    description: Optional[str] = None

    def matches(self, distance: float) -> bool:
        return self.min_distance <= distance and (
            self.max_distance is None or distance <= self.max_distance
        )


@dataclass(frozen=True)
class SurgeSettings:
    enabled: bool = False
    base_multiplier: float = 1.0
    max_multiplier: float = 3.0
    factors: dict[str, float] = field(
        default_factory=lambda: {
            "demand": 0.3,
            "weather": 0.2,
            "events": 0.2,
            "time": 0.3,
        }
    )


@dataclass(frozen=True)
class CorporateDiscount:
    enabled: bool = True
    percentage: float = 10.0
    maximum_discount: float = 50.0
    minimum_rides: int = 0
    applicable_ride_types: tuple[str, ...] = ()


@dataclass(frozen=True)
class SpecialPricing:
    airport_enabled: bool = False
    airport_additional_fare: float = 0.0
    emergency_enabled: bool = False
    emergency_multiplier: float = 1.5
    recurring_enabled: bool = False
    recurring_discount_percentage: float = 5.0
    recurring_minimum_frequency: int = 5


@dataclass(frozen=True)
class CancellationFees:
    within_1_hour: float = 0.0
    within_2_hours: float = 5.0
    within_4_hours: float = 10.0
    within_24_hours: float = 20.0
    after_24_hours: float = 50.0


@dataclass(frozen=True)
class WaitingCharges:
    free_wait_time: float = 5.0  # minutes
    per_minute_charge: float = 1.0
    max_wait_time: float = 30.0  # minutes


@dataclass(frozen=True)
class PricingConfiguration:
    """Read-only snapshot of a stored fare rule-set."""

    name: str
    base_fare: float
    per_km_rate: float
    per_minute_rate: float
    minimum_fare: float
    maximum_fare: Optional[float] = None
    vehicle_type_multipliers: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_VEHICLE_MULTIPLIERS)
    )
    peak_hours: TimeWindow = field(
        default_factory=lambda: TimeWindow(
            multiplier=1.2, start_time="07:00", end_time="09:00"
        )
    )
    night_hours: TimeWindow = field(
        default_factory=lambda: TimeWindow(
            multiplier=1.1, start_time="22:00", end_time="06:00"
        )
    )
    weekend: TimeWindow = field(
        default_factory=lambda: TimeWindow(multiplier=1.1)
    )
    distance_tiers: tuple[DistanceTier, ...] = ()
    surge: SurgeSettings = field(default_factory=SurgeSettings)
    corporate: CorporateDiscount = field(default_factory=CorporateDiscount)
    special: SpecialPricing = field(default_factory=SpecialPricing)
    cancellation_fees: CancellationFees = field(default_factory=CancellationFees)
    waiting_charges: WaitingCharges = field(default_factory=WaitingCharges)
    is_active: bool = True
    currency: str = "USD"
    region: str = "US"
    timezone: str = "UTC"
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    version: str = "1.0"


# ── Input / output value objects ──────────────────────────────────────


@dataclass(frozen=True)
class RideFareInput:
    distance: float
    duration: float
    vehicle_category: str = "sedan"
    ride_category: str = "one-way"
    is_emergency: bool = False
    is_recurring: bool = False
    is_airport_transfer: bool = False
    pickup_time: Optional[datetime] = None
    is_corporate: bool = False


@dataclass(frozen=True)
class FareAdjustments:
    peak_hours: bool = False
    night_hours: bool = False
    weekend: bool = False
    emergency: bool = False
    airport_transfer: bool = False
    airport_transfer_amount: float = 0.0
    recurring: bool = False
    recurring_discount_amount: float = 0.0
    corporate_discount: bool = False
    corporate_discount_amount: float = 0.0


@dataclass(frozen=True)
class FareBreakdown:
    base_fare: float
    distance_fare: float
    duration_fare: float
    vehicle_multiplier: float
    total_fare: float
    currency: str = "USD"
    adjustments: FareAdjustments = field(default_factory=FareAdjustments)


# ── Calculation ───────────────────────────────────────────────────────


def round_money(value: float) -> float:
    """Round half-up to cents on the decimal representation of *value*."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def sunday_based_weekday(moment: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (moment.weekday() + 1) % 7


def is_currently_valid(config: PricingConfiguration, now: datetime) -> bool:
    now = as_utc(now)
    if not config.is_active:
        return False
    if config.valid_from is not None and as_utc(config.valid_from) > now:
        return False
    return config.valid_until is None or now <= as_utc(config.valid_until)


def _distance_fare(config: PricingConfiguration, distance: float) -> float:
    if config.distance_tiers:
        for tier in config.distance_tiers:
            if tier.matches(distance):
                return distance * tier.per_km_rate
        # No tier covers this distance: stored rule-sets have no fallback.
        return 0.0
    return distance * config.per_km_rate


def _local_pickup(config: PricingConfiguration, pickup: datetime) -> datetime:
    if pickup.tzinfo is None:
        return pickup
    try:
        return pickup.astimezone(ZoneInfo(config.timezone))
    except ZoneInfoNotFoundError:
        logger.warning(
            "Unknown timezone %r on pricing %r; using pickup as given",
            config.timezone,
            config.name,
        )
        return pickup


def compute_fare(
    config: PricingConfiguration, ride: RideFareInput
) -> FareBreakdown:
    """Compute the fare for *ride* under *config*.  Pure and deterministic."""
    if ride.distance < 0 or ride.duration < 0:
        raise InvalidInputError(
            f"distance and duration must be non-negative "
            f"(got distance={ride.distance}, duration={ride.duration})"
        )

    distance_fare = _distance_fare(config, ride.distance)
    duration_fare = ride.duration * config.per_minute_rate
    vehicle_multiplier = config.vehicle_type_multipliers.get(
        ride.vehicle_category, 1.0
    )
    total = (config.base_fare + distance_fare + duration_fare) * vehicle_multiplier

    peak = night = weekend = False
    if ride.pickup_time is not None:
        local = _local_pickup(config, ride.pickup_time)
        hour, day = local.hour, sunday_based_weekday(local)

        window = config.peak_hours
        if (
            window.enabled
            and window.start_hour <= hour <= window.end_hour
            and day in window.days
        ):
            total *= window.multiplier
            peak = True

        window = config.night_hours
        if window.enabled and (
            hour >= window.start_hour or hour <= window.end_hour
        ):
            total *= window.multiplier
            night = True

        window = config.weekend
        if window.enabled and day in window.days:
            total *= window.multiplier
            weekend = True

    special = config.special
    emergency = ride.is_emergency and special.emergency_enabled
    if emergency:
        total *= special.emergency_multiplier

    airport = ride.is_airport_transfer and special.airport_enabled
    airport_amount = 0.0
    if airport:
        airport_amount = special.airport_additional_fare
        total += airport_amount

    recurring = ride.is_recurring and special.recurring_enabled
    recurring_amount = 0.0
    if recurring:
        recurring_amount = total * (special.recurring_discount_percentage / 100)
        total -= recurring_amount

    corporate = ride.is_corporate and config.corporate.enabled
    corporate_amount = 0.0
    if corporate:
        corporate_amount = min(
            total * (config.corporate.percentage / 100),
            config.corporate.maximum_discount,
        )
        total -= corporate_amount

    total = max(total, config.minimum_fare)
    if config.maximum_fare is not None:
        total = min(total, config.maximum_fare)

    return FareBreakdown(
        base_fare=config.base_fare,
        distance_fare=distance_fare,
        duration_fare=duration_fare,
        vehicle_multiplier=vehicle_multiplier,
        total_fare=round_money(total),
        currency=config.currency,
        adjustments=FareAdjustments(
            peak_hours=peak,
            night_hours=night,
            weekend=weekend,
            emergency=emergency,
            airport_transfer=airport,
            airport_transfer_amount=airport_amount,
            recurring=recurring,
            recurring_discount_amount=recurring_amount,
            corporate_discount=corporate,
            corporate_discount_amount=corporate_amount,
        ),
    )


# ── Supplementary charges ─────────────────────────────────────────────


def cancellation_fee(
    config: PricingConfiguration,
    scheduled_pickup: datetime,
    cancelled_at: datetime,
) -> float:
    """Fee owed when a ride is cancelled *cancelled_at*, by hours left."""
    hours_left = (
        as_utc(scheduled_pickup) - as_utc(cancelled_at)
    ).total_seconds() / 3600
    fees = config.cancellation_fees
    if hours_left <= 1:
        return fees.within_1_hour
    if hours_left <= 2:
        return fees.within_2_hours
    if hours_left <= 4:
        return fees.within_4_hours
    if hours_left <= 24:
        return fees.within_24_hours
    return fees.after_24_hours


def waiting_charge(config: PricingConfiguration, waited_minutes: float) -> float:
    if waited_minutes < 0:
        raise InvalidInputError("waited_minutes must be non-negative")
    charges = config.waiting_charges
    billable = min(waited_minutes, charges.max_wait_time) - charges.free_wait_time
    return round_money(max(0.0, billable) * charges.per_minute_charge)
