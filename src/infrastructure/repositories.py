"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    AdminActionModel,
    AuditLogModel,
    NotificationModel,
    PricingConfigModel,
    RideModel,
    UserModel,
)
from src.domain.auth import UserCredentialState
from src.domain.clock import as_utc
from src.domain.entities import Ride
from src.domain.enums import (
    AuditAction,
    NotificationStatus,
    NotificationType,
    RideStatus,
    RideType,
    VehicleType,
)
from src.domain.pricing import (
    CancellationFees,
    CorporateDiscount,
    DistanceTier,
    PricingConfiguration,
    SpecialPricing,
    SurgeSettings,
    TimeWindow,
    WaitingCharges,
)

RIDE_SORT_FIELDS = {"date", "created_at", "status", "pickup", "drop", "total_fare"}


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()

    async def get_by_email_for_update(self, email: str) -> Optional[UserModel]:
        """SELECT ... FOR UPDATE so concurrent logins serialise on the row."""
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email).with_for_update()
        )
        return result.scalar_one_or_none()

    async def get_by_reset_token(
        self, token: str, now: datetime
    ) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(
                UserModel.reset_password_token == token,
                UserModel.reset_password_expires > now,
            )
        )
        return result.scalar_one_or_none()


def credential_state(user: UserModel) -> UserCredentialState:
    return UserCredentialState(
        is_active=bool(user.is_active),
        lock_until=as_utc(user.lock_until),
        last_password_change=as_utc(user.last_password_change),
    )


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: int) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def search(
        self,
        *,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        pickup: Optional[str] = None,
        drop: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        sort_by: str = "date",
        order: str = "desc",
    ) -> list[RideModel]:
        """Filter rides; pickup / drop are case-insensitive substrings."""
        query = select(RideModel)
        if user_id is not None:
            query = query.where(RideModel.user_id == user_id)
        if status:
            query = query.where(RideModel.status == status)
        if pickup:
            query = query.where(RideModel.pickup.ilike(f"%{pickup}%"))
        if drop:
            query = query.where(RideModel.drop.ilike(f"%{drop}%"))
        if date_from is not None:
            query = query.where(RideModel.date >= date_from)
        if date_to is not None:
            query = query.where(RideModel.date <= date_to)

        column = getattr(
            RideModel, sort_by if sort_by in RIDE_SORT_FIELDS else "date"
        )
        query = query.order_by(column.asc() if order == "asc" else column.desc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_between(self, start: datetime, end: datetime) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel).where(RideModel.date >= start, RideModel.date <= end)
        )
        return list(result.scalars().all())

    async def get_awaiting_reminder(
        self, now: datetime, window: timedelta
    ) -> list[RideModel]:
        """Approved rides picking up within ``window`` that have no reminder yet."""
        reminded = (
            select(NotificationModel.id)
            .where(
                NotificationModel.related_ride_id == RideModel.id,
                NotificationModel.type == NotificationType.PICKUP_REMINDER.value,
            )
            .exists()
        )
        result = await self.session.execute(
            select(RideModel).where(
                RideModel.status == RideStatus.APPROVED.value,
                RideModel.date > now,
                RideModel.date <= now + window,
                ~reminded,
            )
        )
        return list(result.scalars().all())


def ride_entity(model: RideModel) -> Ride:
    return Ride(
        id=model.id,
        user_id=model.user_id,
        pickup=model.pickup,
        drop=model.drop,
        date=as_utc(model.date),
        status=RideStatus(model.status),
        ride_type=RideType(model.ride_type),
        vehicle_type=VehicleType(model.vehicle_type),
        estimated_distance_km=model.estimated_distance_km,
        estimated_duration_min=model.estimated_duration_min,
        is_corporate=bool(model.is_corporate),
        is_recurring=bool(model.is_recurring),
    )


class AdminActionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, action: AdminActionModel) -> AdminActionModel:
        self.session.add(action)
        await self.session.flush()
        return action


class AuditLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        user_id: int,
        action: AuditAction,
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLogModel:
        entry = AuditLogModel(
            user_id=user_id, action=action.value, details=details or {}
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def search(
        self,
        *,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLogModel]:
        query = select(AuditLogModel)
        if user_id is not None:
            query = query.where(AuditLogModel.user_id == user_id)
        if action:
            query = query.where(AuditLogModel.action == action)
        query = query.order_by(
            AuditLogModel.created_at.desc(), AuditLogModel.id.desc()
        ).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())


class PricingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, config: PricingConfigModel) -> PricingConfigModel:
        self.session.add(config)
        await self.session.flush()
        return config

    async def get_by_id(self, config_id: int) -> Optional[PricingConfigModel]:
        return await self.session.get(PricingConfigModel, config_id)

    async def get_by_name(self, name: str) -> Optional[PricingConfigModel]:
        result = await self.session.execute(
            select(PricingConfigModel).where(PricingConfigModel.name == name)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[PricingConfigModel]:
        result = await self.session.execute(
            select(PricingConfigModel).order_by(PricingConfigModel.valid_from.desc())
        )
        return list(result.scalars().all())

    async def get_active(self, now: datetime) -> Optional[PricingConfigModel]:
        """Enabled and within [valid_from, valid_until]; newest wins."""
        result = await self.session.execute(
            select(PricingConfigModel)
            .where(
                PricingConfigModel.is_active.is_(True),
                PricingConfigModel.valid_from <= now,
                or_(
                    PricingConfigModel.valid_until.is_(None),
                    PricingConfigModel.valid_until >= now,
                ),
            )
            .order_by(PricingConfigModel.valid_from.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def delete(self, config: PricingConfigModel) -> None:
        await self.session.delete(config)
        await self.session.flush()


def _window(raw: Optional[dict[str, Any]], default: TimeWindow) -> TimeWindow:
    if not raw:
        return default
    return TimeWindow(
        enabled=raw.get("enabled", default.enabled),
        multiplier=raw.get("multiplier", default.multiplier),
        start_time=raw.get("start_time") or default.start_time,
        end_time=raw.get("end_time") or default.end_time,
        days=tuple(raw.get("days") or ()),
    )


def to_pricing_configuration(model: PricingConfigModel) -> PricingConfiguration:
    """Build the calculator's read-only snapshot from a stored record."""
    base = PricingConfiguration(
        name=model.name,
        base_fare=model.base_fare,
        per_km_rate=model.per_km_rate,
        per_minute_rate=model.per_minute_rate,
        minimum_fare=model.minimum_fare,
    )
    timing = model.time_based_pricing or {}
    special = model.special_pricing or {}
    airport = special.get("airport_transfer") or {}
    emergency = special.get("emergency_ride") or {}
    recurring = special.get("recurring_ride") or {}
    corporate = model.corporate_discounts or {}
    surge = model.surge_pricing or {}

    return PricingConfiguration(
        name=model.name,
        base_fare=model.base_fare,
        per_km_rate=model.per_km_rate,
        per_minute_rate=model.per_minute_rate,
        minimum_fare=model.minimum_fare,
        maximum_fare=model.maximum_fare,
        vehicle_type_multipliers={
            **base.vehicle_type_multipliers,
            **(model.vehicle_type_multipliers or {}),
        },
        peak_hours=_window(timing.get("peak_hours"), base.peak_hours),
        night_hours=_window(timing.get("night_hours"), base.night_hours),
        weekend=_window(timing.get("weekend"), base.weekend),
        distance_tiers=tuple(
            DistanceTier(
                min_distance=tier["min_distance"],
                max_distance=tier.get("max_distance"),
                per_km_rate=tier["per_km_rate"],
                description=tier.get("description"),
            )
            for tier in (model.distance_tiers or [])
        ),
        surge=SurgeSettings(
            **{k: v for k, v in surge.items() if k in SurgeSettings.__dataclass_fields__}
        ),
        corporate=CorporateDiscount(
            enabled=corporate.get("enabled", True),
            percentage=corporate.get("percentage", 10.0),
            maximum_discount=corporate.get("maximum_discount", 50.0),
            minimum_rides=corporate.get("minimum_rides", 0),
            applicable_ride_types=tuple(
                corporate.get("applicable_ride_types") or ()
            ),
        ),
        special=SpecialPricing(
            airport_enabled=airport.get("enabled", False),
            airport_additional_fare=airport.get("additional_fare", 0.0),
            emergency_enabled=emergency.get("enabled", False),
            emergency_multiplier=emergency.get("multiplier", 1.5),
            recurring_enabled=recurring.get("enabled", False),
            recurring_discount_percentage=recurring.get("discount_percentage", 5.0),
            recurring_minimum_frequency=recurring.get("minimum_frequency", 5),
        ),
        cancellation_fees=CancellationFees(**(model.cancellation_fees or {})),
        waiting_charges=WaitingCharges(**(model.waiting_charges or {})),
        is_active=bool(model.is_active),
        currency=model.currency,
        region=model.region,
        timezone=model.timezone,
        valid_from=as_utc(model.valid_from),
        valid_until=as_utc(model.valid_until),
        version=model.version,
    )


class NotificationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, notification: NotificationModel) -> NotificationModel:
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def get_by_id(self, notification_id: int) -> Optional[NotificationModel]:
        return await self.session.get(NotificationModel, notification_id)

    async def get_for_recipient(
        self, notification_id: int, recipient_id: int
    ) -> Optional[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.id == notification_id,
                NotificationModel.recipient_id == recipient_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self, user_id: int, *, page: int = 1, limit: int = 20
    ) -> tuple[list[NotificationModel], int]:
        condition = (
            NotificationModel.recipient_id == user_id,
            NotificationModel.recipient_type == "user",
        )
        result = await self.session.execute(
            select(NotificationModel)
            .where(*condition)
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        total = await self.session.execute(
            select(func.count()).select_from(NotificationModel).where(*condition)
        )
        return list(result.scalars().all()), total.scalar() or 0

    async def list_sent_for_user(self, user_id: int) -> list[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel)
            .where(
                NotificationModel.recipient_id == user_id,
                NotificationModel.recipient_type == "user",
                NotificationModel.status.in_(
                    [NotificationStatus.SENT.value, NotificationStatus.DELIVERED.value]
                ),
            )
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
        )
        return list(result.scalars().all())

    async def get_pending(self, now: datetime) -> list[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.status == NotificationStatus.PENDING.value,
                NotificationModel.scheduled_for <= now,
                or_(
                    NotificationModel.expires_at.is_(None),
                    NotificationModel.expires_at > now,
                ),
            )
        )
        return list(result.scalars().all())

    async def get_due_scheduled(self, now: datetime) -> list[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.status == NotificationStatus.SCHEDULED.value,
                NotificationModel.scheduled_for <= now,
            )
        )
        return list(result.scalars().all())

    async def get_failed_for_retry(self, now: datetime) -> list[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.status == NotificationStatus.FAILED.value,
                NotificationModel.retry_count < NotificationModel.max_retries,
                or_(
                    NotificationModel.next_retry_at.is_(None),
                    NotificationModel.next_retry_at <= now,
                ),
            )
        )
        return list(result.scalars().all())

    async def delete_for_recipient(self, notification_id: int, recipient_id: int) -> int:
        result = await self.session.execute(
            delete(NotificationModel).where(
                NotificationModel.id == notification_id,
                NotificationModel.recipient_id == recipient_id,
            )
        )
        return result.rowcount or 0
