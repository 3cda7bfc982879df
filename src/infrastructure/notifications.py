"""
Notification delivery service.

Notifications are persisted first, then pushed through every enabled
channel.  Channels are injected; the defaults only log, since the real
email / SMS / push providers live outside this service.

Delivery status
---------------
* every enabled channel succeeded            -> ``sent``
* at least one enabled channel raised        -> ``failed`` (retried later)

Per-channel results are kept in the ``delivery`` JSON column::

    {"email": {"sent": true, "sent_at": "...", "delivered": true, ...},
     "sms":   {"sent": false, "error": "provider timeout"}, ...}
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from .models import NotificationModel, RideModel, UserModel
from .repositories import NotificationRepository, RideRepository
from src.config import settings
from src.domain.clock import as_utc, utcnow
from src.domain.enums import NotificationPriority, NotificationStatus, NotificationType
from src.domain.notifications import (
    TITLES,
    PICKUP_REMINDER_WINDOW_MINUTES,
    email_template,
    minutes_until_pickup,
    next_retry_at,
    reminder_due,
    render_template,
    sms_template,
)

logger = logging.getLogger(__name__)

CHANNELS = ("email", "sms", "push", "in_app")


class NotificationChannel(Protocol):
    async def send(self, notification: NotificationModel, content: str) -> None: ...


class LoggingChannel:
    """Channel that records the delivery in the application log only."""

    def __init__(self, name: str):
        self.name = name

    async def send(self, notification: NotificationModel, content: str) -> None:
        logger.info(
            "[%s] notification %s (%s) -> recipient %s",
            self.name,
            notification.id,
            notification.type,
            notification.recipient_id,
        )


def default_channels() -> dict[str, NotificationChannel]:
    return {name: LoggingChannel(name) for name in CHANNELS}


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return as_utc(value).strftime("%Y-%m-%d %H:%M UTC")


class NotificationService:
    def __init__(
        self,
        session: AsyncSession,
        channels: Optional[Mapping[str, NotificationChannel]] = None,
    ):
        self.session = session
        self.repo = NotificationRepository(session)
        self.channels = dict(channels) if channels is not None else default_channels()

    # ── Creation ──────────────────────────────────────────────────

    async def create(
        self,
        *,
        recipient: UserModel,
        notification_type: str,
        message: str,
        title: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
        channels: Optional[dict[str, bool]] = None,
        scheduled_for: Optional[datetime] = None,
        priority: str = NotificationPriority.NORMAL.value,
        related_ride_id: Optional[int] = None,
        recipient_type: str = "user",
        now: Optional[datetime] = None,
    ) -> NotificationModel:
        """Persist a notification and send it right away when it is due."""
        now = now or utcnow()
        notification = NotificationModel(
            recipient_type=recipient_type,
            recipient_id=recipient.id,
            recipient_email=recipient.email,
            recipient_phone=recipient.phone,
            recipient_name=recipient.name,
            type=notification_type,
            title=title or TITLES.get(notification_type, "Notification"),
            message=message,
            data=data or {},
            channels=channels or {"email": False, "sms": False, "push": False, "in_app": True},
            delivery={},
            scheduled_for=scheduled_for or now,
            expires_at=now + timedelta(days=settings.notification_expiry_days),
            status=NotificationStatus.PENDING.value,
            priority=priority,
            related_ride_id=related_ride_id,
            retry_count=0,
            max_retries=settings.notification_max_retries,
        )
        await self.repo.create(notification)

        if as_utc(notification.scheduled_for) <= as_utc(now):
            await self.dispatch(notification, now=now)
        return notification

    async def schedule(
        self, *, scheduled_for: datetime, **kwargs: Any
    ) -> NotificationModel:
        """Store a notification to be sent by the worker at *scheduled_for*."""
        notification = await self.create(scheduled_for=scheduled_for, **kwargs)
        if notification.status == NotificationStatus.PENDING.value:
            notification.status = NotificationStatus.SCHEDULED.value
        return notification

    # ── Delivery ──────────────────────────────────────────────────

    async def dispatch(
        self, notification: NotificationModel, now: Optional[datetime] = None
    ) -> NotificationModel:
        now = now or utcnow()
        enabled = notification.channels or {}
        delivery = {k: dict(v) for k, v in (notification.delivery or {}).items()}
        failed = False

        for name in CHANNELS:
            if not enabled.get(name):
                continue
            channel = self.channels.get(name)
            if channel is None:
                continue
            record = delivery.setdefault(name, {})
            try:
                await channel.send(notification, self._content(notification, name))
            except Exception as exc:
                logger.exception(
                    "Channel %s failed for notification %s", name, notification.id
                )
                record.update(sent=False, error=str(exc))
                failed = True
                continue
            record.update(sent=True, sent_at=now.isoformat(), error=None)
            if name == "in_app":
                record.setdefault("read", False)
            else:
                record.update(delivered=True, delivered_at=now.isoformat())

        notification.delivery = delivery
        if failed:
            notification.status = NotificationStatus.FAILED.value
        else:
            notification.status = NotificationStatus.SENT.value
            notification.sent_at = now
        await self.session.flush()
        return notification

    @staticmethod
    def _content(notification: NotificationModel, channel: str) -> str:
        if channel == "email":
            template = email_template(notification.type)
        elif channel == "sms":
            template = sms_template(notification.type)
        else:
            template = "{{message}}"
        return render_template(
            template,
            recipient_name=notification.recipient_name,
            message=notification.message,
            data=notification.data,
        )

    async def process_pending(self, now: Optional[datetime] = None) -> int:
        """Send every due pending / scheduled notification.  Returns the count."""
        now = now or utcnow()
        due = await self.repo.get_pending(now) + await self.repo.get_due_scheduled(now)
        for notification in due:
            await self.dispatch(notification, now=now)
        return len(due)

    async def retry_failed(self, now: Optional[datetime] = None) -> int:
        """Retry failed notifications with exponential backoff."""
        now = now or utcnow()
        failed = await self.repo.get_failed_for_retry(now)
        for notification in failed:
            notification.retry_count += 1
            notification.next_retry_at = next_retry_at(notification.retry_count, now)
            await self.dispatch(notification, now=now)
        return len(failed)

    # ── Ride events ───────────────────────────────────────────────

    async def send_ride_notification(
        self,
        ride: RideModel,
        user: UserModel,
        notification_type: NotificationType,
        extra: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> NotificationModel:
        data = {
            "pickupLocation": ride.pickup,
            "dropLocation": ride.drop,
            "rideDate": _format_date(ride.date),
            "rideStatus": ride.status,
            **(extra or {}),
        }
        channels = {
            "email": bool(user.notify_email),
            "sms": bool(user.notify_sms),
            "push": bool(user.notify_push),
            "in_app": True,
        }
        return await self.create(
            recipient=user,
            notification_type=notification_type.value,
            message=render_template(
                sms_template(notification_type.value),
                recipient_name=user.name,
                message="",
                data=data,
            ),
            data=data,
            channels=channels,
            related_ride_id=ride.id,
            now=now,
        )

    async def send_pickup_reminder(
        self, ride: RideModel, user: UserModel, now: Optional[datetime] = None
    ) -> Optional[NotificationModel]:
        now = now or utcnow()
        if not reminder_due(ride.date, now):
            return None
        minutes = minutes_until_pickup(ride.date, now)
        return await self.send_ride_notification(
            ride,
            user,
            NotificationType.PICKUP_REMINDER,
            {
                "timeUntilPickup": f"{minutes} minutes",
                "pickupTime": as_utc(ride.date).strftime("%H:%M UTC"),
            },
            now=now,
        )

    async def send_due_reminders(self, now: Optional[datetime] = None) -> int:
        """Remind riders of approved rides picking up within the reminder window."""
        now = now or utcnow()
        rides = await RideRepository(self.session).get_awaiting_reminder(
            now, timedelta(minutes=PICKUP_REMINDER_WINDOW_MINUTES)
        )
        sent = 0
        for ride in rides:
            user = await self.session.get(UserModel, ride.user_id)
            if user is None or not user.is_active:
                continue
            if await self.send_pickup_reminder(ride, user, now=now) is not None:
                sent += 1
        return sent

    # ── Inbox ─────────────────────────────────────────────────────

    async def unread_for_user(self, user_id: int) -> list[NotificationModel]:
        notifications = await self.repo.list_sent_for_user(user_id)
        return [n for n in notifications if not is_read(n)]

    async def mark_as_read(
        self, notification_id: int, user_id: int, now: Optional[datetime] = None
    ) -> Optional[NotificationModel]:
        notification = await self.repo.get_for_recipient(notification_id, user_id)
        if notification is None:
            return None
        _mark_read(notification, now or utcnow())
        await self.session.flush()
        return notification

    async def mark_all_as_read(self, user_id: int, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        updated = 0
        for notification in await self.unread_for_user(user_id):
            _mark_read(notification, now)
            updated += 1
        await self.session.flush()
        return updated


def is_read(notification: NotificationModel) -> bool:
    return bool((notification.delivery or {}).get("in_app", {}).get("read"))


def _mark_read(notification: NotificationModel, now: datetime) -> None:
    delivery = {k: dict(v) for k, v in (notification.delivery or {}).items()}
    delivery.setdefault("in_app", {}).update(read=True, read_at=now.isoformat())
    notification.delivery = delivery
