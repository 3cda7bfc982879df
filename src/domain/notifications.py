"""
Notification templates and delivery rules.

Retry backoff
-------------
Before every retry the counter is bumped and the next attempt is pushed
out exponentially::

    next_retry_at = now + 2 ** retry_count minutes

so the 1st, 2nd and 3rd retries wait 2, 4 and 8 minutes.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from .clock import as_utc
from .enums import NotificationStatus, NotificationType

PICKUP_REMINDER_WINDOW_MINUTES = 30

EMAIL_TEMPLATES: dict[str, str] = {
    NotificationType.RIDE_BOOKED.value: (
        "<h2>Ride Booked Successfully!</h2>"
        "<p>Hello {{recipientName}},</p>"
        "<p>Your ride has been booked successfully.</p>"
        "<p><strong>Pickup:</strong> {{pickupLocation}}</p>"
        "<p><strong>Drop:</strong> {{dropLocation}}</p>"
        "<p><strong>Date:</strong> {{rideDate}}</p>"
        "<p><strong>Status:</strong> {{rideStatus}}</p>"
    ),
    NotificationType.RIDE_APPROVED.value: (
        "<h2>Ride Approved!</h2>"
        "<p>Hello {{recipientName}},</p>"
        "<p>Your ride request has been approved.</p>"
        "<p><strong>Pickup:</strong> {{pickupLocation}}</p>"
        "<p><strong>Drop:</strong> {{dropLocation}}</p>"
        "<p><strong>Date:</strong> {{rideDate}}</p>"
    ),
    NotificationType.RIDE_REJECTED.value: (
        "<h2>Ride Rejected</h2>"
        "<p>Hello {{recipientName}},</p>"
        "<p>Your ride request on {{rideDate}} was rejected.</p>"
        "<p><strong>Reason:</strong> {{reason}}</p>"
    ),
    NotificationType.RIDE_CANCELLED.value: (
        "<h2>Ride Cancelled</h2>"
        "<p>Hello {{recipientName}},</p>"
        "<p>Your ride from {{pickupLocation}} to {{dropLocation}} "
        "on {{rideDate}} has been cancelled.</p>"
    ),
    NotificationType.DRIVER_ASSIGNED.value: (
        "<h2>Driver Assigned!</h2>"
        "<p>Hello {{recipientName}},</p>"
        "<p><strong>Driver:</strong> {{driverName}}</p>"
        "<p><strong>Vehicle:</strong> {{vehicleDetails}}</p>"
        "<p><strong>Phone:</strong> {{driverPhone}}</p>"
        "<p><strong>Estimated Arrival:</strong> {{estimatedArrival}}</p>"
    ),
    NotificationType.PICKUP_REMINDER.value: (
        "<h2>Pickup Reminder</h2>"
        "<p>Hello {{recipientName}},</p>"
        "<p>Your ride is scheduled in {{timeUntilPickup}}.</p>"
        "<p><strong>Pickup:</strong> {{pickupLocation}}</p>"
        "<p><strong>Pickup Time:</strong> {{pickupTime}}</p>"
    ),
}

SMS_TEMPLATES: dict[str, str] = {
    NotificationType.RIDE_BOOKED.value: (
        "Ride booked! Pickup: {{pickupLocation}}, Drop: {{dropLocation}}, "
        "Date: {{rideDate}}. Status: {{rideStatus}}"
    ),
    NotificationType.RIDE_APPROVED.value: (
        "Ride approved! Pickup: {{pickupLocation}}, Drop: {{dropLocation}}, "
        "Date: {{rideDate}}"
    ),
    NotificationType.RIDE_REJECTED.value: (
        "Ride on {{rideDate}} rejected: {{reason}}"
    ),
    NotificationType.RIDE_CANCELLED.value: (
        "Ride cancelled. Pickup: {{pickupLocation}}, Date: {{rideDate}}"
    ),
    NotificationType.DRIVER_ASSIGNED.value: (
        "Driver assigned: {{driverName}}, Vehicle: {{vehicleDetails}}, "
        "Phone: {{driverPhone}}, ETA: {{estimatedArrival}}"
    ),
    NotificationType.PICKUP_REMINDER.value: (
        "Pickup reminder: Your ride is in {{timeUntilPickup}}. "
        "Pickup: {{pickupLocation}} at {{pickupTime}}"
    ),
}

SMS_FALLBACK = "Notification: {{message}}"

TITLES: dict[str, str] = {
    NotificationType.RIDE_BOOKED.value: "Ride booked",
    NotificationType.RIDE_APPROVED.value: "Ride approved",
    NotificationType.RIDE_REJECTED.value: "Ride rejected",
    NotificationType.RIDE_CANCELLED.value: "Ride cancelled",
    NotificationType.DRIVER_ASSIGNED.value: "Driver assigned",
    NotificationType.PICKUP_REMINDER.value: "Pickup reminder",
}


def email_template(notification_type: str) -> str:
    return EMAIL_TEMPLATES.get(
        notification_type, EMAIL_TEMPLATES[NotificationType.RIDE_BOOKED.value]
    )


def sms_template(notification_type: str) -> str:
    return SMS_TEMPLATES.get(notification_type, SMS_FALLBACK)


def render_template(
    template: str,
    *,
    recipient_name: Optional[str],
    message: str,
    data: Optional[Mapping[str, Any]] = None,
) -> str:
    content = template.replace("{{recipientName}}", recipient_name or "User")
    content = content.replace("{{message}}", message)
    for key, value in (data or {}).items():
        content = re.sub(
            r"\{\{" + re.escape(key) + r"\}\}",
            lambda _m, v=value: str(v),
            content,
        )
    return content


# ── Derived state ─────────────────────────────────────────────────────


def next_retry_at(retry_count: int, now: datetime) -> datetime:
    return as_utc(now) + timedelta(minutes=2**retry_count)


def can_retry(
    status: str,
    retry_count: int,
    max_retries: int,
    retry_at: Optional[datetime],
    now: datetime,
) -> bool:
    return (
        status == NotificationStatus.FAILED.value
        and retry_count < max_retries
        and (retry_at is None or as_utc(retry_at) <= as_utc(now))
    )


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    return expires_at is not None and as_utc(expires_at) < as_utc(now)


def is_delivered(delivery: Mapping[str, Mapping[str, Any]]) -> bool:
    return bool(
        delivery.get("email", {}).get("delivered")
        or delivery.get("sms", {}).get("delivered")
        or delivery.get("push", {}).get("delivered")
        or delivery.get("in_app", {}).get("sent")
    )


def minutes_until_pickup(pickup: datetime, now: datetime) -> int:
    return round((as_utc(pickup) - as_utc(now)).total_seconds() / 60)


def reminder_due(pickup: datetime, now: datetime) -> bool:
    minutes = minutes_until_pickup(pickup, now)
    return 0 < minutes <= PICKUP_REMINDER_WINDOW_MINUTES
