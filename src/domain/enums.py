"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    NO_SHOW = "no-show"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {
        RideStatus.APPROVED,
        RideStatus.REJECTED,
        RideStatus.CANCELLED,
    },
    RideStatus.APPROVED: {
        RideStatus.IN_PROGRESS,
        RideStatus.CANCELLED,
        RideStatus.NO_SHOW,
    },
    RideStatus.IN_PROGRESS: {RideStatus.COMPLETED},
    RideStatus.REJECTED: set(),
    RideStatus.CANCELLED: set(),
    RideStatus.COMPLETED: set(),
    RideStatus.NO_SHOW: set(),
}


class VehicleType(str, enum.Enum):
    SEDAN = "sedan"
    SUV = "suv"
    LUXURY = "luxury"
    VAN = "van"
    BUS = "bus"


class RideType(str, enum.Enum):
    ONE_WAY = "one-way"
    ROUND_TRIP = "round-trip"
    RECURRING = "recurring"
    EMERGENCY = "emergency"
    AIRPORT_TRANSFER = "airport-transfer"


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    MANAGER = "manager"


class AdminActionType(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class AuditAction(str, enum.Enum):
    CREATE_RIDE = "create_ride"
    CANCEL_RIDE = "cancel_ride"
    UPDATE_PROFILE = "update_profile"
    DEACTIVATE_USER = "deactivate_user"
    APPROVE_RIDE = "approve_ride"
    REJECT_RIDE = "reject_ride"


class CancelledBy(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    DRIVER = "driver"
    SYSTEM = "system"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NotificationType(str, enum.Enum):
    RIDE_BOOKED = "ride-booked"
    RIDE_APPROVED = "ride-approved"
    RIDE_REJECTED = "ride-rejected"
    RIDE_CANCELLED = "ride-cancelled"
    DRIVER_ASSIGNED = "driver-assigned"
    PICKUP_REMINDER = "pickup-reminder"
    RIDE_STARTED = "ride-started"
    RIDE_COMPLETED = "ride-completed"
    PASSWORD_RESET = "password-reset"
    WELCOME = "welcome"
    SYSTEM_MAINTENANCE = "system-maintenance"
    EMERGENCY = "emergency"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RejectionReason(str, enum.Enum):
    """Why a presented access token was refused."""

    USER_NOT_FOUND = "USER_NOT_FOUND"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
