"""
SQLAlchemy ORM models.

Tables
------
* ``users``            -- employees and admins, with lockout bookkeeping
* ``rides``            -- ride requests and their fare snapshot
* ``admin_actions``    -- approve / reject decisions on rides
* ``audit_logs``       -- who changed which ride or account, and when
* ``pricing_configs``  -- fare rule-sets; nested sections stored as JSON
* ``notifications``    -- queued / sent notifications with retry state

Indexes
-------
* **B-Tree** on ``status``, ``user_id``, ``date`` for ride listings,
  on ``is_active`` / ``valid_from`` for active-pricing lookup and on
  ``recipient_id`` / ``status`` / ``scheduled_for`` for the notification
  worker.
* ``audit_logs`` by ``user_id`` and ``created_at``.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from .database import Base
from src.domain.clock import utcnow
from src.domain.enums import (
    NotificationPriority,
    NotificationStatus,
    RideStatus,
    RideType,
    UserRole,
    VehicleType,
)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(100), nullable=False)
    role = Column(String(20), default=UserRole.USER.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Profile
    phone = Column(String(40), nullable=True)
    department = Column(String(120), nullable=True)
    employee_id = Column(String(64), unique=True, nullable=True)
    designation = Column(String(120), nullable=True)

    # Notification preferences
    notify_email = Column(Boolean, default=True, nullable=False)
    notify_sms = Column(Boolean, default=False, nullable=False)
    notify_push = Column(Boolean, default=True, nullable=False)

    # Security
    login_attempts = Column(Integer, default=0, nullable=False)
    lock_until = Column(DateTime(timezone=True), nullable=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    last_password_change = Column(DateTime(timezone=True), nullable=True)
    reset_password_token = Column(String(64), nullable=True)
    reset_password_expires = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_users_role", "role"),
        Index("idx_users_active", "is_active"),
    )


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    pickup = Column(String(255), nullable=False)
    drop = Column(String(255), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)

    status = Column(String(20), default=RideStatus.PENDING.value, nullable=False)
    ride_type = Column(String(20), default=RideType.ONE_WAY.value, nullable=False)
    vehicle_type = Column(
        String(20), default=VehicleType.SEDAN.value, nullable=False
    )
    passenger_count = Column(Integer, default=1, nullable=False)
    estimated_distance_km = Column(Float, nullable=True)
    estimated_duration_min = Column(Float, nullable=True)

    is_corporate = Column(Boolean, default=True, nullable=False)
    is_recurring = Column(Boolean, default=False, nullable=False)
    requires_approval = Column(Boolean, default=True, nullable=False)

    # Fare snapshot
    base_fare = Column(Float, default=0.0, nullable=False)
    distance_fare = Column(Float, default=0.0, nullable=False)
    duration_fare = Column(Float, default=0.0, nullable=False)
    total_fare = Column(Float, default=0.0, nullable=False)
    currency = Column(String(8), default="USD", nullable=False)
    fare_breakdown = Column(JSON, nullable=True)
    pricing_config_id = Column(Integer, nullable=True)

    admin_action_id = Column(Integer, nullable=True)

    # Cancellation
    cancelled_by = Column(String(20), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_fee = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_rides_user_date", "user_id", "date"),
        Index("idx_rides_status", "status"),
        Index("idx_rides_date", "date"),
    )


class AdminActionModel(Base):
    __tablename__ = "admin_actions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    action = Column(String(10), nullable=False)
    reason = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow)


class AuditLogModel(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    action = Column(String(30), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_audit_logs_user", "user_id"),
        Index("idx_audit_logs_created_at", "created_at"),
    )


class PricingConfigModel(Base):
    __tablename__ = "pricing_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    base_fare = Column(Float, nullable=False)
    per_km_rate = Column(Float, nullable=False)
    per_minute_rate = Column(Float, nullable=False)
    minimum_fare = Column(Float, nullable=False)
    maximum_fare = Column(Float, nullable=True)

    vehicle_type_multipliers = Column(JSON, nullable=False, default=dict)
    time_based_pricing = Column(JSON, nullable=False, default=dict)
    distance_tiers = Column(JSON, nullable=False, default=list)
    surge_pricing = Column(JSON, nullable=False, default=dict)
    corporate_discounts = Column(JSON, nullable=False, default=dict)
    special_pricing = Column(JSON, nullable=False, default=dict)
    cancellation_fees = Column(JSON, nullable=False, default=dict)
    waiting_charges = Column(JSON, nullable=False, default=dict)

    currency = Column(String(8), default="USD", nullable=False)
    region = Column(String(16), default="US", nullable=False)
    timezone = Column(String(64), default="UTC", nullable=False)
    valid_from = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=True)

    version = Column(String(20), default="1.0", nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_pricing_active", "is_active"),
        Index("idx_pricing_validity", "valid_from", "valid_until"),
        Index("idx_pricing_region", "region"),
    )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)

    recipient_type = Column(String(20), default="user", nullable=False)
    recipient_id = Column(Integer, nullable=False)
    recipient_email = Column(String(255), nullable=True)
    recipient_phone = Column(String(40), nullable=True)
    recipient_name = Column(String(120), nullable=True)

    type = Column(String(40), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)

    # {"email": bool, "sms": bool, "push": bool, "in_app": bool}
    channels = Column(JSON, nullable=False, default=dict)
    # {"email": {"sent": .., "sent_at": .., "delivered": .., "error": ..}, ...}
    delivery = Column(JSON, nullable=False, default=dict)

    scheduled_for = Column(DateTime(timezone=True), default=utcnow)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        String(20), default=NotificationStatus.PENDING.value, nullable=False
    )
    priority = Column(
        String(10), default=NotificationPriority.NORMAL.value, nullable=False
    )

    related_ride_id = Column(Integer, ForeignKey("rides.id"), nullable=True)

    retry_count = Column(Integer, default=0, nullable=False)
    max_retries = Column(Integer, default=3, nullable=False)
    next_retry_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_notifications_recipient", "recipient_id", "recipient_type"),
        Index("idx_notifications_status", "status"),
        Index("idx_notifications_scheduled", "scheduled_for"),
        Index("idx_notifications_expires", "expires_at"),
    )
