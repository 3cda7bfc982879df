"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (pending -> approved -> in-progress -> completed, with rejected /
  cancelled / no-show as terminal branches).
- ``Ride.fare_input`` turns stored trip facts into the calculator's
  value object.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .enums import RIDE_TRANSITIONS, RideStatus, RideType, VehicleType
from .pricing import RideFareInput


class InvalidStateTransition(Exception):
    """Raised when a ride status change violates the state machine."""


def check_transition(current: RideStatus, new_status: RideStatus) -> None:
    allowed = RIDE_TRANSITIONS.get(current, set())
    if new_status not in allowed:
        raise InvalidStateTransition(
            f"Cannot transition from {current.value} to {new_status.value}"
        )


@dataclass
class Ride:
    id: Optional[int] = None
    user_id: int = 0
    pickup: str = ""
    drop: str = ""
    date: Optional[datetime] = None
    status: RideStatus = RideStatus.PENDING
    ride_type: RideType = RideType.ONE_WAY
    vehicle_type: VehicleType = VehicleType.SEDAN
    estimated_distance_km: Optional[float] = None
    estimated_duration_min: Optional[float] = None
    is_corporate: bool = True
    is_recurring: bool = False

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        check_transition(self.status, new_status)
        self.status = new_status

    def fare_input(self) -> RideFareInput:
        return RideFareInput(
            distance=self.estimated_distance_km or 0.0,
            duration=self.estimated_duration_min or 0.0,
            vehicle_category=self.vehicle_type.value,
            ride_category=self.ride_type.value,
            is_emergency=self.ride_type == RideType.EMERGENCY,
            is_recurring=self.is_recurring or self.ride_type == RideType.RECURRING,
            is_airport_transfer=self.ride_type == RideType.AIRPORT_TRANSFER,
            pickup_time=self.date,
            is_corporate=self.is_corporate,
        )
