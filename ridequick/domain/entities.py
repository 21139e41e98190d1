"""
Domain entities with business logic.

Patterns used
-------------
- **Value Object** ``Coordinate``: validated on construction, so every
  coordinate that reaches the geo module is finite and in range.
- **State Pattern** on ``Trip``: enforces valid lifecycle transitions
  (PENDING -> CONFIRMED -> IN_PROGRESS -> COMPLETED | CANCELLED).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .enums import TERMINAL_STATUSES, TRIP_TRANSITIONS, TripStatus
from .exceptions import InvalidInput, InvalidTransition

EntityId = str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Value Object ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        for name, value, bound in (
            ("latitude", self.latitude, 90.0),
            ("longitude", self.longitude, 180.0),
        ):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidInput(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or not -bound <= value <= bound:
                raise InvalidInput(
                    f"{name} must be within [-{bound:g}, {bound:g}], got {value!r}"
                )


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class User:
    id: Optional[EntityId] = None
    username: str = ""
    email: str = ""
    full_name: str = ""
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Driver:
    id: Optional[EntityId] = None
    full_name: str = ""
    phone: str = ""
    license_plate: str = ""
    car_model: str = ""
    rating: float = 5.0
    is_available: bool = True
    current_location: Coordinate = field(default_factory=lambda: Coordinate(0, 0))
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class CabType:
    id: Optional[EntityId] = None
    name: str = ""
    description: Optional[str] = None
    base_price: float = 0.0
    price_per_km: float = 0.0
    seating_capacity: int = 4

    def __post_init__(self) -> None:
        if self.base_price < 0 or self.price_per_km < 0:
            raise InvalidInput("Cab type prices must be non-negative")
        if self.seating_capacity < 1:
            raise InvalidInput("Cab type must seat at least one passenger")


@dataclass
class Trip:
    id: Optional[EntityId] = None
    user_id: EntityId = ""
    driver_id: Optional[EntityId] = None
    cab_type_id: EntityId = ""
    pickup_location: Coordinate = field(default_factory=lambda: Coordinate(0, 0))
    destination_location: Coordinate = field(
        default_factory=lambda: Coordinate(0, 0)
    )
    pickup_address: str = ""
    destination_address: str = ""
    distance: float = 0.0
    price: float = 0.0
    status: TripStatus = TripStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, new_status: TripStatus) -> bool:
        if new_status not in TRIP_TRANSITIONS.get(self.status, set()):
            return False
        # Starting straight from PENDING is a shortcut reserved for trips
        # that already have a driver.
        if self.status == TripStatus.PENDING and new_status == TripStatus.IN_PROGRESS:
            return self.driver_id is not None
        return True

    def check_transition(self, new_status: TripStatus) -> None:
        """Raise ``InvalidTransition`` unless *new_status* is reachable."""
        if not self.can_transition_to(new_status):
            raise InvalidTransition(
                f"Cannot transition trip {self.id} from "
                f"{self.status.value} to {new_status.value}"
            )
