"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ridequick.domain.entities import CabType, Coordinate, Driver, Trip, User
from ridequick.domain.enums import TripStatus
from ridequick.domain.geo import format_distance, format_duration
from ridequick.services.trip_manager import TripQuote, TripRequest, TripUpdate


def _as_id(value):
    # Clients built against integer ids still send numbers.
    return str(value) if isinstance(value, int) else value


# ── Requests ──────────────────────────────────────────────────────────


class TripCreateRequest(BaseModel):
    cab_type_id: str
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    destination_lat: float = Field(..., ge=-90, le=90)
    destination_lng: float = Field(..., ge=-180, le=180)
    pickup_address: str = Field(..., min_length=1, max_length=255)
    destination_address: str = Field(..., min_length=1, max_length=255)

    @field_validator("cab_type_id", mode="before")
    @classmethod
    def coerce_cab_type_id(cls, value):
        return _as_id(value)

    def to_domain(self) -> TripRequest:
        return TripRequest(
            cab_type_id=self.cab_type_id,
            pickup=Coordinate(self.pickup_lat, self.pickup_lng),
            destination=Coordinate(self.destination_lat, self.destination_lng),
            pickup_address=self.pickup_address,
            destination_address=self.destination_address,
        )


class TripUpdateRequest(BaseModel):
    """Only these four fields may change after a trip is created."""

    status: Optional[TripStatus] = None
    driver_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("driver_id", mode="before")
    @classmethod
    def coerce_driver_id(cls, value):
        return _as_id(value)

    def to_domain(self) -> TripUpdate:
        return TripUpdate.from_mapping(self.model_dump(exclude_none=True))


# ── Responses ─────────────────────────────────────────────────────────


class TripResponse(BaseModel):
    id: str
    user_id: str
    driver_id: Optional[str] = None
    cab_type_id: str
    pickup_lat: float
    pickup_lng: float
    destination_lat: float
    destination_lng: float
    pickup_address: str
    destination_address: str
    distance: float
    price: float
    status: TripStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_trip(cls, trip: Trip) -> "TripResponse":
        return cls(
            id=trip.id,
            user_id=trip.user_id,
            driver_id=trip.driver_id,
            cab_type_id=trip.cab_type_id,
            pickup_lat=trip.pickup_location.latitude,
            pickup_lng=trip.pickup_location.longitude,
            destination_lat=trip.destination_location.latitude,
            destination_lng=trip.destination_location.longitude,
            pickup_address=trip.pickup_address,
            destination_address=trip.destination_address,
            distance=trip.distance,
            price=trip.price,
            status=trip.status,
            start_time=trip.start_time,
            end_time=trip.end_time,
            created_at=trip.created_at,
        )


class DriverResponse(BaseModel):
    id: str
    full_name: str
    phone: str
    license_plate: str
    car_model: str
    rating: float
    is_available: bool
    current_lat: float
    current_lng: float

    @classmethod
    def from_driver(cls, driver: Driver) -> "DriverResponse":
        return cls(
            id=driver.id,
            full_name=driver.full_name,
            phone=driver.phone,
            license_plate=driver.license_plate,
            car_model=driver.car_model,
            rating=driver.rating,
            is_available=driver.is_available,
            current_lat=driver.current_location.latitude,
            current_lng=driver.current_location.longitude,
        )


class CabTypeResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    base_price: float
    price_per_km: float
    seating_capacity: int

    @classmethod
    def from_cab_type(cls, cab_type: CabType) -> "CabTypeResponse":
        return cls(
            id=cab_type.id,
            name=cab_type.name,
            description=cab_type.description,
            base_price=cab_type.base_price,
            price_per_km=cab_type.price_per_km,
            seating_capacity=cab_type.seating_capacity,
        )


class QuoteResponse(BaseModel):
    distance: float
    price: float
    duration_minutes: int
    distance_label: str
    duration_label: str

    @classmethod
    def from_quote(cls, quote: TripQuote) -> "QuoteResponse":
        return cls(
            distance=quote.distance,
            price=quote.price,
            duration_minutes=quote.duration_minutes,
            distance_label=format_distance(quote.distance),
            duration_label=format_duration(quote.duration_minutes),
        )


class UserResponse(BaseModel):
    id: str
    username: str
    email: str
    full_name: str
    phone: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            phone=user.phone,
            created_at=user.created_at,
        )


class HealthResponse(BaseModel):
    status: str = "ok"
    storage: str
    locks: str


class ErrorResponse(BaseModel):
    detail: str
