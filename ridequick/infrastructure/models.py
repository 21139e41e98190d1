"""
SQLAlchemy ORM models  (maps to PostgreSQL, SQLite in tests).

Tables
------
* ``users``      -- registered riders
* ``drivers``    -- drivers with live location and availability flag
* ``cab_types``  -- fare reference data
* ``trips``      -- individual trip requests

Indexes
-------
* **B-Tree** on ``drivers.is_available`` and the lat/lng pair for the
  bounding-box prefilter of nearby-driver queries.
* **B-Tree** on ``trips.user_id``, ``trips.driver_id`` and ``trips.status``
  for owner listings and driver history.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)

from .database import Base
from ridequick.domain.entities import utcnow
from ridequick.domain.enums import TripStatus


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(64), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=False)
    license_plate = Column(String(20), nullable=False)
    car_model = Column(String(80), nullable=False)
    rating = Column(Float, default=5.0, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    current_lat = Column(Float, nullable=False)
    current_lng = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_drivers_available", "is_available"),
        Index("idx_drivers_location", "current_lat", "current_lng"),
    )


class CabTypeModel(Base):
    __tablename__ = "cab_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(60), nullable=False)
    description = Column(String(255), nullable=True)
    base_price = Column(Float, nullable=False)
    price_per_km = Column(Float, nullable=False)
    seating_capacity = Column(Integer, nullable=False)


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    cab_type_id = Column(Integer, ForeignKey("cab_types.id"), nullable=False)

    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    pickup_address = Column(String(255), nullable=False)
    destination_address = Column(String(255), nullable=False)

    distance = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    status = Column(
        Enum(
            TripStatus,
            name="tripstatus",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=TripStatus.PENDING,
        nullable=False,
    )
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_trips_user", "user_id"),
        Index("idx_trips_driver", "driver_id"),
        Index("idx_trips_status", "status"),
    )
