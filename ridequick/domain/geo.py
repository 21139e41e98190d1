"""
Distance calculation using the Haversine formula.

Assumption
----------
We use great-circle (Haversine) distance instead of a real routing engine
(OSRM / Google Maps) to keep the project self-contained and runnable
locally without external API keys.  Both drivers and trips are measured
this way, so matching and fares stay consistent with each other.

Complexity: O(1) per call.
"""

from __future__ import annotations

import math
import random
from decimal import ROUND_HALF_UP, Decimal

from .entities import Coordinate

EARTH_RADIUS_KM = 6_371.0
AVERAGE_SPEED_KMH = 30.0


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(a.latitude), math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlng = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    # Rounding noise can push h a hair above 1 for antipodal points.
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, h)))


def estimate_travel_time(
    distance_km: float, speed_kmh: float = AVERAGE_SPEED_KMH
) -> int:
    """Minutes needed to cover *distance_km* at a constant average speed."""
    if distance_km <= 0:
        return 0
    minutes = Decimal(str(distance_km / speed_kmh * 60))
    return int(minutes.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def jitter(
    location: Coordinate, rng: random.Random, max_offset_deg: float = 0.001
) -> Coordinate:
    """A point within ``max_offset_deg`` of *location* on each axis."""
    lat = location.latitude + rng.uniform(-max_offset_deg, max_offset_deg)
    lng = location.longitude + rng.uniform(-max_offset_deg, max_offset_deg)
    return Coordinate(max(-90.0, min(90.0, lat)), max(-180.0, min(180.0, lng)))


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round(distance_km * 1000)} meters"
    return f"{distance_km:.1f} km"


def format_duration(minutes: int) -> str:
    if minutes < 1:
        return "Less than a minute"
    if minutes < 60:
        return f"{minutes} min"

    hours, rest = divmod(minutes, 60)
    label = f"{hours} hour{'s' if hours > 1 else ''}"
    return f"{label} {rest} min" if rest else label
