"""
Fare Pricing Engine  (Strategy Pattern)
=======================================

Formula
-------
Price = round2(Base_Price + Distance x Price_Per_KM)

Both rates come from the trip's ``CabType``.  Rounding is half-up to two
decimals, done in ``Decimal`` so that e.g. 2.675 becomes 2.68 rather than
the binary-float 2.67.

Complexity: O(1) per price calculation.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal

from .entities import CabType
from .exceptions import InvalidInput

_CENTS = Decimal("0.01")


def round2(value: float) -> float:
    """Round half-up to two decimal places."""
    return float(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(
        self, distance_km: float, base_price: float, price_per_km: float
    ) -> float: ...


class StandardPricing(PricingStrategy):
    def calculate(
        self, distance_km: float, base_price: float, price_per_km: float
    ) -> float:
        return round2(base_price + distance_km * price_per_km)


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the trip manager and the seed script."""

    def __init__(self, strategy: PricingStrategy | None = None):
        self.strategy = strategy or StandardPricing()

    def calculate_fare(self, distance_km: float, cab_type: CabType) -> float:
        if not math.isfinite(distance_km) or distance_km < 0:
            raise InvalidInput(f"Distance must be non-negative, got {distance_km!r}")
        return self.strategy.calculate(
            distance_km, cab_type.base_price, cab_type.price_per_km
        )


def calculate_fare(distance_km: float, cab_type: CabType) -> float:
    return PricingEngine().calculate_fare(distance_km, cab_type)
