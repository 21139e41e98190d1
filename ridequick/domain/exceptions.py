"""
Error taxonomy shared by the services, repositories and API layer.

Every error raised on purpose by RideQuick derives from ``RideQuickError``
so the HTTP layer can map the whole family in one place.
"""

from __future__ import annotations


class RideQuickError(Exception):
    """Base class for all domain errors."""


class InvalidInput(RideQuickError):
    """Malformed coordinates, missing or unexpected fields."""


class NotFound(RideQuickError):
    """An entity id could not be resolved."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class Unauthorized(RideQuickError):
    """The requesting user does not own the resource."""


class InvalidTransition(RideQuickError):
    """Raised when a trip status change violates the state machine."""


class DriverUnavailable(RideQuickError):
    """The driver is already reserved by another trip."""

    def __init__(self, driver_id: str):
        self.driver_id = driver_id
        super().__init__(f"Driver {driver_id} is not available")


class ConcurrencyConflict(RideQuickError):
    """A per-entity lock could not be acquired in time."""


class StorageError(RideQuickError):
    """The storage collaborator failed; nothing was committed."""


class NoDriverAvailable(RideQuickError):
    """An explicit confirm found no driver to put on the trip."""

    def __init__(self, trip_id: str):
        self.trip_id = trip_id
        super().__init__(f"No driver available for trip {trip_id}")
