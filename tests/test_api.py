"""
Integration tests for the REST API endpoints.

The app runs on the in-memory backend seeded with the demo data; every
request carries the demo rider's ``X-User-Id``.
"""

import random

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ridequick.api.app import create_app
from ridequick.api.middleware import limiter
from ridequick.config import Settings
from ridequick.domain.entities import Coordinate, User
from ridequick.domain.geo import haversine_km
from ridequick.seeding import seed_storage

NYC = {"lat": 40.7128, "lng": -74.0060}
TRIP = {
    "pickup_lat": 40.7128,
    "pickup_lng": -74.0060,
    "destination_lat": 40.6413,
    "destination_lng": -73.7781,
    "pickup_address": "City Hall",
    "destination_address": "JFK Terminal 4",
}


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def app():
    return create_app(
        Settings(
            storage_backend="memory",
            lock_backend="local",
            seed_memory_storage=False,
            random_seed=7,
        )
    )


@pytest_asyncio.fixture
async def demo(app) -> User:
    return await seed_storage(app.state.memory_storage, random.Random(7))


@pytest_asyncio.fixture
async def client(app, demo):
    limiter.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": demo.id},
    ) as ac:
        yield ac


async def _standard_id(client: AsyncClient) -> str:
    resp = await client.get("/api/v1/cab-types")
    return next(c["id"] for c in resp.json() if c["name"] == "Standard")


async def _book(client: AsyncClient) -> dict:
    body = dict(TRIP, cab_type_id=await _standard_id(client))
    resp = await client.post("/api/v1/trips", json=body)
    assert resp.status_code == 201
    return resp.json()


# ── Reference data ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "storage": "memory", "locks": "local"}


@pytest.mark.asyncio
async def test_cab_types(client: AsyncClient):
    resp = await client.get("/api/v1/cab-types")
    assert resp.status_code == 200
    assert [(c["name"], c["base_price"], c["price_per_km"]) for c in resp.json()] == [
        ("Standard", 5.0, 1.5),
        ("Premium", 8.0, 2.25),
        ("SUV", 10.0, 3.0),
    ]


# ── Drivers ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_nearby_drivers_sorted(client: AsyncClient):
    resp = await client.get("/api/v1/drivers/nearby", params=NYC)
    assert resp.status_code == 200
    drivers = resp.json()
    assert len(drivers) == 5
    here = Coordinate(NYC["lat"], NYC["lng"])
    distances = [
        haversine_km(here, Coordinate(d["current_lat"], d["current_lng"]))
        for d in drivers
    ]
    assert distances == sorted(distances)


@pytest.mark.asyncio
async def test_nearby_drivers_invalid_coordinates(client: AsyncClient):
    resp = await client.get("/api/v1/drivers/nearby", params={"lat": 95, "lng": 0})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_get_unknown_driver(client: AsyncClient):
    resp = await client.get("/api/v1/drivers/nope")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Driver nope not found"


# ── Trips ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_quote(client: AsyncClient):
    body = dict(TRIP, cab_type_id=await _standard_id(client))
    resp = await client.post("/api/v1/trips/quote", json=body)
    assert resp.status_code == 200
    quote = resp.json()
    assert quote["price"] == pytest.approx(5.0 + quote["distance"] * 1.5, abs=0.01)
    assert quote["distance_label"].endswith("km")
    assert quote["duration_label"].endswith("min")


@pytest.mark.asyncio
async def test_create_trip_confirmed(client: AsyncClient, demo: User):
    trip = await _book(client)
    assert trip["status"] == "confirmed"
    assert trip["driver_id"] is not None
    assert trip["user_id"] == demo.id
    assert trip["start_time"] is not None

    driver = (await client.get(f"/api/v1/drivers/{trip['driver_id']}")).json()
    assert driver["is_available"] is False


@pytest.mark.asyncio
async def test_create_trip_requires_user_header(client: AsyncClient):
    body = dict(TRIP, cab_type_id=await _standard_id(client))
    resp = await client.post(
        "/api/v1/trips", json=body, headers={"X-User-Id": ""}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_trip_unknown_cab_type(client: AsyncClient):
    resp = await client.post("/api/v1/trips", json=dict(TRIP, cab_type_id="nope"))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_create_trip_rejects_bad_coordinates(client: AsyncClient):
    body = dict(TRIP, cab_type_id=await _standard_id(client), pickup_lat=123.0)
    resp = await client.post("/api/v1/trips", json=body)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_and_list_trips(client: AsyncClient):
    first = await _book(client)
    second = await _book(client)

    resp = await client.get(f"/api/v1/trips/{first['id']}")
    assert resp.status_code == 200
    assert resp.json()["id"] == first["id"]

    listed = (await client.get("/api/v1/trips")).json()
    assert [t["id"] for t in listed] == [second["id"], first["id"]]


@pytest.mark.asyncio
async def test_get_trip_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/trips/9999")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_get_trip_of_another_user(client: AsyncClient, app):
    trip = await _book(client)
    stranger = await app.state.memory_storage.users.create(
        User(username="eve", email="eve@example.com", full_name="Eve")
    )
    resp = await client.get(
        f"/api/v1/trips/{trip['id']}", headers={"X-User-Id": stranger.id}
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_start_and_complete(client: AsyncClient):
    trip = await _book(client)

    started = await client.post(f"/api/v1/trips/{trip['id']}/start")
    assert started.status_code == 200
    assert started.json()["status"] == "in_progress"

    done = await client.post(f"/api/v1/trips/{trip['id']}/complete")
    assert done.status_code == 200
    assert done.json()["status"] == "completed"
    assert done.json()["end_time"] is not None

    driver = (await client.get(f"/api/v1/drivers/{trip['driver_id']}")).json()
    assert driver["is_available"] is True
    assert (driver["current_lat"], driver["current_lng"]) == (
        TRIP["destination_lat"],
        TRIP["destination_lng"],
    )

    history = (await client.get(f"/api/v1/drivers/{trip['driver_id']}/trips")).json()
    assert [t["id"] for t in history] == [trip["id"]]


@pytest.mark.asyncio
async def test_cancel_twice_conflicts(client: AsyncClient):
    trip = await _book(client)
    first = await client.post(f"/api/v1/trips/{trip['id']}/cancel")
    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"

    second = await client.post(f"/api/v1/trips/{trip['id']}/cancel")
    assert second.status_code == 409


@pytest.mark.asyncio
async def test_patch_status(client: AsyncClient):
    trip = await _book(client)
    resp = await client.patch(
        f"/api/v1/trips/{trip['id']}", json={"status": "in_progress"}
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "in_progress"

    resp = await client.patch(
        f"/api/v1/trips/{trip['id']}", json={"status": "confirmed"}
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_patch_rejects_immutable_fields(client: AsyncClient):
    trip = await _book(client)
    resp = await client.patch(f"/api/v1/trips/{trip['id']}", json={"price": 1.0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_patch_unknown_status(client: AsyncClient):
    trip = await _book(client)
    resp = await client.patch(
        f"/api/v1/trips/{trip['id']}", json={"status": "teleported"}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_assign_on_confirmed_trip_conflicts(client: AsyncClient):
    trip = await _book(client)
    resp = await client.post(f"/api/v1/trips/{trip['id']}/assign")
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_patch_cancel_keeps_end_time(client: AsyncClient):
    trip = await _book(client)
    end = "2031-01-01T12:00:00Z"
    resp = await client.patch(
        f"/api/v1/trips/{trip['id']}", json={"status": "cancelled", "end_time": end}
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["end_time"].startswith("2031-01-01T12:00:00")


@pytest.mark.asyncio
async def test_nearby_drivers_rejects_nan_radius(client: AsyncClient):
    resp = await client.get(
        "/api/v1/drivers/nearby", params=dict(NYC, radius_km="nan")
    )
    assert resp.status_code == 400


# ── Users ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_current_user(client: AsyncClient, demo: User):
    resp = await client.get("/api/v1/users/me")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == demo.id
    assert body["username"] == "demo"
    assert body["full_name"] == "Demo Rider"


@pytest.mark.asyncio
async def test_current_user_unknown(client: AsyncClient):
    resp = await client.get("/api/v1/users/me", headers={"X-User-Id": "ghost"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_current_user_requires_header(client: AsyncClient):
    resp = await client.get("/api/v1/users/me", headers={"X-User-Id": ""})
    assert resp.status_code == 401
