"""Unit tests for nearby-driver search and driver reservation."""

import pytest

from ridequick.domain.exceptions import DriverUnavailable, InvalidInput, NotFound
from ridequick.domain.geo import haversine_km
from tests.conftest import MIDTOWN, add_driver, offset


class TestRegister:
    @pytest.mark.asyncio
    async def test_rating_drawn_when_missing(self, registry):
        driver = await registry.register(
            full_name="Ravi",
            phone="555-0101",
            license_plate="ABC1000",
            car_model="Honda Accord",
            location=MIDTOWN,
        )
        assert 4.5 <= driver.rating <= 5.0
        assert round(driver.rating, 2) == driver.rating
        assert driver.is_available

    @pytest.mark.asyncio
    async def test_rejects_rating_out_of_range(self, registry):
        with pytest.raises(InvalidInput):
            await registry.register(
                full_name="Ravi",
                phone="555-0101",
                license_plate="ABC1000",
                car_model="Honda Accord",
                location=MIDTOWN,
                rating=5.5,
            )

    @pytest.mark.asyncio
    async def test_get_unknown_driver(self, registry):
        with pytest.raises(NotFound):
            await registry.get("nope")


class TestFindNearby:
    @pytest.mark.asyncio
    async def test_sorted_by_distance(self, registry):
        far = await add_driver(registry, offset(MIDTOWN, 0.03), "far")
        near = await add_driver(registry, offset(MIDTOWN, 0.005), "near")
        mid = await add_driver(registry, offset(MIDTOWN, 0.015), "mid")

        found = await registry.find_nearby(MIDTOWN, 5)
        assert [d.id for d in found] == [near.id, mid.id, far.id]

    @pytest.mark.asyncio
    async def test_excludes_drivers_outside_radius(self, registry):
        near = await add_driver(registry, offset(MIDTOWN, 0.01), "near")
        await add_driver(registry, offset(MIDTOWN, 0.5), "far")  # ~55 km

        found = await registry.find_nearby(MIDTOWN, 5)
        assert [d.id for d in found] == [near.id]
        assert all(haversine_km(MIDTOWN, d.current_location) <= 5 for d in found)

    @pytest.mark.asyncio
    async def test_falls_back_to_three_closest(self, registry):
        drivers = [
            await add_driver(registry, offset(MIDTOWN, 1.0 + i), f"d{i}")
            for i in range(4)
        ]

        found = await registry.find_nearby(MIDTOWN, 5)
        assert [d.id for d in found] == [d.id for d in drivers[:3]]

    @pytest.mark.asyncio
    async def test_empty_when_nobody_available(self, registry):
        driver = await add_driver(registry, MIDTOWN)
        await registry.reserve(driver.id)
        assert await registry.find_nearby(MIDTOWN, 5) == []

    @pytest.mark.asyncio
    async def test_ties_keep_registration_order(self, registry):
        first = await add_driver(registry, offset(MIDTOWN, 0.01), "first")
        second = await add_driver(registry, offset(MIDTOWN, 0.01), "second")

        found = await registry.find_nearby(MIDTOWN, 5)
        assert [d.id for d in found] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_zero_radius_matches_exact_location(self, registry):
        here = await add_driver(registry, MIDTOWN, "here")
        await add_driver(registry, offset(MIDTOWN, 0.01), "there")
        assert [d.id for d in await registry.find_nearby(MIDTOWN, 0)] == [here.id]

    @pytest.mark.asyncio
    async def test_negative_radius_rejected(self, registry):
        with pytest.raises(InvalidInput):
            await registry.find_nearby(MIDTOWN, -1)

    @pytest.mark.asyncio
    async def test_nan_radius_rejected(self, registry):
        await add_driver(registry, MIDTOWN)
        with pytest.raises(InvalidInput):
            await registry.find_nearby(MIDTOWN, float("nan"))
        with pytest.raises(InvalidInput):
            await registry.find_nearby(MIDTOWN, float("inf"))


class TestReservation:
    @pytest.mark.asyncio
    async def test_reserved_driver_not_returned(self, registry):
        taken = await add_driver(registry, offset(MIDTOWN, 0.001), "taken")
        free = await add_driver(registry, offset(MIDTOWN, 0.02), "free")

        reserved = await registry.reserve(taken.id)
        assert reserved.is_available is False
        assert [d.id for d in await registry.find_nearby(MIDTOWN, 5)] == [free.id]

    @pytest.mark.asyncio
    async def test_release_makes_driver_available_again(self, registry):
        driver = await add_driver(registry, MIDTOWN)
        await registry.reserve(driver.id)
        await registry.release(driver.id)
        assert [d.id for d in await registry.find_nearby(MIDTOWN, 5)] == [driver.id]

    @pytest.mark.asyncio
    async def test_double_reserve_raises(self, registry):
        driver = await add_driver(registry, MIDTOWN)
        await registry.reserve(driver.id)
        with pytest.raises(DriverUnavailable):
            await registry.reserve(driver.id)

    @pytest.mark.asyncio
    async def test_reserve_unknown_driver(self, registry):
        with pytest.raises(NotFound):
            await registry.reserve("missing")

    @pytest.mark.asyncio
    async def test_relocate(self, registry):
        driver = await add_driver(registry, MIDTOWN)
        target = offset(MIDTOWN, 0.1, 0.1)
        moved = await registry.relocate(driver.id, target)
        assert moved.current_location == target
        assert (await registry.get(driver.id)).current_location == target

    @pytest.mark.asyncio
    async def test_returned_copies_do_not_alias_store(self, registry):
        driver = await add_driver(registry, MIDTOWN)
        driver.is_available = False
        assert (await registry.get(driver.id)).is_available is True
