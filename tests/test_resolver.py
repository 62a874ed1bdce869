"""Test GATT service and characteristic resolution."""
from unittest.mock import AsyncMock

import pytest
from bleak.exc import BleakError

from btlight_ble.exceptions import (
    CharacteristicMissingError,
    NotConnectedError,
    ServiceMissingError,
)
from btlight_ble.models import ResolutionPolicy
from btlight_ble.resolver import GattResolver, find_by_variants, first_writable

from .conftest import (
    ADDRESS,
    NOTIFY,
    FakeCharacteristic,
    FakePeripheral,
    FakeService,
    full_uuid,
)


@pytest.fixture
def resolver(fast_policy: ResolutionPolicy) -> GattResolver:
    return GattResolver("test", fast_policy)


def test_find_by_variants():
    services = [FakeService(full_uuid("1800"), []), FakeService(full_uuid("ffb0"), [])]
    assert find_by_variants(services, ["ffb0"]) is services[1]
    assert find_by_variants(services, ["ffe0"]) is None
    assert find_by_variants(services, []) is None


def test_first_writable():
    chars = [
        FakeCharacteristic(full_uuid("ffb2"), NOTIFY),
        FakeCharacteristic(full_uuid("ffe1")),
    ]
    assert first_writable(chars) is chars[1]
    assert first_writable(chars[:1]) is None


class TestResolveService:
    """Tests for service resolution."""

    @pytest.mark.asyncio
    async def test_direct_lookup(self, resolver, peripheral, light_service):
        """The full form of the hint is looked up first."""
        service = await resolver.async_resolve_service(peripheral, "ffb0")
        assert service is light_service
        assert peripheral.get_service_calls == [full_uuid("ffb0")]

    @pytest.mark.asyncio
    async def test_suffix_match_on_vendor_uuid(self, resolver):
        """A short hint matches a vendor 128 bit uuid ending with it."""
        vendor = FakeService(
            "49535343-fe7d-4ae5-8fa9-9fafd205ffb0",
            [FakeCharacteristic(full_uuid("ffe1"))],
        )
        peripheral = FakePeripheral(ADDRESS, [vendor])
        assert await resolver.async_resolve_service(peripheral, "ffb0") is vendor

    @pytest.mark.asyncio
    async def test_fallback_service(self, resolver):
        """Known compatible services are used when the hint does not match."""
        fallback = FakeService(full_uuid("ffe0"), [])
        peripheral = FakePeripheral(
            ADDRESS, [FakeService(full_uuid("1800"), []), fallback]
        )
        assert await resolver.async_resolve_service(peripheral, "abcd") is fallback

    @pytest.mark.asyncio
    async def test_autodetect_first_writable_service(self, resolver):
        """Without hints or fallbacks the first writable service wins."""
        read_only = FakeService(
            full_uuid("1800"), [FakeCharacteristic(full_uuid("2a00"), NOTIFY)]
        )
        writable = FakeService(
            full_uuid("fff0"), [FakeCharacteristic(full_uuid("fff3"))]
        )
        peripheral = FakePeripheral(ADDRESS, [read_only, writable])
        assert await resolver.async_resolve_service(peripheral, "") is writable

    @pytest.mark.asyncio
    async def test_idempotent(self, resolver, peripheral):
        """Resolving twice against a stable table gives the same result."""
        first = await resolver.async_resolve_service(peripheral, "ffb0")
        second = await resolver.async_resolve_service(peripheral, "ffb0")
        assert first is second

    @pytest.mark.asyncio
    async def test_exhausted(self, resolver):
        """Exhaustion names the hint and cycles the connection once."""
        peripheral = FakePeripheral(ADDRESS, [])
        peripheral.is_connected = True
        with pytest.raises(ServiceMissingError, match="tried: ffb0"):
            await resolver.async_resolve_service(peripheral, "ffb0")
        assert len(peripheral.get_service_calls) == 8 * 2
        assert peripheral.disconnect_calls == 1
        assert peripheral.connect_calls == 1
        assert peripheral.is_connected

    @pytest.mark.asyncio
    async def test_exhausted_autodetect(self, resolver):
        peripheral = FakePeripheral(ADDRESS, [])
        with pytest.raises(ServiceMissingError, match="tried: autodetect"):
            await resolver.async_resolve_service(peripheral, None)

    @pytest.mark.asyncio
    async def test_services_appear_after_retry(self, resolver, light_service):
        """A late GATT table is picked up by a later attempt."""
        peripheral = FakePeripheral(ADDRESS, [])
        original = peripheral.get_services
        calls = 0

        async def _get_services():
            nonlocal calls
            calls += 1
            if calls == 3:
                peripheral.services = [light_service]
            return await original()

        peripheral.get_services = _get_services
        assert await resolver.async_resolve_service(peripheral, "ffb0") is light_service
        assert calls == 3
        assert peripheral.disconnect_calls == 0

    @pytest.mark.asyncio
    async def test_explicit_discovery(self, resolver, peripheral, light_service):
        """Transports with on demand discovery are asked for the hinted uuid."""
        peripheral.discover_services = AsyncMock()
        await resolver.async_resolve_service(peripheral, "ffb0")
        peripheral.discover_services.assert_awaited_once_with([full_uuid("ffb0")])

    @pytest.mark.asyncio
    async def test_discovery_errors_ignored(self, resolver, peripheral, light_service):
        peripheral.discover_services = AsyncMock(side_effect=BleakError("busy"))
        peripheral.get_service = AsyncMock(side_effect=BleakError("busy"))
        assert await resolver.async_resolve_service(peripheral, "ffb0") is light_service

    @pytest.mark.asyncio
    async def test_cache_cleared_on_reconnect(self):
        peripheral = FakePeripheral(ADDRESS, [])
        peripheral.clear_cache = AsyncMock()
        resolver = GattResolver(
            "test",
            ResolutionPolicy(
                attempts=3, base_delay=0, reconnect_pause=0, reconnect_settle=0
            ),
        )
        with pytest.raises(ServiceMissingError):
            await resolver.async_resolve_service(peripheral, "ffb0")
        peripheral.clear_cache.assert_awaited_once()
        assert peripheral.connect_calls == 1


class TestResolveCharacteristic:
    """Tests for characteristic resolution."""

    @pytest.mark.asyncio
    async def test_hint(self, resolver, light_service, write_char):
        assert (
            await resolver.async_resolve_characteristic(light_service, "ffe1")
            is write_char
        )

    @pytest.mark.asyncio
    async def test_full_hint(self, resolver, light_service, write_char):
        char = await resolver.async_resolve_characteristic(
            light_service, full_uuid("ffe1").upper()
        )
        assert char is write_char

    @pytest.mark.asyncio
    async def test_writable_fallback(self, resolver, light_service, write_char):
        """An unknown hint falls back to the first writable characteristic."""
        assert (
            await resolver.async_resolve_characteristic(light_service, "abcd")
            is write_char
        )

    @pytest.mark.asyncio
    async def test_hint_matches_read_only(self, resolver, light_service):
        """An explicit hint wins even over writability."""
        char = await resolver.async_resolve_characteristic(light_service, "ffb2")
        assert char.uuid == full_uuid("ffb2")

    @pytest.mark.asyncio
    async def test_service_lookup_hook(self, resolver, light_service, write_char):
        light_service.get_characteristic = AsyncMock(return_value=write_char)
        assert (
            await resolver.async_resolve_characteristic(light_service, "ffe1")
            is write_char
        )
        light_service.get_characteristic.assert_awaited_once_with(full_uuid("ffe1"))

    @pytest.mark.asyncio
    async def test_exhausted(self, resolver):
        service = FakeService(
            full_uuid("ffb0"), [FakeCharacteristic(full_uuid("ffb2"), NOTIFY)]
        )
        with pytest.raises(CharacteristicMissingError, match="tried: ffe1"):
            await resolver.async_resolve_characteristic(service, "ffe1")

    @pytest.mark.asyncio
    async def test_idempotent(self, resolver, light_service):
        first = await resolver.async_resolve_characteristic(light_service, "ffe1")
        second = await resolver.async_resolve_characteristic(light_service, "ffe1")
        assert first is second


class LinkDroppingPeripheral(FakePeripheral):
    """Peripheral whose GATT calls fail while the link is down."""

    async def get_service(self, uuid):
        if not self.is_connected:
            raise NotConnectedError(f"{self.name} is not connected")
        return await super().get_service(uuid)

    async def get_services(self):
        if not self.is_connected:
            raise NotConnectedError(f"{self.name} is not connected")
        return await super().get_services()


class TestLinkLossDuringResolution:
    """Tests for a link that drops while resolving."""

    @pytest.mark.asyncio
    async def test_reconnect_recovers_disconnected_peripheral(
        self, resolver, light_service
    ):
        """A peripheral that is not connected is recovered by the reconnect."""
        peripheral = LinkDroppingPeripheral(ADDRESS, [light_service])
        assert await resolver.async_resolve_service(peripheral, "ffb0") is light_service
        assert peripheral.connect_calls == 1
        assert peripheral.is_connected

    @pytest.mark.asyncio
    async def test_link_drops_mid_resolution(self, resolver, light_service):
        """A drop inside an attempt is skipped until the reconnect restores it."""
        peripheral = LinkDroppingPeripheral(ADDRESS, [light_service])
        peripheral.is_connected = True
        original = peripheral.get_service
        calls = 0

        async def _get_service(uuid):
            nonlocal calls
            calls += 1
            if calls == 1:
                peripheral.drop()
            return await original(uuid)

        peripheral.get_service = _get_service
        assert await resolver.async_resolve_service(peripheral, "ffb0") is light_service
        assert peripheral.connect_calls == 1
        # attempts 0 to 4 fail, the reconnect follows attempt 4
        assert calls == 5 * 2 + 1

    @pytest.mark.asyncio
    async def test_characteristic_lookup_not_connected(self, resolver, write_char):
        """A characteristic listing that fails while disconnected is retried."""
        service = FakeService(full_uuid("ffb0"), [write_char])
        original = service.get_characteristics
        calls = 0

        async def _get_characteristics():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise NotConnectedError("not connected")
            return await original()

        service.get_characteristics = _get_characteristics
        assert await resolver.async_resolve_characteristic(service, "ffe1") is write_char
        assert calls == 2
