"""Fixtures for btlight_ble tests."""
from __future__ import annotations

from collections.abc import Callable

import pytest

from btlight_ble.const import BASE_UUID_FORMAT
from btlight_ble.models import Advertisement, BTLightConfig, ResolutionPolicy
from btlight_ble.transport import CharacteristicProperties
from btlight_ble.util import normalize_address, normalize_uuid

ADDRESS = "34:10:18:30:03:F7"

WRITE = CharacteristicProperties(write=True, write_without_response=True)
NOTIFY = CharacteristicProperties(read=True, notify=True)


class FakeCharacteristic:
    """In-memory characteristic recording writes."""

    def __init__(
        self, uuid: str, properties: CharacteristicProperties = WRITE
    ) -> None:
        self.uuid = uuid
        self.properties = properties
        self.writes: list[bytes] = []
        self.error: Exception | None = None

    async def write(self, data: bytes) -> None:
        if self.error:
            raise self.error
        self.writes.append(bytes(data))


class FakeService:
    """In-memory service."""

    def __init__(self, uuid: str, characteristics: list[FakeCharacteristic]) -> None:
        self.uuid = uuid
        self.characteristics = characteristics

    async def get_characteristics(self) -> list[FakeCharacteristic]:
        return list(self.characteristics)


class FakePeripheral:
    """In-memory peripheral with a fixed GATT table."""

    def __init__(
        self, address: str, services: list[FakeService], rssi: int | None = -60
    ) -> None:
        self.address = address
        self.name = "UAC088"
        self.rssi = rssi
        self.services = services
        self.is_connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.get_service_calls: list[str] = []
        self._disconnect_callbacks: list[Callable[[], None]] = []

    async def connect(self) -> None:
        self.connect_calls += 1
        self.is_connected = True

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.drop()

    async def get_service(self, uuid: str) -> FakeService | None:
        self.get_service_calls.append(uuid)
        for service in self.services:
            if normalize_uuid(service.uuid) == normalize_uuid(uuid):
                return service
        return None

    async def get_services(self) -> list[FakeService]:
        return list(self.services)

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._disconnect_callbacks.append(callback)

    def drop(self) -> None:
        """Simulate the link dropping."""
        self.is_connected = False
        callbacks = self._disconnect_callbacks
        self._disconnect_callbacks = []
        for callback in callbacks:
            callback()


class FakeTransport:
    """In-memory transport serving one peripheral."""

    def __init__(
        self,
        peripheral: FakePeripheral,
        advertisements: list[Advertisement] | None = None,
        findable: bool = True,
    ) -> None:
        self.peripheral = peripheral
        self.advertisements = advertisements or []
        self.findable = findable
        self.scans = 0

    async def discover_advertisements(self) -> list[Advertisement]:
        self.scans += 1
        return list(self.advertisements)

    async def find_peripheral(self, address: str) -> FakePeripheral | None:
        if not self.findable:
            return None
        if normalize_address(address) == normalize_address(self.peripheral.address):
            return self.peripheral
        return None

    async def get_peripheral(self, advertisement: Advertisement) -> FakePeripheral | None:
        if normalize_address(advertisement.address) == normalize_address(
            self.peripheral.address
        ):
            return self.peripheral
        return None


def full_uuid(short: str) -> str:
    return BASE_UUID_FORMAT.format(short)


@pytest.fixture
def write_char() -> FakeCharacteristic:
    return FakeCharacteristic(full_uuid("ffe1"))


@pytest.fixture
def light_service(write_char: FakeCharacteristic) -> FakeService:
    return FakeService(
        full_uuid("ffb0"),
        [FakeCharacteristic(full_uuid("ffb2"), NOTIFY), write_char],
    )


@pytest.fixture
def peripheral(light_service: FakeService) -> FakePeripheral:
    other = FakeService(full_uuid("1800"), [FakeCharacteristic(full_uuid("2a00"), NOTIFY)])
    return FakePeripheral(ADDRESS, [other, light_service])


@pytest.fixture
def advertisement() -> Advertisement:
    return Advertisement(
        address=ADDRESS.lower(),
        service_uuids=[full_uuid("ffb0")],
        local_name="UAC088-03F7",
        rssi=-60,
    )


@pytest.fixture
def transport(peripheral: FakePeripheral, advertisement: Advertisement) -> FakeTransport:
    return FakeTransport(peripheral, [advertisement])


@pytest.fixture
def fast_policy() -> ResolutionPolicy:
    return ResolutionPolicy(base_delay=0, reconnect_pause=0, reconnect_settle=0)


@pytest.fixture
def config(fast_policy: ResolutionPolicy) -> BTLightConfig:
    return BTLightConfig(
        address=ADDRESS,
        service_uuid="ffb0",
        char_uuid="ffe1",
        connect_min_rssi=-85,
        connect_interval=0.01,
        settle_delay=0,
        resolution=fast_policy,
    )
