"""Transport contract and its bleak implementation.

The supervisor and resolver only talk to the protocols defined here. Optional
hooks are looked up with ``getattr`` so a transport that cannot discover
services on demand, or has no GATT cache to clear, simply leaves them out:

* ``Peripheral.discover_services(uuid_filter)``
* ``Peripheral.clear_cache()``
* ``Service.discover_characteristics()``
* ``Service.get_characteristic(uuid)``
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from bleak import BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.service import BleakGATTService
from bleak.exc import BleakError
from bleak_retry_connector import (
    BleakClientWithServiceCache,
    ble_device_has_changed,
    establish_connection,
    get_device,
)

from .exceptions import NotConnectedError
from .models import Advertisement
from .util import normalize_address

_LOGGER = logging.getLogger(__name__)

BLEAK_EXCEPTIONS = (
    AttributeError,
    BleakError,
    EOFError,
    OSError,
    asyncio.exceptions.TimeoutError,
)

DEFAULT_SCAN_TIMEOUT = 5.0


@dataclass(frozen=True)
class CharacteristicProperties:

    read: bool = False
    write: bool = False
    write_without_response: bool = False
    notify: bool = False
    indicate: bool = False

    @property
    def writable(self) -> bool:
        return self.write or self.write_without_response

    @classmethod
    def from_bleak(cls, properties: list[str]) -> CharacteristicProperties:
        """Build from bleak's property name list."""
        return cls(
            read="read" in properties,
            write="write" in properties,
            write_without_response="write-without-response" in properties,
            notify="notify" in properties,
            indicate="indicate" in properties,
        )

    def __str__(self) -> str:
        names = (
            "read",
            "write",
            "write_without_response",
            "notify",
            "indicate",
        )
        return ",".join(name for name in names if getattr(self, name))


class Characteristic(Protocol):
    @property
    def uuid(self) -> str:
        ...

    @property
    def properties(self) -> CharacteristicProperties:
        ...

    async def write(self, data: bytes) -> None:
        """Write without waiting for any reply from the device."""


class Service(Protocol):
    @property
    def uuid(self) -> str:
        ...

    async def get_characteristics(self) -> list[Characteristic]:
        ...


class Peripheral(Protocol):
    @property
    def address(self) -> str:
        ...

    @property
    def name(self) -> str:
        ...

    @property
    def is_connected(self) -> bool:
        ...

    @property
    def rssi(self) -> int | None:
        ...

    async def connect(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def get_service(self, uuid: str) -> Service | None:
        ...

    async def get_services(self) -> list[Service]:
        ...

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        """Call back once, the next time the link drops."""


class Transport(Protocol):
    async def discover_advertisements(self) -> list[Advertisement]:
        ...

    async def find_peripheral(self, address: str) -> Peripheral | None:
        ...

    async def get_peripheral(self, advertisement: Advertisement) -> Peripheral | None:
        ...


class BleakCharacteristic:
    def __init__(
        self, peripheral: BleakPeripheral, char: BleakGATTCharacteristic
    ) -> None:
        self._peripheral = peripheral
        self._char = char
        self._properties = CharacteristicProperties.from_bleak(char.properties)

    @property
    def uuid(self) -> str:
        return self._char.uuid

    @property
    def properties(self) -> CharacteristicProperties:
        return self._properties

    async def write(self, data: bytes) -> None:
        """Write with response, falling back to write without response."""
        client = self._peripheral.client
        try:
            await client.write_gatt_char(self._char, data, response=True)
        except BleakError as ex:
            _LOGGER.debug(
                "%s: Write with response failed, retrying without: %s",
                self._peripheral.name,
                ex,
            )
            await client.write_gatt_char(self._char, data, response=False)


class BleakService:
    def __init__(self, peripheral: BleakPeripheral, service: BleakGATTService) -> None:
        self._peripheral = peripheral
        self._service = service

    @property
    def uuid(self) -> str:
        return self._service.uuid

    async def get_characteristics(self) -> list[Characteristic]:
        return [
            BleakCharacteristic(self._peripheral, char)
            for char in self._service.characteristics
        ]

    async def get_characteristic(self, uuid: str) -> Characteristic | None:
        if char := self._service.get_characteristic(uuid):
            return BleakCharacteristic(self._peripheral, char)
        return None


class BleakPeripheral:
    def __init__(self, ble_device: BLEDevice, rssi: int | None = None) -> None:
        self._ble_device = ble_device
        self._rssi = rssi
        self._client: BleakClientWithServiceCache | None = None
        self._disconnect_callbacks: list[Callable[[], None]] = []

    def set_ble_device(self, ble_device: BLEDevice, rssi: int | None) -> None:
        """Set the ble device."""
        if ble_device_has_changed(self._ble_device, ble_device):
            _LOGGER.debug("%s: New ble device details", self.name)
        self._ble_device = ble_device
        if rssi is not None:
            self._rssi = rssi

    @property
    def address(self) -> str:
        return self._ble_device.address

    @property
    def name(self) -> str:
        """Get the name of the device."""
        return self._ble_device.name or self._ble_device.address

    @property
    def rssi(self) -> int | None:
        """The last advertised RSSI."""
        return self._rssi

    @property
    def is_connected(self) -> bool:
        return bool(self._client and self._client.is_connected)

    @property
    def client(self) -> BleakClientWithServiceCache:
        if not self._client or not self._client.is_connected:
            raise NotConnectedError(f"{self.name} is not connected")
        return self._client

    async def connect(self) -> None:
        _LOGGER.debug("%s: Connecting; RSSI: %s", self.name, self.rssi)
        self._client = await establish_connection(
            BleakClientWithServiceCache,
            self._ble_device,
            self.name,
            self._disconnected,
            ble_device_callback=lambda: self._ble_device,
        )
        _LOGGER.debug("%s: Connected; RSSI: %s", self.name, self.rssi)

    async def disconnect(self) -> None:
        client = self._client
        if client and client.is_connected:
            await client.disconnect()

    async def clear_cache(self) -> None:
        """Drop the cached GATT database so the next connect rediscovers it."""
        if self._client:
            await self._client.clear_cache()

    async def get_service(self, uuid: str) -> Service | None:
        if service := self.client.services.get_service(uuid):
            return BleakService(self, service)
        return None

    async def get_services(self) -> list[Service]:
        return [BleakService(self, service) for service in self.client.services]

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._disconnect_callbacks.append(callback)

    def _disconnected(self, client: BleakClientWithServiceCache) -> None:
        """Disconnected callback."""
        _LOGGER.debug("%s: Disconnected; RSSI: %s", self.name, self.rssi)
        callbacks = self._disconnect_callbacks
        self._disconnect_callbacks = []
        for callback in callbacks:
            callback()


class BleakTransport:
    """Transport backed by the local bleak adapter."""

    def __init__(self, scan_timeout: float = DEFAULT_SCAN_TIMEOUT) -> None:
        self._scan_timeout = scan_timeout
        self._peripherals: dict[str, BleakPeripheral] = {}
        self._devices: dict[str, tuple[BLEDevice, int | None]] = {}

    def _peripheral_for(self, ble_device: BLEDevice, rssi: int | None) -> BleakPeripheral:
        key = normalize_address(ble_device.address)
        if peripheral := self._peripherals.get(key):
            peripheral.set_ble_device(ble_device, rssi)
            return peripheral
        peripheral = self._peripherals[key] = BleakPeripheral(ble_device, rssi)
        return peripheral

    async def discover_advertisements(self) -> list[Advertisement]:
        discovered = await BleakScanner.discover(
            timeout=self._scan_timeout, return_adv=True
        )
        advertisements: list[Advertisement] = []
        for ble_device, adv in discovered.values():
            key = normalize_address(ble_device.address)
            self._devices[key] = (ble_device, adv.rssi)
            if peripheral := self._peripherals.get(key):
                peripheral.set_ble_device(ble_device, adv.rssi)
            advertisements.append(
                Advertisement(
                    address=ble_device.address,
                    service_uuids=list(adv.service_uuids),
                    local_name=adv.local_name,
                    rssi=adv.rssi,
                )
            )
        return advertisements

    async def find_peripheral(self, address: str) -> Peripheral | None:
        ble_device = await get_device(address)
        if ble_device is None:
            ble_device = await BleakScanner.find_device_by_address(
                address, timeout=self._scan_timeout
            )
        if ble_device is None:
            return None
        _, rssi = self._devices.get(normalize_address(address), (None, None))
        return self._peripheral_for(ble_device, rssi)

    async def get_peripheral(self, advertisement: Advertisement) -> Peripheral | None:
        known = self._devices.get(normalize_address(advertisement.address))
        if known is None:
            return None
        ble_device, rssi = known
        return self._peripheral_for(ble_device, rssi)
