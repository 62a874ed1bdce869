from __future__ import annotations

import asyncio
import logging
from functools import partial

import async_timeout

from .const import DEFAULT_NAME
from .exceptions import (
    BTLightError,
    LinkTooWeakError,
    NotConnectedError,
    PeripheralNotFoundError,
)
from .link import LinkMonitor
from .models import Advertisement, BTLightConfig, ConnectionHandle
from .resolver import GattResolver
from .transport import BLEAK_EXCEPTIONS, Peripheral, Transport
from .util import normalize_address, short_address, uuid_matches

_LOGGER = logging.getLogger(__name__)

CONNECT_EXCEPTIONS = (BTLightError, *BLEAK_EXCEPTIONS)


def find_advertisement(
    advertisements: list[Advertisement], address: str
) -> Advertisement | None:
    """Return the advertisement for an address, ignoring case and separators."""
    wanted = normalize_address(address)
    if not wanted:
        return None
    for advertisement in advertisements:
        if normalize_address(advertisement.address) == wanted:
            return advertisement
    return None


def find_advertisement_by_service(
    advertisements: list[Advertisement], service_uuid: str
) -> Advertisement | None:
    """Return the first advertisement announcing a matching service."""
    for advertisement in advertisements:
        if any(uuid_matches(uuid, service_uuid) for uuid in advertisement.service_uuids):
            return advertisement
    return None


class ConnectionSupervisor:
    """Keep a peripheral connected and its write characteristic resolved.

    The connection handle is only ever published fully resolved and is
    dropped as soon as the peripheral reports a disconnect.
    """

    def __init__(
        self,
        transport: Transport,
        config: BTLightConfig,
        resolver: GattResolver | None = None,
    ) -> None:
        self._transport = transport
        self._config = config
        self._resolver = resolver or GattResolver(self.name, config.resolution)
        self.link_monitor = LinkMonitor(
            self.name,
            lambda: self.peripheral or self._last_peripheral,
            rssi_min=config.rssi_min,
            interval=config.metrics_interval,
        )
        self._handle: ConnectionHandle | None = None
        self._last_peripheral: Peripheral | None = None
        self._connect_lock = asyncio.Lock()
        self._active = False
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def name(self) -> str:
        """Get the name of the device."""
        if self._config.name:
            return self._config.name
        return f"{DEFAULT_NAME} [{short_address(self._config.address)}]"

    @property
    def config(self) -> BTLightConfig:
        return self._config

    def update_config(self, config: BTLightConfig) -> None:
        """Apply new settings; they take effect on the next connection attempt."""
        self._config = config
        self._resolver.policy = config.resolution
        self.link_monitor.rssi_min = config.rssi_min

    @property
    def handle(self) -> ConnectionHandle | None:
        return self._handle

    @property
    def peripheral(self) -> Peripheral | None:
        return self._handle.peripheral if self._handle else None

    @property
    def is_connected(self) -> bool:
        return bool(self._handle and self._handle.peripheral.is_connected)

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        """Start the background connect loop."""
        if self._task and not self._task.done():
            return
        self._active = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._async_connect_loop())

    async def async_stop(self) -> None:
        """Stop the connect loop and disconnect."""
        _LOGGER.debug("%s: Stop", self.name)
        self._active = False
        self._stop_event.set()
        task = self._task
        self._task = None
        if task:
            await task
        await self._async_execute_disconnect()

    async def async_ensure_connected(self) -> ConnectionHandle:
        """Ensure connection to device is established."""
        if self.is_connected:
            assert self._handle is not None  # nosec
            return self._handle
        if self._connect_lock.locked():
            _LOGGER.debug(
                "%s: Connection already in progress, waiting for it to complete",
                self.name,
            )
        async with self._connect_lock:
            # Check again while holding the lock
            if self.is_connected:
                assert self._handle is not None  # nosec
                return self._handle
            self._handle = None
            return await self._async_connect_once()

    async def _async_connect_loop(self) -> None:
        stop_event = self._stop_event
        while self._active:
            if not self.is_connected:
                try:
                    await self.async_ensure_connected()
                except LinkTooWeakError as ex:
                    _LOGGER.debug("%s: %s", self.name, ex)
                except CONNECT_EXCEPTIONS as ex:
                    _LOGGER.warning("%s: Connect loop error: %s", self.name, ex)
                except Exception:
                    _LOGGER.exception("%s: Unexpected error in connect loop", self.name)
            try:
                async with async_timeout.timeout(self._config.connect_interval):
                    await stop_event.wait()
            except asyncio.TimeoutError:
                pass

    async def _async_scan(self) -> list[Advertisement] | None:
        try:
            return await self._transport.discover_advertisements()
        except BLEAK_EXCEPTIONS as ex:
            _LOGGER.debug("%s: Advertisement scan failed: %s", self.name, ex)
            return None

    def _check_advertised_rssi(self, advertisements: list[Advertisement]) -> None:
        """Raise if the advertised signal is too weak to try connecting."""
        config = self._config
        advertisement = find_advertisement(advertisements, config.address)
        if advertisement is None:
            return
        _LOGGER.debug(
            "%s: Advertised services: %s",
            self.name,
            ", ".join(advertisement.service_uuids) or "(none)",
        )
        rssi = advertisement.rssi
        if rssi is not None and rssi < config.connect_min_rssi:
            _LOGGER.info(
                "%s: Skip connect: advertised RSSI %s < %s",
                self.name,
                rssi,
                config.connect_min_rssi,
            )
            self.link_monitor.publish(False, rssi)
            raise LinkTooWeakError(rssi, config.connect_min_rssi)

    async def _async_find_peripheral(
        self, advertisements: list[Advertisement] | None
    ) -> Peripheral:
        config = self._config
        peripheral: Peripheral | None = None
        if config.address:
            try:
                peripheral = await self._transport.find_peripheral(config.address)
            except BLEAK_EXCEPTIONS as ex:
                _LOGGER.debug("%s: Lookup by address failed: %s", self.name, ex)
        if peripheral is None:
            if advertisements is None:
                advertisements = await self._async_scan() or []
            match = find_advertisement(advertisements, config.address)
            if match is None and config.service_uuid:
                match = find_advertisement_by_service(
                    advertisements, config.service_uuid
                )
            if match is not None:
                peripheral = await self._transport.get_peripheral(match)
        if peripheral is None:
            raise PeripheralNotFoundError(f"{self.name}: Peripheral not found")
        return peripheral

    async def _async_connect_once(self) -> ConnectionHandle:
        config = self._config
        advertisements = await self._async_scan()
        if advertisements is not None:
            self._check_advertised_rssi(advertisements)

        peripheral = await self._async_find_peripheral(advertisements)
        async with async_timeout.timeout(config.connect_timeout):
            await peripheral.connect()

        try:
            await asyncio.sleep(config.settle_delay)
            service = await self._resolver.async_resolve_service(
                peripheral, config.service_uuid
            )
            char = await self._resolver.async_resolve_characteristic(
                service, config.char_uuid
            )
            if not peripheral.is_connected:
                raise NotConnectedError(f"{self.name}: Link lost while resolving")
        except CONNECT_EXCEPTIONS:
            await self._async_disconnect_peripheral(peripheral)
            raise

        peripheral.on_disconnect(partial(self._disconnected, peripheral))
        self._handle = ConnectionHandle(peripheral, char)
        self._last_peripheral = peripheral
        self.link_monitor.sample()
        _LOGGER.info(
            "%s: Connected to %s via %s/%s; RSSI: %s",
            self.name,
            short_address(config.address) or "(by service autodetect)",
            service.uuid,
            char.uuid,
            self.link_monitor.state.rssi,
        )
        return self._handle

    def _disconnected(self, peripheral: Peripheral) -> None:
        """Disconnected callback."""
        if self._handle is None or self._handle.peripheral is not peripheral:
            return
        self._handle = None
        self.link_monitor.publish(False, None)
        _LOGGER.warning("%s: Peripheral disconnected", self.name)

    async def _async_disconnect_peripheral(self, peripheral: Peripheral) -> None:
        try:
            if peripheral.is_connected:
                await peripheral.disconnect()
        except BLEAK_EXCEPTIONS as ex:
            _LOGGER.debug("%s: Disconnect failed: %s", self.name, ex)

    async def _async_execute_disconnect(self) -> None:
        """Execute disconnection."""
        async with self._connect_lock:
            handle = self._handle
            self._handle = None
            if handle:
                await self._async_disconnect_peripheral(handle.peripheral)
            self.link_monitor.publish(False, None)
