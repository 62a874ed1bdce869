from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from .exceptions import (
    CharacteristicMissingError,
    NotConnectedError,
    ServiceMissingError,
)
from .models import ResolutionPolicy
from .transport import BLEAK_EXCEPTIONS, Characteristic, Peripheral, Service
from .util import to_full_uuid, uuid_matches, uuid_variants

_LOGGER = logging.getLogger(__name__)

RESOLVE_EXCEPTIONS = (NotConnectedError, *BLEAK_EXCEPTIONS)


def find_by_variants(
    items: Iterable[Service | Characteristic], variants: Iterable[str]
) -> Service | Characteristic | None:
    """Return the first item whose uuid matches any of the variants."""
    variants = list(variants)
    for item in items:
        if any(uuid_matches(item.uuid, variant) for variant in variants):
            return item
    return None


def first_writable(chars: Iterable[Characteristic]) -> Characteristic | None:
    """Return the first characteristic that accepts writes."""
    for char in chars:
        if char.properties.writable:
            return char
    return None


class GattResolver:
    """Locate the writable characteristic of a connected peripheral.

    Every lookup is retried with a linear backoff. Service resolution also
    cycles the connection once halfway through the attempts, which clears a
    stuck GATT cache on some adapters.
    """

    def __init__(self, name: str, policy: ResolutionPolicy | None = None) -> None:
        self.name = name
        self.policy = policy or ResolutionPolicy()

    async def async_resolve_service(
        self, peripheral: Peripheral, hint: str | None
    ) -> Service:
        """Resolve the service to write to."""
        variants = uuid_variants(hint)
        attempts = self.policy.attempts
        for attempt in range(attempts):
            if service := await self._async_find_service(peripheral, variants):
                return service
            if attempt == attempts - 1:
                break
            await asyncio.sleep(self.policy.delay_for(attempt))
            if attempt == attempts // 2:
                await self._async_cycle_connection(peripheral)

        _LOGGER.error(
            "%s: Service not found after %s attempts (tried: %s, plus fallbacks)",
            self.name,
            attempts,
            hint or "autodetect",
        )
        raise ServiceMissingError(
            f"Service not found (tried: {hint or 'autodetect'}, plus fallbacks)"
        )

    async def async_resolve_characteristic(
        self, service: Service, hint: str | None
    ) -> Characteristic:
        """Resolve the characteristic to write to."""
        variants = uuid_variants(hint)
        attempts = self.policy.attempts
        for attempt in range(attempts):
            if char := await self._async_find_characteristic(service, variants):
                return char
            if attempt == attempts - 1:
                break
            await asyncio.sleep(self.policy.delay_for(attempt))

        _LOGGER.error(
            "%s: Characteristic not found after %s attempts "
            "(tried: %s, plus writable fallback)",
            self.name,
            attempts,
            hint or "autodetect",
        )
        raise CharacteristicMissingError(
            f"Characteristic not found (tried: {hint or 'autodetect'}, "
            "plus writable fallback)"
        )

    async def _async_find_service(
        self, peripheral: Peripheral, variants: list[str]
    ) -> Service | None:
        if discover := getattr(peripheral, "discover_services", None):
            only = [to_full_uuid(variant) for variant in variants]
            try:
                await discover(list(dict.fromkeys(only)))
            except RESOLVE_EXCEPTIONS as ex:
                _LOGGER.debug("%s: Service discovery failed: %s", self.name, ex)

        for variant in variants:
            try:
                service = await peripheral.get_service(variant)
            except RESOLVE_EXCEPTIONS as ex:
                _LOGGER.debug("%s: Lookup of %s failed: %s", self.name, variant, ex)
                continue
            if service:
                return service

        try:
            services = await peripheral.get_services()
        except RESOLVE_EXCEPTIONS as ex:
            _LOGGER.debug("%s: Listing services failed: %s", self.name, ex)
            services = []
        _LOGGER.debug(
            "%s: Services: %s",
            self.name,
            ", ".join(service.uuid for service in services),
        )

        if variants and (service := find_by_variants(services, variants)):
            return service

        if service := find_by_variants(services, self.policy.fallback_service_uuids):
            _LOGGER.debug("%s: Falling back to service %s", self.name, service.uuid)
            return service

        for service in services:
            try:
                chars = await service.get_characteristics()
            except RESOLVE_EXCEPTIONS:
                continue
            if first_writable(chars):
                _LOGGER.debug(
                    "%s: Picked first service with writable characteristic: %s",
                    self.name,
                    service.uuid,
                )
                return service
        return None

    async def _async_find_characteristic(
        self, service: Service, variants: list[str]
    ) -> Characteristic | None:
        if discover := getattr(service, "discover_characteristics", None):
            try:
                await discover()
            except RESOLVE_EXCEPTIONS as ex:
                _LOGGER.debug(
                    "%s: Characteristic discovery failed: %s", self.name, ex
                )

        if get_characteristic := getattr(service, "get_characteristic", None):
            for variant in variants:
                try:
                    char = await get_characteristic(variant)
                except RESOLVE_EXCEPTIONS as ex:
                    _LOGGER.debug(
                        "%s: Lookup of %s failed: %s", self.name, variant, ex
                    )
                    continue
                if char:
                    return char

        try:
            chars = await service.get_characteristics()
        except RESOLVE_EXCEPTIONS as ex:
            _LOGGER.debug("%s: Listing characteristics failed: %s", self.name, ex)
            chars = []
        _LOGGER.debug(
            "%s: Characteristics: %s",
            self.name,
            " | ".join(f"{char.uuid} [{char.properties}]" for char in chars),
        )

        if variants and (char := find_by_variants(chars, variants)):
            return char

        if char := first_writable(chars):
            _LOGGER.debug(
                "%s: Falling back to writable characteristic %s", self.name, char.uuid
            )
            return char
        return None

    async def _async_cycle_connection(self, peripheral: Peripheral) -> None:
        """Reconnect to flush a possibly stuck GATT cache."""
        _LOGGER.debug("%s: Reconnecting to refresh services", self.name)
        try:
            await peripheral.disconnect()
        except RESOLVE_EXCEPTIONS as ex:
            _LOGGER.debug("%s: Disconnect failed: %s", self.name, ex)
        await asyncio.sleep(self.policy.reconnect_pause)
        if clear_cache := getattr(peripheral, "clear_cache", None):
            try:
                await clear_cache()
            except RESOLVE_EXCEPTIONS as ex:
                _LOGGER.debug("%s: Clearing the GATT cache failed: %s", self.name, ex)
        await peripheral.connect()
        await asyncio.sleep(self.policy.reconnect_settle)
