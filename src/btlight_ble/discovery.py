from __future__ import annotations

import logging
from dataclasses import dataclass

from .const import DEFAULT_NAME
from .models import Advertisement
from .transport import Transport
from .util import normalize_address, uuid_matches

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveryFilter:
    """Which advertisements look like a supported light.

    An advertisement matches when its local name contains any of the name
    fragments or it announces any of the service uuids. A filter with neither
    accepts everything.
    """

    name_fragments: tuple[str, ...] = ("uac088",)
    service_uuids: tuple[str, ...] = ("ffb0",)

    @property
    def accepts_all(self) -> bool:
        return not self.name_fragments and not self.service_uuids

    def matches(self, advertisement: Advertisement) -> bool:
        if self.accepts_all:
            return True
        name = (advertisement.local_name or "").lower()
        if any(fragment.lower() in name for fragment in self.name_fragments):
            return True
        return any(
            uuid_matches(uuid, wanted)
            for uuid in advertisement.service_uuids
            for wanted in self.service_uuids
        )


@dataclass(frozen=True)
class DiscoveredLight:

    address: str
    name: str
    rssi: int | None = None

    @property
    def short_id(self) -> str:
        return normalize_address(self.address)[-6:].upper()

    @property
    def title(self) -> str:
        """The title to present when pairing."""
        rssi = "?" if self.rssi is None else self.rssi
        return f"{self.name} [{self.short_id}] RSSI {rssi} dBm"


def filter_advertisements(
    advertisements: list[Advertisement],
    discovery_filter: DiscoveryFilter | None = None,
) -> list[DiscoveredLight]:
    """Return the lights among a snapshot of advertisements."""
    discovery_filter = discovery_filter or DiscoveryFilter()
    return [
        DiscoveredLight(
            address=advertisement.address,
            name=advertisement.local_name or DEFAULT_NAME,
            rssi=advertisement.rssi,
        )
        for advertisement in advertisements
        if discovery_filter.matches(advertisement)
    ]


async def async_discover_lights(
    transport: Transport, discovery_filter: DiscoveryFilter | None = None
) -> list[DiscoveredLight]:
    """Scan for lights that can be paired."""
    advertisements = await transport.discover_advertisements()
    lights = filter_advertisements(advertisements, discovery_filter)
    _LOGGER.debug("Presenting %s of %s device(s)", len(lights), len(advertisements))
    return lights
