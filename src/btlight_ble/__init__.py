from __future__ import annotations

__version__ = "1.0.0"


from .btlight import BTLight, async_on_settings_changed, async_start, async_stop
from .discovery import DiscoveredLight, DiscoveryFilter, async_discover_lights
from .exceptions import (
    BTLightError,
    CharacteristicMissingError,
    LinkTooWeakError,
    NotConnectedError,
    PeripheralNotFoundError,
    ResolutionError,
    ServiceMissingError,
)
from .models import (
    BTLightConfig,
    LightMode,
    LightState,
    LinkState,
    ResolutionPolicy,
    SignalQuality,
)
from .transport import BLEAK_EXCEPTIONS, BleakTransport

__all__ = [
    "BLEAK_EXCEPTIONS",
    "BTLight",
    "BTLightConfig",
    "BTLightError",
    "BleakTransport",
    "CharacteristicMissingError",
    "DiscoveredLight",
    "DiscoveryFilter",
    "LightMode",
    "LightState",
    "LinkState",
    "LinkTooWeakError",
    "NotConnectedError",
    "PeripheralNotFoundError",
    "ResolutionError",
    "ResolutionPolicy",
    "ServiceMissingError",
    "SignalQuality",
    "async_discover_lights",
    "async_on_settings_changed",
    "async_start",
    "async_stop",
]
