from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from .const import (
    CAPABILITY_DIM,
    CAPABILITY_HUE,
    CAPABILITY_MODE,
    CAPABILITY_ONOFF,
    CAPABILITY_SATURATION,
    CAPABILITY_TEMPERATURE,
    DEFAULT_CONNECT_INTERVAL,
    DEFAULT_CONNECT_MIN_RSSI,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_METRICS_INTERVAL,
    DEFAULT_RESOLVE_ATTEMPTS,
    DEFAULT_RESOLVE_DELAY,
    DEFAULT_RSSI_MIN,
    FALLBACK_SERVICE_UUIDS,
    GATT_SETTLE_DELAY,
    MIN_METRICS_INTERVAL,
    RECONNECT_PAUSE,
    RECONNECT_SETTLE,
    SETTING_CHAR_UUID,
    SETTING_CONNECT_MIN_RSSI,
    SETTING_METRICS_INTERVAL,
    SETTING_RSSI_MIN,
    SETTING_SERVICE_UUID,
)
from .util import clamp01, normalize_address

if TYPE_CHECKING:
    from .transport import Characteristic, Peripheral


class LightMode(str, Enum):
    COLOR = "color"
    TEMPERATURE = "temperature"

    @classmethod
    def parse(cls, value: Any) -> LightMode:
        """Anything but temperature means color."""
        if value == cls.TEMPERATURE.value:
            return cls.TEMPERATURE
        return cls.COLOR


class SignalQuality(str, Enum):
    GOOD = "good"
    OK = "ok"
    BAD = "bad"


@dataclass(frozen=True)
class LightState:

    power: bool = False
    hue: float = 0.0
    saturation: float = 0.0
    value: float = 1.0
    temperature: float = 0.5
    mode: LightMode = LightMode.COLOR

    def __post_init__(self) -> None:
        object.__setattr__(self, "hue", clamp01(self.hue))
        object.__setattr__(self, "saturation", clamp01(self.saturation))
        object.__setattr__(self, "value", clamp01(self.value))
        object.__setattr__(self, "temperature", clamp01(self.temperature))
        object.__setattr__(self, "mode", LightMode.parse(self.mode))
        object.__setattr__(self, "power", bool(self.power))

    @classmethod
    def from_capabilities(cls, values: Mapping[str, Any]) -> LightState:
        """Build the state from the host's last known capability values."""

        def _get(key: str, default: Any) -> Any:
            value = values.get(key)
            return default if value is None else value

        return cls(
            power=_get(CAPABILITY_ONOFF, False),
            hue=_get(CAPABILITY_HUE, 0.0),
            saturation=_get(CAPABILITY_SATURATION, 0.0),
            value=_get(CAPABILITY_DIM, 1.0),
            temperature=_get(CAPABILITY_TEMPERATURE, 0.5),
            mode=_get(CAPABILITY_MODE, LightMode.COLOR),
        )


@dataclass(frozen=True)
class LinkState:

    connected: bool = False
    rssi: int | None = None
    quality: SignalQuality = SignalQuality.BAD

    @property
    def alarm_connection(self) -> bool:
        """Connectivity inverted into an alarm."""
        return not self.connected


@dataclass(frozen=True)
class Advertisement:

    address: str
    service_uuids: list[str] = field(default_factory=list)
    local_name: str | None = None
    rssi: int | None = None


@dataclass(frozen=True)
class ConnectionHandle:
    """A connected peripheral and its resolved write characteristic."""

    peripheral: Peripheral
    characteristic: Characteristic


@dataclass(frozen=True)
class ResolutionPolicy:

    attempts: int = DEFAULT_RESOLVE_ATTEMPTS
    base_delay: float = DEFAULT_RESOLVE_DELAY
    fallback_service_uuids: tuple[str, ...] = FALLBACK_SERVICE_UUIDS
    reconnect_pause: float = RECONNECT_PAUSE
    reconnect_settle: float = RECONNECT_SETTLE

    def delay_for(self, attempt: int) -> float:
        """Return the backoff after a failed attempt."""
        return self.base_delay * (1 + attempt)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class BTLightConfig:

    address: str
    name: str | None = None
    service_uuid: str = ""  # empty means autodetect
    char_uuid: str = ""  # empty means autodetect
    rssi_min: int = DEFAULT_RSSI_MIN
    connect_min_rssi: int = DEFAULT_CONNECT_MIN_RSSI
    metrics_interval: float = DEFAULT_METRICS_INTERVAL
    connect_interval: float = DEFAULT_CONNECT_INTERVAL
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    settle_delay: float = GATT_SETTLE_DELAY
    resolution: ResolutionPolicy = field(default_factory=ResolutionPolicy)

    @property
    def normalized_address(self) -> str:
        return normalize_address(self.address)

    @property
    def poll_interval(self) -> float:
        """The metrics interval, floored."""
        return max(MIN_METRICS_INTERVAL, self.metrics_interval)

    @classmethod
    def from_settings(
        cls, address: str, settings: Mapping[str, Any], **kwargs: Any
    ) -> BTLightConfig:
        """Build a config from persisted host settings."""
        return cls(address=address, **kwargs).with_settings(settings)

    def with_settings(self, changes: Mapping[str, Any]) -> BTLightConfig:
        """Return a copy with the changed host settings applied."""
        updates: dict[str, Any] = {}
        if SETTING_SERVICE_UUID in changes:
            updates["service_uuid"] = str(changes[SETTING_SERVICE_UUID] or "").strip()
        if SETTING_CHAR_UUID in changes:
            updates["char_uuid"] = str(changes[SETTING_CHAR_UUID] or "").strip()
        if SETTING_RSSI_MIN in changes:
            updates["rssi_min"] = _as_int(changes[SETTING_RSSI_MIN], DEFAULT_RSSI_MIN)
        if SETTING_CONNECT_MIN_RSSI in changes:
            updates["connect_min_rssi"] = _as_int(
                changes[SETTING_CONNECT_MIN_RSSI], DEFAULT_CONNECT_MIN_RSSI
            )
        if SETTING_METRICS_INTERVAL in changes:
            updates["metrics_interval"] = _as_float(
                changes[SETTING_METRICS_INTERVAL], DEFAULT_METRICS_INTERVAL
            )
        return replace(self, **updates)
