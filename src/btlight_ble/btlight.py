from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

from .const import (
    CAPABILITY_DIM,
    CAPABILITY_HUE,
    CAPABILITY_MODE,
    CAPABILITY_ONOFF,
    CAPABILITY_SATURATION,
    CAPABILITY_TEMPERATURE,
)
from .exceptions import NotConnectedError
from .link import LinkMonitor
from .models import BTLightConfig, LightMode, LightState, LinkState
from .protocol import ProtocolBTLight
from .supervisor import CONNECT_EXCEPTIONS, ConnectionSupervisor
from .transport import BLEAK_EXCEPTIONS, Transport
from .util import cct_to_rgb, hsv_to_rgb, kelvin_from_level, scale_by_v

_LOGGER = logging.getLogger(__name__)


class BTLight:
    def __init__(
        self,
        transport: Transport,
        config: BTLightConfig,
        state: LightState | None = None,
    ) -> None:
        """Init the BTLight."""
        self._supervisor = ConnectionSupervisor(transport, config)
        self._protocol = ProtocolBTLight()
        self._state = state or LightState()
        self._callbacks: list[Callable[[LightState], None]] = []

    @property
    def name(self) -> str:
        """Get the name of the device."""
        return self._supervisor.name

    @property
    def config(self) -> BTLightConfig:
        return self._supervisor.config

    @property
    def supervisor(self) -> ConnectionSupervisor:
        return self._supervisor

    @property
    def link_monitor(self) -> LinkMonitor:
        return self._supervisor.link_monitor

    @property
    def link_state(self) -> LinkState:
        return self._supervisor.link_monitor.state

    @property
    def rssi(self) -> int | None:
        return self.link_state.rssi

    @property
    def state(self) -> LightState:
        """Return the state."""
        return self._state

    @property
    def on(self) -> bool:
        return self._state.power

    @property
    def rgb(self) -> tuple[int, int, int]:
        """Return the rgb the current state renders to."""
        state = self._state
        if state.mode == LightMode.TEMPERATURE:
            rgb = cct_to_rgb(kelvin_from_level(state.temperature))
        else:
            rgb = hsv_to_rgb(state.hue, state.saturation, 1.0)
        return scale_by_v(rgb, state.value)

    async def async_start(self) -> None:
        """Start connection supervision and link polling."""
        _LOGGER.debug("%s: Start; protocol: %s", self.name, self._protocol.name)
        self.link_monitor.publish(False, None)
        self._supervisor.start()
        self.link_monitor.start()

    async def async_stop(self) -> None:
        """Stop the BTLight."""
        _LOGGER.debug("%s: Stop", self.name)
        await self.link_monitor.async_stop()
        await self._supervisor.async_stop()

    async def async_update_settings(self, changes: Mapping[str, Any]) -> None:
        """Apply changed host settings without reconnecting."""
        old = self.config
        new = old.with_settings(changes)
        self._supervisor.update_config(new)
        if new.poll_interval != old.poll_interval:
            await self.link_monitor.async_set_interval(new.poll_interval)
        _LOGGER.debug("%s: Settings updated: %s", self.name, new)

    def register_callback(
        self, callback: Callable[[LightState], None]
    ) -> Callable[[], None]:
        """Register a callback to be called when the state changes."""

        def unregister_callback() -> None:
            self._callbacks.remove(callback)

        self._callbacks.append(callback)
        return unregister_callback

    def _fire_callbacks(self) -> None:
        """Fire the callbacks."""
        for callback in self._callbacks:
            callback(self._state)

    def _update_state(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        self._fire_callbacks()

    async def async_set_capability(self, capability: str, value: Any) -> bool:
        """Dispatch a host capability change."""
        handlers: dict[str, Callable[[Any], Any]] = {
            CAPABILITY_ONOFF: self.async_set_power,
            CAPABILITY_DIM: self.async_set_brightness,
            CAPABILITY_HUE: self.async_set_hue,
            CAPABILITY_SATURATION: self.async_set_saturation,
            CAPABILITY_TEMPERATURE: self.async_set_temperature,
            CAPABILITY_MODE: self.async_set_mode,
        }
        if capability not in handlers:
            raise ValueError(f"Unknown capability: {capability}")
        return await handlers[capability](value)

    async def async_set_power(self, on: bool) -> bool:
        """Turn on or off."""
        _LOGGER.debug("%s: Set power: %s", self.name, on)
        self._update_state(power=bool(on))
        if not on:
            return await self._async_turn_off()
        if not await self._async_ensure_connected():
            return False
        try:
            await self._async_send(self._protocol.construct_state_change(True))
        except NotConnectedError:
            _LOGGER.debug("%s: Not connected, skipping color", self.name)
            return False
        except BLEAK_EXCEPTIONS as ex:
            _LOGGER.warning("%s: Turn on failed: %s", self.name, ex)
        return await self._async_send_color()

    async def async_set_brightness(self, value: float) -> bool:
        """Set the brightness."""
        _LOGGER.debug("%s: Set brightness: %s", self.name, value)
        self._update_state(value=value)
        return await self._async_apply()

    async def async_set_hue(self, hue: float) -> bool:
        """Set the hue and switch to color mode."""
        _LOGGER.debug("%s: Set hue: %s", self.name, hue)
        self._update_state(hue=hue, mode=LightMode.COLOR)
        return await self._async_apply()

    async def async_set_saturation(self, saturation: float) -> bool:
        """Set the saturation and switch to color mode."""
        _LOGGER.debug("%s: Set saturation: %s", self.name, saturation)
        self._update_state(saturation=saturation, mode=LightMode.COLOR)
        return await self._async_apply()

    async def async_set_temperature(self, temperature: float) -> bool:
        """Set the color temperature and switch to temperature mode."""
        _LOGGER.debug("%s: Set temperature: %s", self.name, temperature)
        self._update_state(temperature=temperature, mode=LightMode.TEMPERATURE)
        return await self._async_apply()

    async def async_set_mode(self, mode: LightMode | str) -> bool:
        """Set the mode."""
        _LOGGER.debug("%s: Set mode: %s", self.name, mode)
        self._update_state(mode=LightMode.parse(mode))
        return await self._async_apply()

    async def _async_ensure_connected(self) -> bool:
        try:
            await self._supervisor.async_ensure_connected()
        except CONNECT_EXCEPTIONS as ex:
            _LOGGER.debug("%s: Unable to connect: %s", self.name, ex)
            return False
        return True

    async def _async_apply(self) -> bool:
        if not await self._async_ensure_connected():
            return False
        if not self._state.power:
            return False
        return await self._async_send_color()

    async def _async_turn_off(self) -> bool:
        await self._async_ensure_connected()
        try:
            await self._async_send(self._protocol.construct_state_change(False))
        except NotConnectedError:
            _LOGGER.debug("%s: Not connected, cannot turn off", self.name)
            return False
        except BLEAK_EXCEPTIONS as ex:
            _LOGGER.warning("%s: Turn off failed: %s", self.name, ex)
            return False
        return True

    async def _async_send_color(self) -> bool:
        rgb = self.rgb
        _LOGGER.debug("%s: Set rgb: %s (%s)", self.name, rgb, self._state.mode.value)
        try:
            await self._async_send(self._protocol.construct_levels_change(*rgb))
        except NotConnectedError:
            _LOGGER.debug("%s: Not connected, dropping color", self.name)
            return False
        except BLEAK_EXCEPTIONS as ex:
            _LOGGER.warning("%s: Setting color failed: %s", self.name, ex)
            return False
        return True

    async def _async_send(self, command: bytes) -> None:
        """Write a command through the current connection."""
        handle = self._supervisor.handle
        if handle is None or not handle.peripheral.is_connected:
            raise NotConnectedError(f"{self.name}: Not connected")
        _LOGGER.debug("%s: Sending command %s", self.name, command.hex())
        await handle.characteristic.write(bytes(command))


async def async_start(
    transport: Transport,
    config: BTLightConfig,
    capabilities: Mapping[str, Any] | None = None,
) -> BTLight:
    """Create a BTLight from host state and start supervising it."""
    state = LightState.from_capabilities(capabilities or {})
    light = BTLight(transport, config, state)
    await light.async_start()
    _LOGGER.info("%s: Device init", light.name)
    return light


async def async_on_settings_changed(light: BTLight, changes: Mapping[str, Any]) -> None:
    """Forward changed host settings to a running BTLight."""
    await light.async_update_settings(changes)


async def async_stop(light: BTLight) -> None:
    """Stop a BTLight, joining its background tasks."""
    await light.async_stop()
