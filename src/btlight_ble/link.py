from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable

import async_timeout

from .const import (
    DEFAULT_METRICS_INTERVAL,
    DEFAULT_RSSI_MIN,
    MIN_METRICS_INTERVAL,
    RSSI_CEILING,
    RSSI_FLOOR,
    RSSI_GOOD,
    RSSI_OK,
)
from .models import LinkState, SignalQuality
from .transport import BLEAK_EXCEPTIONS, Peripheral
from .util import round_half_up

_LOGGER = logging.getLogger(__name__)


def compute_link_state(connected: bool, rssi: int | float | None) -> LinkState:
    """Derive the link state from connectivity and signal strength."""
    if rssi is None or not math.isfinite(rssi):
        quality = SignalQuality.OK if connected else SignalQuality.BAD
        return LinkState(connected=connected, rssi=None, quality=quality)
    value = max(RSSI_FLOOR, min(RSSI_CEILING, round_half_up(rssi)))
    if value >= RSSI_GOOD:
        quality = SignalQuality.GOOD
    elif value >= RSSI_OK:
        quality = SignalQuality.OK
    else:
        quality = SignalQuality.BAD
    return LinkState(connected=connected, rssi=value, quality=quality)


class LinkMonitor:
    """Sample connectivity and signal strength of the current peripheral."""

    def __init__(
        self,
        name: str,
        get_peripheral: Callable[[], Peripheral | None],
        rssi_min: int | None = DEFAULT_RSSI_MIN,
        interval: float = DEFAULT_METRICS_INTERVAL,
    ) -> None:
        self.name = name
        self.rssi_min = rssi_min
        self._get_peripheral = get_peripheral
        self._interval = max(MIN_METRICS_INTERVAL, interval)
        self._state = LinkState()
        self._callbacks: list[Callable[[LinkState], None]] = []
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> LinkState:
        """Return the latest link state."""
        return self._state

    @property
    def interval(self) -> float:
        return self._interval

    def register_callback(
        self, callback: Callable[[LinkState], None]
    ) -> Callable[[], None]:
        """Register a callback to be called when the link state is published."""

        def unregister_callback() -> None:
            self._callbacks.remove(callback)

        self._callbacks.append(callback)
        return unregister_callback

    def publish(self, connected: bool, rssi: int | float | None) -> LinkState:
        """Recompute and publish the link state."""
        self._state = compute_link_state(connected, rssi)
        if (
            self.rssi_min
            and self._state.rssi is not None
            and self._state.rssi < self.rssi_min
        ):
            _LOGGER.info(
                "%s: RSSI %s dBm < threshold %s dBm",
                self.name,
                self._state.rssi,
                self.rssi_min,
            )
        for callback in self._callbacks:
            callback(self._state)
        return self._state

    def sample(self) -> LinkState:
        """Sample the peripheral once and publish the result."""
        peripheral = self._get_peripheral()
        if peripheral is None:
            return self.publish(False, None)
        try:
            rssi = peripheral.rssi
        except BLEAK_EXCEPTIONS as ex:
            _LOGGER.debug("%s: Reading RSSI failed: %s", self.name, ex)
            rssi = None
        if not isinstance(rssi, (int, float)):
            rssi = None
        return self.publish(peripheral.is_connected, rssi)

    def start(self) -> None:
        """Start the polling task."""
        if self._task and not self._task.done():
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._async_poll_loop())

    async def async_stop(self) -> None:
        """Stop the polling task and wait for it to finish."""
        task = self._task
        self._task = None
        self._stop_event.set()
        if task:
            await task

    async def async_set_interval(self, interval: float) -> None:
        """Change the polling interval, restarting the timer if running."""
        self._interval = max(MIN_METRICS_INTERVAL, interval)
        if self._task is None:
            return
        await self.async_stop()
        self.start()

    async def _async_poll_loop(self) -> None:
        stop_event = self._stop_event
        while not stop_event.is_set():
            try:
                async with async_timeout.timeout(self._interval):
                    await stop_event.wait()
            except asyncio.TimeoutError:
                try:
                    self.sample()
                except BLEAK_EXCEPTIONS:
                    _LOGGER.debug("%s: RSSI poll failed", self.name, exc_info=True)
