import asyncio
import logging

from btlight_ble import (
    BleakTransport,
    BTLightConfig,
    LightState,
    LinkState,
    async_discover_lights,
    async_start,
    async_stop,
)

_LOGGER = logging.getLogger(__name__)

ADDRESS = "34:10:18:30:03:F7"  # UAC088


async def run() -> None:
    transport = BleakTransport()
    for light in await async_discover_lights(transport):
        _LOGGER.info("Detected: %s", light.title)

    def on_state_changed(state: LightState) -> None:
        _LOGGER.info("State changed: %s", state)

    def on_link_changed(state: LinkState) -> None:
        _LOGGER.info("Link changed: %s", state)

    config = BTLightConfig(address=ADDRESS, service_uuid="ffb0", char_uuid="ffe1")
    led = await async_start(transport, config)
    cancel_callback = led.register_callback(on_state_changed)
    cancel_link_callback = led.link_monitor.register_callback(on_link_changed)
    _LOGGER.info("turn_on...")
    await led.async_set_power(True)
    _LOGGER.info("set_hue(red)...")
    await led.async_set_saturation(1.0)
    await led.async_set_hue(0.0)
    await asyncio.sleep(1)
    _LOGGER.info("set_hue(green)...")
    await led.async_set_hue(1 / 3)
    await asyncio.sleep(1)
    _LOGGER.info("set_brightness(50%%)...")
    await led.async_set_brightness(0.5)
    await asyncio.sleep(1)
    _LOGGER.info("set_temperature(warm)...")
    await led.async_set_temperature(0.0)
    await asyncio.sleep(1)
    _LOGGER.info("turn_off...")
    await led.async_set_power(False)
    _LOGGER.info("finish...")
    cancel_callback()
    cancel_link_callback()
    await async_stop(led)
    _LOGGER.info("done")


logging.basicConfig(level=logging.INFO)
logging.getLogger("btlight_ble").setLevel(logging.DEBUG)
asyncio.run(run())
