from __future__ import annotations

import colorsys
import math
import re
from typing import Any

from .const import BASE_UUID_FORMAT, MAX_KELVIN, MIN_KELVIN

_NON_HEX = re.compile(r"[^0-9a-f]")


def clamp01(value: Any) -> float:
    """Clamp a value to [0, 1], coercing anything non-finite to 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(0.0, min(1.0, number))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounding up."""
    return math.floor(value + 0.5)


def _clamp_channel(value: float) -> int:
    return max(0, min(255, round_half_up(value)))


def hsv_to_rgb(h: float, s: float, v: float) -> tuple[int, int, int]:
    """Convert hsv in [0, 1] to an rgb byte triple."""
    r, g, b = colorsys.hsv_to_rgb(h, s, v)
    return _clamp_channel(r * 255), _clamp_channel(g * 255), _clamp_channel(b * 255)


def cct_to_rgb(kelvin: float) -> tuple[int, int, int]:
    """Convert a color temperature in Kelvin to an rgb byte triple.

    Uses Tanner Helland's piecewise fit of the blackbody curve.
    """
    t = kelvin / 100 if math.isfinite(kelvin) else 0.0
    t = max(t, 1.0)

    if t <= 66:
        red = 255.0
        green = 99.4708025861 * math.log(t) - 161.1195681661
    else:
        red = 329.698727446 * math.pow(t - 60, -0.1332047592)
        green = 288.1221695283 * math.pow(t - 60, -0.0755148492)

    if t >= 66:
        blue = 255.0
    elif t <= 19:
        blue = 0.0
    else:
        blue = 138.5177312231 * math.log(t - 10) - 305.0447927307

    return _clamp_channel(red), _clamp_channel(green), _clamp_channel(blue)


def scale_by_v(rgb: tuple[int, int, int], v: float) -> tuple[int, int, int]:
    """Scale an rgb triple by a brightness level in [0, 1]."""
    r, g, b = rgb
    return _clamp_channel(r * v), _clamp_channel(g * v), _clamp_channel(b * v)


def kelvin_from_level(level: float) -> int:
    """Map a [0, 1] temperature level onto the supported Kelvin range."""
    return MIN_KELVIN + round_half_up((MAX_KELVIN - MIN_KELVIN) * clamp01(level))


def normalize_uuid(uuid: str | None) -> str:
    """Lowercase a uuid and strip hyphens and whitespace."""
    return str(uuid or "").strip().lower().replace("-", "")


def to_full_uuid(uuid: str | None) -> str:
    """Expand a 16 bit uuid to the Bluetooth base uuid.

    128 bit uuids are returned in their canonical hyphenated form.
    """
    short = normalize_uuid(uuid)
    if not short:
        return ""
    if len(short) == 4:
        return BASE_UUID_FORMAT.format(short)
    if len(short) == 32:
        return "-".join(
            (short[0:8], short[8:12], short[12:16], short[16:20], short[20:32])
        )
    return short


def uuid_variants(uuid: str | None) -> list[str]:
    """Return the full and short lookup variants for a uuid hint."""
    short = normalize_uuid(uuid)
    if not short:
        return []
    full = to_full_uuid(short)
    if full == short:
        return [full]
    return [full, short]


def uuid_matches(uuid: str | None, hint: str | None) -> bool:
    """Return True if uuid matches the hint.

    A 16 bit hint matches any uuid ending with it, anything else must be equal.
    """
    haystack = normalize_uuid(uuid)
    needle = normalize_uuid(hint)
    if not haystack or not needle:
        return False
    if len(needle) == 4:
        return haystack.endswith(needle)
    return haystack == needle


def normalize_address(address: str | None) -> str:
    """Lowercase an address and strip everything that is not hex."""
    return _NON_HEX.sub("", str(address or "").lower())


def short_address(address: str | None) -> str:
    """Return the last four hex digits of an address."""
    return normalize_address(address)[-4:].upper()
