from __future__ import annotations

from .const import (
    POWER_OFF_COMMAND,
    POWER_ON_COMMAND,
    RGB_COMMAND_PREFIX,
    RGB_COMMAND_SUFFIX,
)


class ProtocolBTLight:
    """Protocol for UAC088 style BT lights.

    The lamp accepts three write-only frames and sends nothing back.
    """

    @property
    def name(self) -> str:
        """The name of the protocol."""
        return "BTLight"

    def construct_state_change(self, turn_on: bool) -> bytearray:
        """The bytes to send for a state change request."""
        return bytearray(POWER_ON_COMMAND if turn_on else POWER_OFF_COMMAND)

    def construct_levels_change(self, red: int, green: int, blue: int) -> bytearray:
        """The bytes to send for a level change request."""
        return bytearray(
            [RGB_COMMAND_PREFIX, red & 0xFF, green & 0xFF, blue & 0xFF]
        ) + bytearray(RGB_COMMAND_SUFFIX)
