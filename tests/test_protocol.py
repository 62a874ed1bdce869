"""Test the command frames."""
from btlight_ble.protocol import ProtocolBTLight


class TestProtocolBTLight:
    """Tests for ProtocolBTLight."""

    def test_name(self):
        assert ProtocolBTLight().name == "BTLight"

    def test_power_on(self):
        """Power on is a three byte frame."""
        assert ProtocolBTLight().construct_state_change(True) == bytearray(
            [0xCC, 0x23, 0x33]
        )

    def test_power_off(self):
        """Power off is a three byte frame."""
        assert ProtocolBTLight().construct_state_change(False) == bytearray(
            [0xCC, 0x24, 0x33]
        )

    def test_levels(self):
        """Set rgb is a seven byte frame."""
        assert ProtocolBTLight().construct_levels_change(255, 128, 7) == bytearray(
            [0x56, 0xFF, 0x80, 0x07, 0x00, 0xF0, 0xAA]
        )

    def test_levels_masked_to_a_byte(self):
        """Channels are masked to eight bits."""
        frame = ProtocolBTLight().construct_levels_change(0x1FF, 256, -1)
        assert list(frame) == [0x56, 0xFF, 0x00, 0xFF, 0x00, 0xF0, 0xAA]

    def test_frames_are_fresh(self):
        """Callers may mutate the returned frame."""
        protocol = ProtocolBTLight()
        frame = protocol.construct_state_change(True)
        frame[0] = 0
        assert protocol.construct_state_change(True)[0] == 0xCC
