from __future__ import annotations


class BTLightError(Exception):
    """Base class for errors raised by btlight_ble."""


class PeripheralNotFoundError(BTLightError):
    """Raised when the peripheral cannot be found."""


class LinkTooWeakError(BTLightError):
    """Raised when the advertised RSSI is too weak to attempt a connection."""

    def __init__(self, rssi: int, threshold: int) -> None:
        super().__init__(
            f"Link too weak to connect: advertised RSSI {rssi} < {threshold}"
        )
        self.rssi = rssi
        self.threshold = threshold


class ResolutionError(BTLightError):
    """Raised when no usable GATT attribute could be resolved."""


class ServiceMissingError(ResolutionError):
    """Raised when a service is missing."""


class CharacteristicMissingError(ResolutionError):
    """Raised when a characteristic is missing."""


class NotConnectedError(BTLightError):
    """Raised when a command is written without a connection."""
