"""Exceptions for aiolfsmart."""

from bleak.exc import BleakDeviceNotFoundError, BleakError


class LFSmartScaleException(Exception):
    """Base class for exceptions in this module."""


class LFSmartDeviceNotFound(BleakDeviceNotFoundError):
    """Exception when no device is found."""


class LFSmartError(BleakError):
    """Exception for general bleak errors."""


class LFSmartUnknownDevice(LFSmartScaleException):
    """Exception for devices that do not expose the scale service."""


class LFSmartMessageError(LFSmartScaleException):
    """Exception for message errors."""

    def __init__(self, bytes_recvd: bytes | bytearray, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.bytes_recvd = bytes_recvd


class LFSmartMessageTooShort(LFSmartMessageError):
    """Exception for messages that are too short to carry a reading."""

    def __init__(self, bytes_recvd: bytes | bytearray) -> None:
        super().__init__(bytes_recvd, "Message too short")


class LFSmartCommandRejected(LFSmartScaleException):
    """Raised when a command cannot be written to the scale."""

    def __init__(self, payload: bytes | bytearray, reason: str) -> None:
        super().__init__(reason)
        self.payload = payload
        self.reason = reason
