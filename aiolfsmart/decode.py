"""Message decoding and command encoding for the LFSmart scale."""

from dataclasses import dataclass
import logging

from .const import (
    CMD_SET_TIME,
    CMD_SWITCH_TO_GRAMS,
    CMD_ZERO,
    MIN_FRAME_LENGTH,
    SIGN_BYTE,
    SIGN_NEGATIVE,
    WEIGHT_HIGH_BYTE,
    WEIGHT_LOW_BYTE,
)
from .exceptions import LFSmartMessageTooShort

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class ScaleReading:
    """One weight reading from the notify characteristic.

    The scale reports an unsigned magnitude in tenths of a gram and a
    separate sign byte.
    """

    timestamp_millis: int
    magnitude: int
    is_negative: bool = False

    @property
    def weight_tenths(self) -> int:
        """Return the signed weight in tenths of a gram."""
        return -self.magnitude if self.is_negative else self.magnitude

    @property
    def weight_grams(self) -> float:
        """Return the signed weight in grams."""
        return self.weight_tenths / 10.0


def decode(byte_msg: bytes | bytearray, timestamp_millis: int) -> ScaleReading:
    """Decode a notification frame into a ScaleReading.

    Frames of 10 bytes or less are heartbeats the scale sends while it is
    powered but not weighing. They raise LFSmartMessageTooShort and must be
    treated as "no reading", never as zero weight.
    """

    if len(byte_msg) < MIN_FRAME_LENGTH:
        raise LFSmartMessageTooShort(byte_msg)

    magnitude = (byte_msg[WEIGHT_HIGH_BYTE] << 8) + byte_msg[WEIGHT_LOW_BYTE]
    is_negative = byte_msg[SIGN_BYTE] == SIGN_NEGATIVE

    _LOGGER.debug(
        "Decoded frame %s: magnitude=%d negative=%s",
        bytes(byte_msg).hex(),
        magnitude,
        is_negative,
    )
    return ScaleReading(
        timestamp_millis=timestamp_millis,
        magnitude=magnitude,
        is_negative=is_negative,
    )


def encode_zero_command() -> bytes:
    """Return the frame that tares the scale."""
    return CMD_ZERO


def encode_switch_to_grams_command() -> bytes:
    """Return the frame that switches the display unit to grams."""
    return CMD_SWITCH_TO_GRAMS


def encode_set_time_command() -> bytes:
    """Return the set-time frame (identical to the zero frame on this scale)."""
    return CMD_SET_TIME
