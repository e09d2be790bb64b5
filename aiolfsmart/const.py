"""Constants for aiolfsmart."""

from typing import Final

SCALE_NAME_FILTER: Final = "LFSmart Scale"
SERVICE_UUID: Final = "0000fff0-0000-1000-8000-00805f9b34fb"
CHARACTERISTIC_UUID_WRITE: Final = "0000fff1-0000-1000-8000-00805f9b34fb"
CHARACTERISTIC_UUID_NOTIFY: Final = "0000fff4-0000-1000-8000-00805f9b34fb"

# Notification frames shorter than this are idle heartbeats (scale powered, not weighing)
MIN_FRAME_LENGTH: Final = 11
WEIGHT_LOW_BYTE: Final = 3
WEIGHT_HIGH_BYTE: Final = 4
SIGN_BYTE: Final = 5
SIGN_NEGATIVE: Final = 0x01

# Scale Command Payloads
CMD_ZERO: Final[bytes] = b"\xFD\x32\x00\x00\x00\x00\x00\x00\x00\x00\xCF"
CMD_SWITCH_TO_GRAMS: Final[bytes] = b"\xFD\x00\x04\x00\x00\x00\x00\x00\x00\x00\xF9"
# The scale exposes no separate clock command; set-time is sent as a zero frame
CMD_SET_TIME: Final[bytes] = CMD_ZERO

# Brewing defaults
DEFAULT_MIN_DOSE_GRAMS: Final = 0.2
DEFAULT_NOISE_THRESHOLD_GRAMS: Final = 0.5
DEFAULT_SPIN_PATIENCE: Final = 5
DEFAULT_SPIN_WINDOW_MILLIS: Final = 2000
DEFAULT_WEIGHT_SAMPLE_INTERVAL: Final = 0.2  # seconds
DEFAULT_FLOW_SAMPLE_INTERVAL: Final = 1.0  # seconds
DEFAULT_TARE_POLL_INTERVAL: Final = 0.1  # seconds
DEFAULT_MAX_COALESCED_SAMPLES: Final = 5

# Transport defaults
DEFAULT_MAX_QUEUE_SIZE: Final = 100
DEFAULT_QUEUE_PROCESS_DELAY: Final = 0.1  # seconds
