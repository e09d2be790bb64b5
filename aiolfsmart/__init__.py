"""Asyncio client and brewing core for LFSmart BLE kitchen scales."""

from .assistant import BrewAssistant, BrewSnapshot
from .config import BrewConfig
from .connection import ConnectionState, ScaleLink, transition
from .const import (
    CHARACTERISTIC_UUID_NOTIFY,
    CHARACTERISTIC_UUID_WRITE,
    SCALE_NAME_FILTER,
    SERVICE_UUID,
)
from .decode import (
    ScaleReading,
    decode,
    encode_set_time_command,
    encode_switch_to_grams_command,
    encode_zero_command,
)
from .exceptions import (
    LFSmartCommandRejected,
    LFSmartDeviceNotFound,
    LFSmartError,
    LFSmartMessageError,
    LFSmartMessageTooShort,
    LFSmartScaleException,
    LFSmartUnknownDevice,
)
from .helpers import find_lfsmart_devices, is_lfsmart_scale, scan
from .lfsmartscale import LFSmartScale
from .scheduler import ScheduledTask, Scheduler
from .series import BrewSeries, Sample, TimeSeries
from .session import BrewSession, BrewSessionMachine, SessionCommand, SessionState
from .telemetry import FilteredTelemetry, TelemetryEngine

__all__ = [
    "BrewAssistant",
    "BrewConfig",
    "BrewSeries",
    "BrewSession",
    "BrewSessionMachine",
    "BrewSnapshot",
    "CHARACTERISTIC_UUID_NOTIFY",
    "CHARACTERISTIC_UUID_WRITE",
    "ConnectionState",
    "FilteredTelemetry",
    "LFSmartCommandRejected",
    "LFSmartDeviceNotFound",
    "LFSmartError",
    "LFSmartMessageError",
    "LFSmartMessageTooShort",
    "LFSmartScale",
    "LFSmartScaleException",
    "LFSmartUnknownDevice",
    "SCALE_NAME_FILTER",
    "SERVICE_UUID",
    "Sample",
    "ScaleLink",
    "ScaleReading",
    "ScheduledTask",
    "Scheduler",
    "SessionCommand",
    "SessionState",
    "TelemetryEngine",
    "TimeSeries",
    "decode",
    "encode_set_time_command",
    "encode_switch_to_grams_command",
    "encode_zero_command",
    "find_lfsmart_devices",
    "is_lfsmart_scale",
    "scan",
    "transition",
]
