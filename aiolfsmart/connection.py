"""Connection state machine for the scale, independent of the BLE backend.

Every BLE callback is turned into one of the events below and fed to
``transition``, which returns the new link together with the side effects
the transport has to carry out.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
import logging
from typing import Any

from .const import SCALE_NAME_FILTER

_LOGGER = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    """Connection state of the scale."""

    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True, kw_only=True)
class ScaleLink:
    """Connection state plus the characteristics bound while connected."""

    state: ConnectionState = ConnectionState.DISCONNECTED
    address: str | None = None
    write_char: str | None = None
    notify_char: str | None = None
    name_filter: str = SCALE_NAME_FILTER

    def __post_init__(self) -> None:
        if self.state is ConnectionState.CONNECTED and (
            self.write_char is None or self.notify_char is None
        ):
            raise ValueError("Connected link requires write and notify characteristics")

    @property
    def can_write(self) -> bool:
        return self.state is ConnectionState.CONNECTED and self.write_char is not None


# Events


@dataclass(frozen=True)
class AdapterStateChanged:
    powered_on: bool
    reason: str | None = None


@dataclass(frozen=True)
class FindRequested:
    pass


@dataclass(frozen=True)
class DeviceDiscovered:
    name: str | None
    address: str
    device: Any = field(default=None, compare=False)


@dataclass(frozen=True)
class ConnectSucceeded:
    address: str


@dataclass(frozen=True)
class ConnectFailed:
    address: str | None
    reason: str


@dataclass(frozen=True)
class ServicesDiscovered:
    write_char: str | None
    notify_char: str | None


@dataclass(frozen=True)
class SubscribeFailed:
    reason: str


@dataclass(frozen=True)
class Disconnected:
    address: str | None = None


@dataclass(frozen=True)
class DisconnectRequested:
    pass


@dataclass(frozen=True)
class CharacteristicUpdated:
    char_uuid: str
    data: bytes
    timestamp_millis: int


@dataclass(frozen=True)
class WriteCompleted:
    char_uuid: str
    payload: bytes


ConnectionEvent = (
    AdapterStateChanged
    | FindRequested
    | DeviceDiscovered
    | ConnectSucceeded
    | ConnectFailed
    | ServicesDiscovered
    | SubscribeFailed
    | Disconnected
    | DisconnectRequested
    | CharacteristicUpdated
    | WriteCompleted
)


# Side effects


@dataclass(frozen=True)
class StartScan:
    pass


@dataclass(frozen=True)
class StopScan:
    pass


@dataclass(frozen=True)
class Connect:
    address: str
    device: Any = field(default=None, compare=False)


@dataclass(frozen=True)
class DiscoverServices:
    pass


@dataclass(frozen=True)
class Subscribe:
    char_uuid: str


@dataclass(frozen=True)
class CancelConnection:
    pass


@dataclass(frozen=True)
class DeliverFrame:
    data: bytes
    timestamp_millis: int


SideEffect = (
    StartScan
    | StopScan
    | Connect
    | DiscoverServices
    | Subscribe
    | CancelConnection
    | DeliverFrame
)


def _drop(link: ScaleLink, *effects: SideEffect) -> tuple[ScaleLink, list[SideEffect]]:
    return (
        replace(
            link,
            state=ConnectionState.DISCONNECTED,
            address=None,
            write_char=None,
            notify_char=None,
        ),
        list(effects),
    )


def transition(
    link: ScaleLink, event: ConnectionEvent
) -> tuple[ScaleLink, list[SideEffect]]:
    """Apply an event to the link and return the side effects to run.

    There is no automatic reconnect: every failure lands in DISCONNECTED and
    a fresh FindRequested is needed to scan again.
    """

    state = link.state

    match event:
        case AdapterStateChanged(powered_on=True) | FindRequested():
            if state is ConnectionState.DISCONNECTED:
                return replace(link, state=ConnectionState.SCANNING), [StartScan()]
            return link, []

        case AdapterStateChanged(powered_on=False):
            if state is ConnectionState.SCANNING:
                return _drop(link, StopScan())
            if state is ConnectionState.DISCONNECTED:
                return link, []
            return _drop(link, CancelConnection())

        case DeviceDiscovered(name=name, address=address, device=device):
            if (
                state is ConnectionState.SCANNING
                and name is not None
                and link.name_filter in name
            ):
                return (
                    replace(link, state=ConnectionState.CONNECTING, address=address),
                    [StopScan(), Connect(address, device)],
                )
            return link, []

        case ConnectSucceeded(address=address):
            if state is ConnectionState.CONNECTING and address == link.address:
                return link, [DiscoverServices()]
            return link, []

        case ServicesDiscovered(write_char=write_char, notify_char=notify_char):
            if state is not ConnectionState.CONNECTING:
                return link, []
            if write_char is None or notify_char is None:
                _LOGGER.warning(
                    "Scale at %s is missing write or notify characteristic",
                    link.address,
                )
                return _drop(link, CancelConnection())
            # Connected once the subscription is requested, not confirmed
            return (
                replace(
                    link,
                    state=ConnectionState.CONNECTED,
                    write_char=write_char,
                    notify_char=notify_char,
                ),
                [Subscribe(notify_char)],
            )

        case ConnectFailed() | SubscribeFailed() | Disconnected():
            if state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
                return _drop(link, CancelConnection())
            return link, []

        case DisconnectRequested():
            if state is ConnectionState.SCANNING:
                return _drop(link, StopScan())
            if state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
                return _drop(link, CancelConnection())
            return link, []

        case CharacteristicUpdated(char_uuid=char_uuid, data=data, timestamp_millis=ts):
            if state is ConnectionState.CONNECTED and char_uuid == link.notify_char:
                return link, [DeliverFrame(data, ts)]
            return link, []

        case WriteCompleted():
            return link, []

    raise TypeError(f"Unknown connection event: {event!r}")
