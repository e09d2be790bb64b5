"""Client to interact with LFSmart scales."""

from __future__ import annotations  # noqa: I001

import asyncio
import logging
import time

from collections.abc import Callable

from bleak import BleakClient, BleakGATTCharacteristic, BleakScanner, BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .config import BrewConfig
from .connection import (
    AdapterStateChanged,
    CancelConnection,
    CharacteristicUpdated,
    Connect,
    ConnectFailed,
    ConnectSucceeded,
    ConnectionEvent,
    ConnectionState,
    DeliverFrame,
    DeviceDiscovered,
    DisconnectRequested,
    Disconnected,
    DiscoverServices,
    FindRequested,
    ScaleLink,
    ServicesDiscovered,
    SideEffect,
    StartScan,
    StopScan,
    Subscribe,
    SubscribeFailed,
    WriteCompleted,
    transition,
)
from .const import (
    DEFAULT_MAX_QUEUE_SIZE,
    DEFAULT_QUEUE_PROCESS_DELAY,
    SCALE_NAME_FILTER,
    SERVICE_UUID,
)
from .decode import (
    decode,
    encode_set_time_command,
    encode_switch_to_grams_command,
    encode_zero_command,
)
from .exceptions import (
    LFSmartCommandRejected,
    LFSmartMessageError,
    LFSmartMessageTooShort,
)
from .telemetry import FilteredTelemetry, TelemetryEngine

_LOGGER = logging.getLogger(__name__)


def _now_millis() -> int:
    return time.monotonic_ns() // 1_000_000


class LFSmartScale:
    """Representation of an LFSmart scale.

    All BLE callbacks only enqueue connection events. A single background
    task applies them to the connection state machine and runs the
    resulting side effects, so state is never mutated from two places.
    """

    def __init__(
        self,
        name_filter: str = SCALE_NAME_FILTER,
        config: BrewConfig | None = None,
        max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE,  # Max items in command queue
        queue_process_delay: float = DEFAULT_QUEUE_PROCESS_DELAY,  # Delay between writes
        notify_callback: Callable[[], None] | None = None,  # General state update
        clock: Callable[[], int] = _now_millis,
    ) -> None:
        """Initialize the scale."""

        self._link = ScaleLink(name_filter=name_filter)
        self._scanner: BleakScanner | None = None
        self._client: BleakClient | None = None
        self._queue_process_delay = queue_process_delay
        self._clock = clock

        self.name: str | None = None

        # tasks
        self.process_events_task: asyncio.Task | None = None
        self.process_queue_task: asyncio.Task | None = None

        # connection diagnostics
        self._timestamp_last_command: float | None = None
        self.last_disconnect_time: float | None = None

        self._engine = TelemetryEngine(config)

        # queues
        self._events: asyncio.Queue[ConnectionEvent] = asyncio.Queue()
        self._queue: asyncio.Queue[tuple[str, bytes]] = asyncio.Queue(
            maxsize=max_queue_size
        )

        self._notify_callback: Callable[[], None] | None = notify_callback

    @property
    def link(self) -> ScaleLink:
        """Return the current connection link."""
        return self._link

    @property
    def state(self) -> ConnectionState:
        """Return the connection state."""
        return self._link.state

    @property
    def connected(self) -> bool:
        return self._link.state is ConnectionState.CONNECTED

    @property
    def mac(self) -> str | None:
        """Return the mac address of the scale in upper case."""
        return self._link.address.upper() if self._link.address else None

    @property
    def telemetry(self) -> FilteredTelemetry:
        """Return the latest filtered telemetry."""
        return self._engine.telemetry

    @property
    def weight(self) -> float:
        """Return the filtered weight in grams."""
        return self._engine.weight

    @property
    def flow_rate(self) -> float:
        """Return the flow rate in grams per second."""
        return self._engine.flow_rate

    def post_event(self, event: ConnectionEvent) -> None:
        """Queue a connection event for the event task."""
        self._events.put_nowait(event)

    async def start(self) -> None:
        """Start the event task and begin scanning."""
        self._setup_tasks()
        self.post_event(AdapterStateChanged(powered_on=True))

    def find(self) -> None:
        """Scan for the scale again after a disconnect."""
        self.post_event(FindRequested())

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._events.join()

    async def disconnect(self) -> None:
        """Clean disconnect from the scale."""

        _LOGGER.debug("Disconnecting from scale")
        self.post_event(DisconnectRequested())
        if self.process_events_task and not self.process_events_task.done():
            await self.drain()

    async def stop(self) -> None:
        """Disconnect and stop all background tasks."""
        await self.disconnect()
        await self.async_empty_queue_and_cancel_tasks()
        task = self.process_events_task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                _LOGGER.debug("process_events task was cancelled as expected")
        self.process_events_task = None
        _LOGGER.debug("Finished stop procedure for scale")

    def _setup_tasks(self) -> None:
        """Ensure the event task is running."""
        if not self.process_events_task or self.process_events_task.done():
            self.process_events_task = asyncio.create_task(self.process_events())

    def _setup_queue_task(self) -> None:
        if not self.process_queue_task or self.process_queue_task.done():
            self.process_queue_task = asyncio.create_task(self.process_queue())

    # Event handling

    async def process_events(self) -> None:
        """Task to apply queued connection events one at a time."""
        while True:
            event = await self._events.get()
            try:
                await self._handle_event(event)
            except asyncio.CancelledError:
                raise
            except Exception as ex:  # pylint: disable=broad-except
                _LOGGER.error(
                    "Unexpected error handling %s: %s",
                    type(event).__name__,
                    ex,
                    exc_info=True,
                )
            finally:
                self._events.task_done()

    async def _handle_event(self, event: ConnectionEvent) -> None:
        previous = self._link.state
        self._link, effects = transition(self._link, event)

        if self._link.state is not previous:
            _LOGGER.info(
                "Scale connection %s -> %s", previous, self._link.state
            )
            self._on_state_change(previous)

        for effect in effects:
            await self._run_effect(effect)

    def _on_state_change(self, previous: ConnectionState) -> None:
        if self._link.state is ConnectionState.CONNECTED:
            self._setup_queue_task()
        elif previous is ConnectionState.CONNECTED:
            self.last_disconnect_time = time.time()
            self._empty_queue_and_cancel_writer()
            self._engine.reset()

        if self._notify_callback:
            self._notify_callback()

    async def _run_effect(self, effect: SideEffect) -> None:
        match effect:
            case StartScan():
                await self._start_scan()
            case StopScan():
                await self._stop_scan()
            case Connect(address=address, device=device):
                await self._connect(address, device)
            case DiscoverServices():
                self._discover_services()
            case Subscribe(char_uuid=char_uuid):
                await self._subscribe(char_uuid)
            case CancelConnection():
                await self._cancel_connection()
            case DeliverFrame(data=data, timestamp_millis=timestamp_millis):
                self._handle_frame(data, timestamp_millis)

    async def _start_scan(self) -> None:
        _LOGGER.debug("Scanning for devices named '%s'", self._link.name_filter)
        self._scanner = BleakScanner(
            detection_callback=self._detection_callback,
            service_uuids=[SERVICE_UUID],
        )
        try:
            await self._scanner.start()
        except (BleakError, OSError) as ex:
            _LOGGER.warning("Bluetooth adapter unavailable: %s", ex)
            self._scanner = None
            self.post_event(AdapterStateChanged(powered_on=False, reason=str(ex)))

    async def _stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except BleakError as ex:
            _LOGGER.debug("Error stopping scanner: %s", ex)

    async def _connect(self, address: str, device: BLEDevice | None) -> None:
        _LOGGER.debug("Connecting to %s", address)
        self._client = BleakClient(
            device if device is not None else address,
            disconnected_callback=self.device_disconnected_handler,
        )
        try:
            await self._client.connect()
        except (BleakError, TimeoutError) as ex:
            _LOGGER.debug(
                "Connection to %s failed: %s (%s)", address, type(ex).__name__, ex
            )
            self.post_event(ConnectFailed(address, str(ex)))
            return
        except Exception as ex:  # pylint: disable=broad-except
            _LOGGER.error("Unexpected error connecting to %s", address, exc_info=True)
            self.post_event(ConnectFailed(address, str(ex)))
            return
        _LOGGER.info("Connected to %s", address)
        self.post_event(ConnectSucceeded(address))

    def _discover_services(self) -> None:
        write_char: str | None = None
        notify_char: str | None = None
        service = self._client.services.get_service(SERVICE_UUID) if self._client else None
        if service is None:
            _LOGGER.warning("Service %s not found on scale", SERVICE_UUID)
        else:
            for characteristic in service.characteristics:
                _LOGGER.debug(
                    "Characteristic %s: %s",
                    characteristic.uuid,
                    ", ".join(characteristic.properties),
                )
                if "write" in characteristic.properties:
                    write_char = characteristic.uuid
                if "notify" in characteristic.properties:
                    notify_char = characteristic.uuid
        self.post_event(ServicesDiscovered(write_char, notify_char))

    async def _subscribe(self, char_uuid: str) -> None:
        if self._client is None:
            self.post_event(SubscribeFailed("Client not initialized"))
            return
        try:
            await self._client.start_notify(char_uuid, self._notification_handler)
        except (BleakError, TimeoutError) as ex:
            _LOGGER.warning("Could not subscribe to %s: %s", char_uuid, ex)
            self.post_event(SubscribeFailed(str(ex)))
            return
        except Exception as ex:  # pylint: disable=broad-except
            _LOGGER.error(
                "Unexpected error subscribing to %s", char_uuid, exc_info=True
            )
            self.post_event(SubscribeFailed(str(ex)))
            return
        _LOGGER.debug("Subscribed to %s notifications", char_uuid)

    async def _cancel_connection(self) -> None:
        await self._stop_scan()
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except BleakError as ex:
            _LOGGER.debug("Error during BLE disconnect: %s", ex)

    def _handle_frame(self, data: bytes, timestamp_millis: int) -> None:
        try:
            reading = decode(data, timestamp_millis)
        except LFSmartMessageTooShort as ex:
            _LOGGER.debug("Ignoring short frame: %s", bytes(ex.bytes_recvd).hex())
            return
        except LFSmartMessageError as ex:
            _LOGGER.warning("%s: %s", ex.message, bytes(ex.bytes_recvd).hex())
            return

        if not self.connected:
            return

        self._engine.process(reading)
        if self._notify_callback:
            self._notify_callback()

    # BLE callbacks

    def _detection_callback(
        self, device: BLEDevice, advertisement_data: AdvertisementData
    ) -> None:
        name = advertisement_data.local_name or device.name
        self.post_event(DeviceDiscovered(name, device.address, device))

    def _notification_handler(
        self, sender: BleakGATTCharacteristic, data: bytearray
    ) -> None:
        self.post_event(CharacteristicUpdated(sender.uuid, bytes(data), self._clock()))

    def device_disconnected_handler(
        self,
        client: BleakClient | None = None,  # pylint: disable=unused-argument
    ) -> None:
        """Handle device disconnection."""

        _LOGGER.debug(
            "Scale with address %s disconnected through disconnect handler",
            self.mac,
        )
        self.post_event(Disconnected(self._link.address))

    # Commands

    def send_command(self, payload: bytes) -> bool:
        """Queue a command for the scale.

        Returns False and drops the command when the scale is not connected
        or the command queue is full.
        """
        if not self._link.can_write:
            _LOGGER.debug(
                "Dropping command %s, scale is %s", payload.hex(), self._link.state
            )
            return False
        try:
            self._queue.put_nowait((self._link.write_char, payload))
        except asyncio.QueueFull:
            _LOGGER.warning("Command queue full, dropping %s", payload.hex())
            return False
        _LOGGER.debug("Added to queue for %s: %s", self._link.write_char, payload.hex())
        return True

    async def async_send_command(self, payload: bytes) -> None:
        """Queue a command, raising LFSmartCommandRejected if it is dropped."""
        if not self.send_command(payload):
            raise LFSmartCommandRejected(
                payload, f"Scale is {self._link.state}, command not sent"
            )

    def tare(self) -> bool:
        """Send zero command to the scale."""
        return self.send_command(encode_zero_command())

    def switch_to_grams(self) -> bool:
        """Switch the scale to grams."""
        return self.send_command(encode_switch_to_grams_command())

    def set_time(self) -> bool:
        """Send set-time command to the scale."""
        return self.send_command(encode_set_time_command())

    def _empty_queue_and_cancel_writer(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        if self.process_queue_task and not self.process_queue_task.done():
            self.process_queue_task.cancel()

    async def async_empty_queue_and_cancel_tasks(self) -> None:
        """Empty the queue and ensure the write task is cancelled and awaited."""

        task_to_await = self.process_queue_task
        self._empty_queue_and_cancel_writer()
        if task_to_await and not task_to_await.done():
            try:
                await task_to_await
            except asyncio.CancelledError:
                _LOGGER.debug("process_queue task was cancelled as expected")
        self.process_queue_task = None

    async def process_queue(self) -> None:
        """Task to write queued commands in the background."""
        try:
            while True:
                char_id, payload = await self._queue.get()
                try:
                    if self._client is None or not self.connected:
                        _LOGGER.debug("Scale not connected, dropping %s", payload.hex())
                        continue
                    await self._client.write_gatt_char(char_id, payload, response=True)
                    self._timestamp_last_command = time.time()
                    _LOGGER.debug("Successfully wrote to %s: %s", char_id, payload.hex())
                    self.post_event(WriteCompleted(char_id, payload))
                finally:
                    self._queue.task_done()
                await asyncio.sleep(self._queue_process_delay)
        except (BleakError, TimeoutError) as ex:
            _LOGGER.warning(
                "Error writing to %s: %s (%s)", self.mac, type(ex).__name__, ex
            )
            self.post_event(Disconnected(self._link.address))
        except Exception:  # pylint: disable=broad-except
            _LOGGER.error("Unexpected error writing to %s", self.mac, exc_info=True)
            self.post_event(Disconnected(self._link.address))
        finally:
            _LOGGER.debug("process_queue for %s is exiting.", self.mac)
