import asyncio
import itertools
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bleak.exc import BleakError

from aiolfsmart.config import BrewConfig
from aiolfsmart.connection import ConnectionState
from aiolfsmart.const import (
    CHARACTERISTIC_UUID_NOTIFY,
    CHARACTERISTIC_UUID_WRITE,
    CMD_SWITCH_TO_GRAMS,
    CMD_ZERO,
    SERVICE_UUID,
)
from aiolfsmart.exceptions import LFSmartCommandRejected
from aiolfsmart.lfsmartscale import LFSmartScale, _now_millis

ADDRESS = "aa:bb:cc:dd:ee:ff"


def frame(tenths: int) -> bytearray:
    data = bytearray(11)
    data[3] = abs(tenths) & 0xFF
    data[4] = (abs(tenths) >> 8) & 0xFF
    data[5] = 1 if tenths < 0 else 0
    return data


def setup_bleak(scanner_cls, client_cls, characteristics=None):
    scanner = scanner_cls.return_value
    scanner.start = AsyncMock()
    scanner.stop = AsyncMock()

    client = client_cls.return_value
    client.connect = AsyncMock()
    client.disconnect = AsyncMock()
    client.start_notify = AsyncMock()
    client.write_gatt_char = AsyncMock()
    if characteristics is None:
        characteristics = [
            MagicMock(uuid=CHARACTERISTIC_UUID_WRITE, properties=["write"]),
            MagicMock(uuid=CHARACTERISTIC_UUID_NOTIFY, properties=["read", "notify"]),
        ]
    client.services.get_service.return_value = MagicMock(
        characteristics=characteristics
    )
    return scanner, client


def discover(scale, name="LFSmart Scale"):
    device = MagicMock(address=ADDRESS)
    device.name = name
    scale._detection_callback(device, MagicMock(local_name=name))
    return device


def notify(scale, data):
    scale._notification_handler(MagicMock(uuid=CHARACTERISTIC_UUID_NOTIFY), data)


async def connect(scale):
    await scale.start()
    await scale.drain()
    discover(scale)
    await scale.drain()


@pytest.fixture
def bleak_mocks():
    with patch("aiolfsmart.lfsmartscale.BleakScanner") as scanner_cls, patch(
        "aiolfsmart.lfsmartscale.BleakClient"
    ) as client_cls:
        yield scanner_cls, client_cls


def make_scale(**kwargs):
    ticks = itertools.count(1000, 100)
    kwargs.setdefault("queue_process_delay", 0)
    return LFSmartScale(clock=lambda: next(ticks), **kwargs)


class TestLFSmartScaleConnection:
    def test_start_scans(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        scanner, _ = setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale()
            await scale.start()
            await scale.drain()
            state = scale.state
            await scale.stop()
            return state

        assert asyncio.run(run()) is ConnectionState.SCANNING
        scanner.start.assert_awaited_once()
        assert scanner_cls.call_args.kwargs["service_uuids"] == [SERVICE_UUID]

    def test_connects_to_matching_device(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        scanner, client = setup_bleak(scanner_cls, client_cls)
        callback = MagicMock()

        async def run():
            scale = make_scale(notify_callback=callback)
            await connect(scale)
            result = (scale.state, scale.mac, scale.link.write_char)
            await scale.stop()
            return result

        state, mac, write_char = asyncio.run(run())
        assert state is ConnectionState.CONNECTED
        assert mac == ADDRESS.upper()
        assert write_char == CHARACTERISTIC_UUID_WRITE
        scanner.stop.assert_awaited()
        client.connect.assert_awaited_once()
        client.services.get_service.assert_called_with(SERVICE_UUID)
        assert client.start_notify.await_args.args[0] == CHARACTERISTIC_UUID_NOTIFY
        assert callback.called

    def test_ignores_other_devices(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale()
            await scale.start()
            await scale.drain()
            discover(scale, name="Some Speaker")
            await scale.drain()
            state = scale.state
            await scale.stop()
            return state

        assert asyncio.run(run()) is ConnectionState.SCANNING
        client_cls.assert_not_called()

    def test_adapter_unavailable(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        scanner, _ = setup_bleak(scanner_cls, client_cls)
        scanner.start.side_effect = BleakError("Bluetooth is turned off")

        async def run():
            scale = make_scale()
            await scale.start()
            await scale.drain()
            state = scale.state
            await scale.stop()
            return state

        assert asyncio.run(run()) is ConnectionState.DISCONNECTED

    def test_connect_failure_then_find(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        _, client = setup_bleak(scanner_cls, client_cls)
        client.connect.side_effect = BleakError("failed")

        async def run():
            scale = make_scale()
            await connect(scale)
            failed_state = scale.state
            scale.find()
            await scale.drain()
            state = scale.state
            await scale.stop()
            return failed_state, state

        failed_state, state = asyncio.run(run())
        assert failed_state is ConnectionState.DISCONNECTED
        assert state is ConnectionState.SCANNING
        client.disconnect.assert_awaited()

    def test_unexpected_connect_error_then_find(self, bleak_mocks, caplog):
        scanner_cls, client_cls = bleak_mocks
        _, client = setup_bleak(scanner_cls, client_cls)
        client.connect.side_effect = OSError("adapter gone")

        async def run():
            scale = make_scale()
            await connect(scale)
            failed_state = scale.state
            scale.find()
            await scale.drain()
            state = scale.state
            await scale.stop()
            return failed_state, state

        failed_state, state = asyncio.run(run())
        assert failed_state is ConnectionState.DISCONNECTED
        assert state is ConnectionState.SCANNING
        assert "Unexpected error connecting" in caplog.text

    def test_unexpected_subscribe_error(self, bleak_mocks, caplog):
        scanner_cls, client_cls = bleak_mocks
        _, client = setup_bleak(scanner_cls, client_cls)
        client.start_notify.side_effect = OSError("dbus closed")

        async def run():
            scale = make_scale()
            await connect(scale)
            result = (scale.state, scale.tare())
            await scale.stop()
            return result

        state, accepted = asyncio.run(run())
        assert state is ConnectionState.DISCONNECTED
        assert accepted is False
        assert "Unexpected error subscribing" in caplog.text

    def test_default_clock_is_monotonic(self):
        with patch(
            "aiolfsmart.lfsmartscale.time.monotonic_ns", return_value=5_000_000_000
        ):
            assert _now_millis() == 5_000

    def test_missing_write_characteristic(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        setup_bleak(
            scanner_cls,
            client_cls,
            characteristics=[
                MagicMock(uuid=CHARACTERISTIC_UUID_NOTIFY, properties=["notify"])
            ],
        )

        async def run():
            scale = make_scale()
            await connect(scale)
            state = scale.state
            await scale.stop()
            return state

        assert asyncio.run(run()) is ConnectionState.DISCONNECTED

    def test_unexpected_disconnect(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        _, client = setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale()
            await connect(scale)
            scale.device_disconnected_handler(client)
            await scale.drain()
            result = (scale.state, scale.tare(), scale.last_disconnect_time)
            await scale.stop()
            return result

        state, accepted, last_disconnect_time = asyncio.run(run())
        assert state is ConnectionState.DISCONNECTED
        assert accepted is False
        assert last_disconnect_time is not None
        client.disconnect.assert_awaited()


class TestLFSmartScaleTelemetry:
    def test_notification_updates_weight(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale()
            await connect(scale)
            notify(scale, frame(100))
            notify(scale, frame(120))
            await scale.drain()
            result = scale.telemetry
            await scale.stop()
            return result

        telemetry = asyncio.run(run())
        assert telemetry.weight_grams == pytest.approx(12.0)
        # 2 g over 100 ms
        assert telemetry.flow_rate_grams_per_second == pytest.approx(20.0)

    def test_negative_weight(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale()
            await connect(scale)
            notify(scale, frame(-5))
            await scale.drain()
            weight = scale.weight
            await scale.stop()
            return weight

        assert asyncio.run(run()) == pytest.approx(-0.5)

    def test_short_frame_is_dropped(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale()
            await connect(scale)
            notify(scale, frame(183))
            await scale.drain()
            before = scale.telemetry
            notify(scale, bytearray([0x00, 0x00]))
            await scale.drain()
            after = scale.telemetry
            await scale.stop()
            return before, after

        before, after = asyncio.run(run())
        assert after == before
        assert after.weight_grams == pytest.approx(18.3)

    def test_notifications_ignored_when_not_connected(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale()
            await scale.start()
            await scale.drain()
            notify(scale, frame(100))
            await scale.drain()
            weight = scale.weight
            await scale.stop()
            return weight

        assert asyncio.run(run()) == 0.0

    def test_spin_guard_is_configurable(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale(config=BrewConfig(spin_patience=0))
            await connect(scale)
            notify(scale, frame(180))
            notify(scale, frame(0))
            await scale.drain()
            weight = scale.weight
            await scale.stop()
            return weight

        assert asyncio.run(run()) == 0.0

    def test_disconnect_clears_filter_history(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        _, client = setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale()
            await connect(scale)
            notify(scale, frame(3000))
            await scale.drain()
            scale.device_disconnected_handler(client)
            await scale.drain()
            last_known = scale.weight
            scale.find()
            await scale.drain()
            discover(scale)
            await scale.drain()
            notify(scale, frame(0))
            await scale.drain()
            weight = scale.weight
            await scale.stop()
            return last_known, weight

        last_known, weight = asyncio.run(run())
        assert last_known == pytest.approx(300.0)
        # no stale 300 g history to hold the fresh reading against
        assert weight == 0.0


class TestLFSmartScaleCommands:
    def test_commands_rejected_when_disconnected(self):
        async def run():
            scale = make_scale()
            with pytest.raises(LFSmartCommandRejected):
                await scale.async_send_command(CMD_ZERO)
            return scale.tare(), scale.switch_to_grams(), scale.set_time()

        assert asyncio.run(run()) == (False, False, False)

    def test_commands_are_written_in_order(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        _, client = setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale()
            await connect(scale)
            assert scale.switch_to_grams() is True
            assert scale.tare() is True
            await scale.async_send_command(CMD_ZERO)
            await scale._queue.join()
            await scale.stop()

        asyncio.run(run())
        assert [c.args for c in client.write_gatt_char.await_args_list] == [
            (CHARACTERISTIC_UUID_WRITE, CMD_SWITCH_TO_GRAMS),
            (CHARACTERISTIC_UUID_WRITE, CMD_ZERO),
            (CHARACTERISTIC_UUID_WRITE, CMD_ZERO),
        ]
        assert all(
            c.kwargs == {"response": True} for c in client.write_gatt_char.await_args_list
        )

    def test_full_queue_drops_command(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        setup_bleak(scanner_cls, client_cls)

        async def run():
            scale = make_scale(max_queue_size=1)
            await connect(scale)
            # the writer task has not run yet, so the second command does not fit
            first, second = scale.tare(), scale.tare()
            await scale.stop()
            return first, second

        assert asyncio.run(run()) == (True, False)

    def test_write_error_disconnects(self, bleak_mocks):
        scanner_cls, client_cls = bleak_mocks
        _, client = setup_bleak(scanner_cls, client_cls)
        client.write_gatt_char.side_effect = BleakError("write failed")

        async def run():
            scale = make_scale()
            await connect(scale)
            scale.tare()
            await scale._queue.join()
            await asyncio.sleep(0)
            await scale.drain()
            state = scale.state
            await scale.stop()
            return state

        assert asyncio.run(run()) is ConnectionState.DISCONNECTED

    def test_unexpected_write_error_disconnects(self, bleak_mocks, caplog):
        scanner_cls, client_cls = bleak_mocks
        _, client = setup_bleak(scanner_cls, client_cls)
        client.write_gatt_char.side_effect = OSError("dbus closed")

        async def run():
            scale = make_scale()
            await connect(scale)
            scale.tare()
            await scale._queue.join()
            await asyncio.sleep(0)
            await scale.drain()
            result = (scale.state, scale.tare())
            await scale.stop()
            return result

        state, accepted = asyncio.run(run())
        assert state is ConnectionState.DISCONNECTED
        assert accepted is False
        assert "Unexpected error writing" in caplog.text
