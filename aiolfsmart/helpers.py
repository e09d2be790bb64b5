"""Helper functions for one-shot discovery of LFSmart scales."""

import logging

from bleak import BleakClient, BleakScanner, BLEDevice
from bleak.exc import BleakDeviceNotFoundError, BleakError

from .const import (
    CHARACTERISTIC_UUID_NOTIFY,
    CHARACTERISTIC_UUID_WRITE,
    SCALE_NAME_FILTER,
    SERVICE_UUID,
)
from .exceptions import LFSmartDeviceNotFound, LFSmartError, LFSmartUnknownDevice

_LOGGER = logging.getLogger(__name__)


def is_scale_name(name: str | None, name_filter: str = SCALE_NAME_FILTER) -> bool:
    """Return True if an advertised name belongs to the scale (case-sensitive)."""
    return name is not None and name_filter in name


async def find_lfsmart_devices(
    timeout: float = 10.0,
    scanner: BleakScanner | None = None,
    name_filter: str = SCALE_NAME_FILTER,
) -> list[BLEDevice]:
    """Find LFSmart devices by scanning and then filtering by name."""
    _LOGGER.debug("Attempting to find LFSmart devices with timeout: %s s", timeout)

    if scanner is None:
        async with BleakScanner() as new_scanner:
            all_devices = await scan(new_scanner, timeout)
    else:
        all_devices = await scan(scanner, timeout)

    devices = [device for device in all_devices if is_scale_name(device.name, name_filter)]
    for device in devices:
        _LOGGER.debug(
            "Found matching LFSmart device: Name='%s', Address='%s'",
            device.name,
            device.address,
        )
    if not devices:
        _LOGGER.debug("No devices found matching '%s'", name_filter)
    return devices


async def scan(scanner: BleakScanner, timeout: float) -> list[BLEDevice]:
    """Scan for BLE devices and return all discovered ones."""
    devices = await scanner.discover(timeout=timeout)
    for d in devices:
        _LOGGER.debug("Discovered device: Name=%s, Address=%s", d.name, d.address)
    return list(devices)


async def is_lfsmart_scale(address_or_ble_device: str | BLEDevice) -> bool:
    """Check that the device exposes the scale service and characteristics."""

    try:
        async with BleakClient(address_or_ble_device) as client:
            service = client.services.get_service(SERVICE_UUID)
            characteristics = (
                [char.uuid for char in service.characteristics] if service else []
            )
    except BleakDeviceNotFoundError as ex:
        raise LFSmartDeviceNotFound("Device not found") from ex
    except BleakError as ex:
        raise LFSmartError(ex) from ex

    if (
        CHARACTERISTIC_UUID_WRITE in characteristics
        and CHARACTERISTIC_UUID_NOTIFY in characteristics
    ):
        return True

    raise LFSmartUnknownDevice
