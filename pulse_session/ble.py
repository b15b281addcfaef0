"""BLE transport for heart rate sensors.

``BLETransport`` is the contract the session depends on; ``BleakTransport``
implements it on top of bleak.
"""

import asyncio
import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any, Protocol

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError
from bleak.uuids import normalize_uuid_str

from .errors import TransportError

logger = logging.getLogger(__name__)

HR_SERVICE_UUID = normalize_uuid_str("180D")
HR_MEASUREMENT_UUID = normalize_uuid_str("2A37")
BODY_SENSOR_LOCATION_UUID = normalize_uuid_str("2A38")

# Called with (payload, monotonic event time in seconds)
NotificationCallback = Callable[[bytes, float], None]


class GattStatus(enum.Enum):
    SUCCESS = "success"
    UNREACHABLE = "unreachable"
    PROTOCOL_ERROR = "protocol_error"


@dataclass(frozen=True)
class DeviceDescriptor:
    """A discovered device: transport identifier plus display name."""

    id: str
    name: str


@dataclass
class ServiceHandle:
    """An open GATT service on a connected device."""

    device_id: str
    client: Any
    service: Any


@dataclass
class CharacteristicHandle:
    """A characteristic within an open service."""

    service: ServiceHandle
    characteristic: Any

    @property
    def key(self) -> tuple[str, int]:
        return self.service.device_id, self.characteristic.handle


class BLETransport(Protocol):
    """Operations the session needs from a BLE stack."""

    async def find_devices(self, service_uuid: str) -> list[DeviceDescriptor]: ...

    async def open_service(self, device_id: str) -> ServiceHandle | None: ...

    def get_characteristics(self, service: ServiceHandle, uuid: str) -> list[CharacteristicHandle]: ...

    async def read_value(self, characteristic: CharacteristicHandle) -> tuple[GattStatus, bytes]: ...

    async def write_notify_descriptor(self, characteristic: CharacteristicHandle, enable: bool) -> GattStatus: ...

    def subscribe(self, characteristic: CharacteristicHandle, callback: NotificationCallback) -> None: ...

    def unsubscribe(self, characteristic: CharacteristicHandle) -> None: ...

    async def close_service(self, service: ServiceHandle) -> None: ...


class BleakTransport:
    """BLETransport backed by bleak.

    bleak writes the notification descriptor and registers its callback in
    one ``start_notify`` call, so ``subscribe`` only records the callback and
    the dispatcher looks it up on every delivery. Once ``unsubscribe`` has
    run, late deliveries are dropped.
    """

    def __init__(
        self,
        scan_timeout: float = 5.0,
        connect_timeout: float = 10.0,
        name_filter: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._scan_timeout = scan_timeout
        self._connect_timeout = connect_timeout
        self._name_filter = name_filter.lower() if name_filter else None
        self._clock = clock
        self._callbacks: dict[tuple[str, int], NotificationCallback] = {}

    async def find_devices(self, service_uuid: str) -> list[DeviceDescriptor]:
        """Scan for devices advertising ``service_uuid``.

        Raises:
            TransportError: If the scanner cannot be started
        """
        devices: dict[str, str] = {}  # Use dict to deduplicate by address

        def detection_callback(device: BLEDevice, adv: AdvertisementData) -> None:
            service_uuids = adv.service_uuids or []
            if service_uuid in service_uuids:
                if device.address in devices:
                    return  # Already seen this device
                name = device.name or "Unknown"
                if self._name_filter is None or self._name_filter in name.lower():
                    logger.debug("Discovered: %s (%s)", name, device.address)
                    devices[device.address] = name

        scanner = BleakScanner(detection_callback=detection_callback)
        try:
            await scanner.start()
            try:
                await asyncio.sleep(self._scan_timeout)
            finally:
                await scanner.stop()
        except (BleakError, OSError) as e:
            raise TransportError(f"Scan failed: {e}") from e

        logger.debug("Scan complete, found %d device(s)", len(devices))
        return [DeviceDescriptor(address, name) for address, name in devices.items()]

    async def open_service(self, device_id: str) -> ServiceHandle | None:
        """Connect and resolve the Heart Rate service, None if unavailable."""
        logger.debug("Connecting to %s...", device_id)
        client = BleakClient(device_id, timeout=self._connect_timeout)
        try:
            await client.connect()
        except (BleakError, TimeoutError, OSError) as e:
            logger.warning("Connection to %s failed: %s", device_id, e)
            return None

        service = client.services.get_service(HR_SERVICE_UUID)
        if service is None:
            logger.warning("%s does not expose the Heart Rate service", device_id)
            await self._disconnect(device_id, client)
            return None
        return ServiceHandle(device_id=device_id, client=client, service=service)

    def get_characteristics(self, service: ServiceHandle, uuid: str) -> list[CharacteristicHandle]:
        return [
            CharacteristicHandle(service, char)
            for char in service.service.characteristics
            if char.uuid.lower() == uuid.lower()
        ]

    async def read_value(self, characteristic: CharacteristicHandle) -> tuple[GattStatus, bytes]:
        client = characteristic.service.client
        if not client.is_connected:
            return GattStatus.UNREACHABLE, b""
        try:
            data = await client.read_gatt_char(characteristic.characteristic)
        except BleakError as e:
            logger.debug("Read failed: %s", e)
            return GattStatus.PROTOCOL_ERROR, b""
        except (TimeoutError, OSError) as e:
            logger.debug("Read failed: %s", e)
            return GattStatus.UNREACHABLE, b""
        return GattStatus.SUCCESS, bytes(data)

    async def write_notify_descriptor(self, characteristic: CharacteristicHandle, enable: bool) -> GattStatus:
        client = characteristic.service.client
        try:
            if enable:
                await client.start_notify(
                    characteristic.characteristic,
                    partial(self._dispatch, characteristic.key),
                )
            else:
                await client.stop_notify(characteristic.characteristic)
        except (BleakError, TimeoutError, OSError) as e:
            if not client.is_connected:
                logger.warning("Device unreachable while writing notify descriptor: %s", e)
                return GattStatus.UNREACHABLE
            logger.warning("Notify descriptor write failed: %s", e)
            return GattStatus.PROTOCOL_ERROR
        return GattStatus.SUCCESS

    def subscribe(self, characteristic: CharacteristicHandle, callback: NotificationCallback) -> None:
        self._callbacks[characteristic.key] = callback

    def unsubscribe(self, characteristic: CharacteristicHandle) -> None:
        self._callbacks.pop(characteristic.key, None)

    async def close_service(self, service: ServiceHandle) -> None:
        await self._disconnect(service.device_id, service.client)

    def _dispatch(self, key: tuple[str, int], _: object, data: bytearray) -> None:
        """Forward a bleak notification to the registered callback."""
        callback = self._callbacks.get(key)
        if callback is None:
            return
        callback(bytes(data), self._clock())

    async def _disconnect(self, device_id: str, client: BleakClient) -> None:
        try:
            if client.is_connected:
                await client.disconnect()
                logger.debug("Disconnected from %s", device_id)
        except (BleakError, OSError) as e:
            logger.debug("Disconnect from %s failed: %s", device_id, e)
