"""Shared test helper functions for pulse_session tests."""

from __future__ import annotations

from types import SimpleNamespace

from pulse_session.ble import (
    BODY_SENSOR_LOCATION_UUID,
    HR_MEASUREMENT_UUID,
    CharacteristicHandle,
    DeviceDescriptor,
    GattStatus,
    ServiceHandle,
)


def make_hr_packet(
    bpm: int,
    *,
    is_16bit: bool = False,
    sensor_contact: bool | None = None,
    energy: int | None = None,
    rr_intervals: list[int] | None = None,
) -> bytes:
    """Build a BLE HR measurement packet.

    Args:
        bpm: Heart rate in BPM
        is_16bit: If True, use 16-bit BPM format
        sensor_contact: None=not supported, True=detected, False=not detected
        energy: Energy expended in kilojoules (if supported)
        rr_intervals: RR intervals in 1/1024 second units

    Returns:
        Raw bytes for HR measurement characteristic
    """
    flags = 0

    if is_16bit:
        flags |= 0b1

    if sensor_contact is not None:
        flags |= 0b100  # Sensor contact supported
        if sensor_contact:
            flags |= 0b10  # Sensor contact detected

    if energy is not None:
        flags |= 0b1000

    if rr_intervals:
        flags |= 0b10000

    data = bytearray([flags])

    if is_16bit:
        data.extend(bpm.to_bytes(2, "little"))
    else:
        data.append(bpm)

    if energy is not None:
        data.extend(energy.to_bytes(2, "little"))

    if rr_intervals:
        for rr in rr_intervals:
            data.extend(rr.to_bytes(2, "little"))

    return bytes(data)


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeTransport:
    """In-memory BLETransport recording every call.

    ``notify(data, event_time)`` delivers a notification the way a BLE stack
    would, to whatever callback is currently subscribed.
    """

    def __init__(
        self,
        devices: list[DeviceDescriptor] | None = None,
        *,
        open_service_ok: bool = True,
        has_measurement: bool = True,
        notify_status: GattStatus = GattStatus.SUCCESS,
        body_location: bytes | None = None,
        read_status: GattStatus = GattStatus.SUCCESS,
    ):
        self.devices = devices if devices is not None else [DeviceDescriptor("AA:BB:CC:DD:EE:FF", "HR Monitor")]
        self.open_service_ok = open_service_ok
        self.has_measurement = has_measurement
        self.notify_status = notify_status
        self.body_location = body_location
        self.read_status = read_status
        self.find_error: Exception | None = None
        self.read_error: Exception | None = None

        self.callback = None
        self.calls: list[str] = []
        self.find_calls: list[str] = []
        self.closed: list[ServiceHandle] = []
        self.notify_writes: list[bool] = []

    async def find_devices(self, service_uuid: str) -> list[DeviceDescriptor]:
        self.find_calls.append(service_uuid)
        if self.find_error is not None:
            raise self.find_error
        return list(self.devices)

    async def open_service(self, device_id: str) -> ServiceHandle | None:
        self.calls.append("open_service")
        if not self.open_service_ok:
            return None
        uuids = []
        if self.has_measurement:
            uuids.append(HR_MEASUREMENT_UUID)
        if self.body_location is not None:
            uuids.append(BODY_SENSOR_LOCATION_UUID)
        chars = [SimpleNamespace(uuid=uuid, handle=i) for i, uuid in enumerate(uuids)]
        return ServiceHandle(device_id=device_id, client=None, service=SimpleNamespace(characteristics=chars))

    def get_characteristics(self, service: ServiceHandle, uuid: str) -> list[CharacteristicHandle]:
        return [CharacteristicHandle(service, c) for c in service.service.characteristics if c.uuid == uuid]

    async def read_value(self, characteristic: CharacteristicHandle) -> tuple[GattStatus, bytes]:
        self.calls.append("read_value")
        if self.read_error is not None:
            raise self.read_error
        if self.read_status is not GattStatus.SUCCESS:
            return self.read_status, b""
        return GattStatus.SUCCESS, self.body_location or b""

    async def write_notify_descriptor(self, characteristic: CharacteristicHandle, enable: bool) -> GattStatus:
        self.calls.append("write_notify_descriptor")
        self.notify_writes.append(enable)
        return self.notify_status

    def subscribe(self, characteristic: CharacteristicHandle, callback) -> None:
        self.calls.append("subscribe")
        self.callback = callback

    def unsubscribe(self, characteristic: CharacteristicHandle) -> None:
        self.calls.append("unsubscribe")
        self.callback = None

    async def close_service(self, service: ServiceHandle) -> None:
        self.calls.append("close_service")
        self.closed.append(service)

    def notify(self, data: bytes, event_time: float) -> bool:
        """Deliver a notification; False if nothing is subscribed."""
        if self.callback is None:
            return False
        self.callback(data, event_time)
        return True

