"""Heart rate device session: discovery, binding, subscription and history."""

import asyncio
import enum
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import timedelta

from .ble import (
    BODY_SENSOR_LOCATION_UUID,
    HR_MEASUREMENT_UUID,
    HR_SERVICE_UUID,
    BLETransport,
    CharacteristicHandle,
    DeviceDescriptor,
    GattStatus,
    ServiceHandle,
)
from .errors import (
    CharacteristicMissing,
    DeviceUnreachable,
    DiscoveryFailed,
    InvalidFrame,
    ServiceUnavailable,
    SessionError,
    TransportError,
)
from .events import (
    BODY_SENSOR_LOCATION,
    DATA_POINTS,
    DEVICES,
    IS_INITIALIZED,
    STATE,
    EventChannel,
    StateChange,
)
from .history import DEFAULT_CAPACITY, MeasurementHistory
from .parser import Measurement, parse_body_sensor_location, parse_heart_rate

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    BINDING = "binding"
    SUBSCRIBED = "subscribed"
    FAILED = "failed"
    DISPOSED = "disposed"


class HeartRateSession:
    """Session with a single BLE heart rate sensor.

    Discovers sensors, binds one, and appends every decoded notification to
    a bounded history. Changes meant for a UI are posted to ``events``;
    notifications may arrive on any thread, the channel moves them onto the
    consumer's event loop.
    """

    def __init__(
        self,
        transport: BLETransport,
        stacking_count: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._transport = transport
        self._clock = clock
        self._history = MeasurementHistory(stacking_count)
        self.events = EventChannel()

        self._devices: tuple[DeviceDescriptor, ...] = ()
        self._state = SessionState.UNINITIALIZED
        self._is_initialized = False
        self._body_sensor_location: str | None = None
        self._service: ServiceHandle | None = None
        self._characteristic: CharacteristicHandle | None = None
        self._session_start: float | None = None
        self._bind_lock = asyncio.Lock()
        # Serializes notification delivery with dispose()
        self._delivery_lock = threading.Lock()
        self.error: SessionError | None = None
        self.dropped_frames = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def devices(self) -> list[DeviceDescriptor]:
        """Devices found by the last successful discovery."""
        return list(self._devices)

    @property
    def data_points(self) -> list[Measurement]:
        """Current measurement history, oldest first."""
        return self._history.snapshot()

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def body_sensor_location(self) -> str | None:
        return self._body_sensor_location

    @property
    def stacking_count(self) -> int:
        """History capacity. Lowering it takes effect on the next measurement."""
        return self._history.capacity

    @stacking_count.setter
    def stacking_count(self, value: int) -> None:
        self._history.capacity = value

    @property
    def session_start(self) -> float | None:
        return self._session_start

    def _emit(self, name: str, value: object) -> None:
        self.events.post(StateChange(name, value))

    def _set_state(self, state: SessionState) -> None:
        if self._state is SessionState.DISPOSED:
            return
        logger.debug("Session state: %s -> %s", self._state.value, state.value)
        self._state = state
        self._emit(STATE, state)

    async def discover(self) -> list[DeviceDescriptor]:
        """Find devices advertising the Heart Rate service.

        Replaces the known device list on success.

        Raises:
            DiscoveryFailed: If the transport cannot scan; the previous list is kept
        """
        self.events.attach()
        try:
            devices = await self._transport.find_devices(HR_SERVICE_UUID)
        except TransportError as e:
            raise DiscoveryFailed(f"Device discovery failed: {e}") from e

        self._devices = tuple(devices)
        logger.info("Found %d heart rate device(s)", len(self._devices))
        self._emit(DEVICES, list(self._devices))
        return list(self._devices)

    async def bind(self, device: DeviceDescriptor) -> SessionState:
        """Open the device's Heart Rate service and subscribe to measurements.

        Transport failures do not raise: the session moves to FAILED and the
        condition is kept in ``error``. A failed session may be bound again.

        Returns:
            The state the session ended in (SUBSCRIBED or FAILED)

        Raises:
            RuntimeError: If a bind is already pending, or the session is
                subscribed or disposed
        """
        if self._bind_lock.locked():
            raise RuntimeError("A bind is already in progress")
        if self._state not in (SessionState.UNINITIALIZED, SessionState.FAILED):
            raise RuntimeError(f"Cannot bind a session in state {self._state.value}")

        self.events.attach()
        async with self._bind_lock:
            await self._release_service()
            self.error = None
            self._set_state(SessionState.BINDING)
            logger.info("Binding %s (%s)", device.name, device.id)

            try:
                service = await self._transport.open_service(device.id)
            except TransportError as e:
                logger.debug("open_service raised: %s", e)
                service = None
            if service is None:
                return await self._fail(ServiceUnavailable(f"Access to {device.name} denied or device in use"))
            if self._state is SessionState.DISPOSED:
                await self._transport.close_service(service)
                return self._state

            self._service = service
            self._session_start = self._clock()

            # The profile defines exactly one measurement characteristic
            characteristics = self._transport.get_characteristics(service, HR_MEASUREMENT_UUID)
            if not characteristics:
                return await self._fail(CharacteristicMissing(f"{device.name} has no Heart Rate Measurement characteristic"))
            self._characteristic = characteristics[0]

            self._transport.subscribe(self._characteristic, self._on_notification)
            try:
                status = await self._transport.write_notify_descriptor(self._characteristic, True)
            except TransportError as e:
                logger.debug("write_notify_descriptor raised: %s", e)
                status = GattStatus.UNREACHABLE
            if status is GattStatus.UNREACHABLE:
                return await self._fail(DeviceUnreachable(f"{device.name} is unreachable, out of range or low on battery"))
            if status is not GattStatus.SUCCESS:
                logger.warning("Notify descriptor write returned %s, continuing", status.value)
            if self._state is SessionState.DISPOSED:
                return self._state

            self._set_state(SessionState.SUBSCRIBED)
            self._is_initialized = True
            self._emit(IS_INITIALIZED, True)
            logger.info("Subscribed to heart rate notifications from %s", device.name)
            return self._state

    async def _fail(self, error: SessionError) -> SessionState:
        logger.error("Bind failed: %s", error)
        self.error = error
        await self._release_service()
        self._set_state(SessionState.FAILED)
        return self._state

    async def fetch_body_location(self) -> str | None:
        """Read the optional Body Sensor Location characteristic.

        Every failure is treated as "no location": the previous value is
        kept and None is returned.
        """
        service = self._service
        if service is None or self._bind_lock.locked():
            logger.debug("No usable service handle, skipping body sensor location")
            return None

        try:
            characteristics = self._transport.get_characteristics(service, BODY_SENSOR_LOCATION_UUID)
            if not characteristics:
                logger.debug("Device has no Body Sensor Location characteristic")
                return None
            status, data = await self._transport.read_value(characteristics[0])
        except TransportError as e:
            logger.debug("Body sensor location read failed: %s", e)
            return None
        if status is not GattStatus.SUCCESS:
            logger.debug("Body sensor location read returned %s", status.value)
            return None

        location = parse_body_sensor_location(data)
        if location is None or self._state is SessionState.DISPOSED:
            return None
        self._body_sensor_location = location
        self._emit(BODY_SENSOR_LOCATION, location)
        logger.info("Body sensor location: %s", location)
        return location

    def _on_notification(self, data: bytes, event_time: float) -> None:
        """Decode one notification into the history. Runs on the transport's thread."""
        try:
            decoded = parse_heart_rate(data)
        except InvalidFrame as e:
            with self._delivery_lock:
                self.dropped_frames += 1
            logger.warning("Dropping malformed HR frame %s: %s", data.hex(), e)
            return

        with self._delivery_lock:
            if self._state is SessionState.DISPOSED or self._session_start is None:
                return
            elapsed = max(0.0, event_time - self._session_start)
            measurement = replace(decoded, timestamp=timedelta(seconds=elapsed))
            self._history.push(measurement)

        logger.debug("HR: %s", measurement)
        self._emit(DATA_POINTS, self._history.snapshot())

    async def _release_service(self) -> None:
        """Unregister the notification callback, then close the service."""
        characteristic, service = self._characteristic, self._service
        self._characteristic = None
        self._service = None
        if characteristic is not None:
            self._transport.unsubscribe(characteristic)
        if service is not None:
            await self._transport.close_service(service)

    async def dispose(self) -> None:
        """Release the device. Safe to call repeatedly and from any state."""
        with self._delivery_lock:
            if self._state is SessionState.DISPOSED:
                return
            previous = self._state
            self._state = SessionState.DISPOSED

        logger.debug("Disposing session (was %s)", previous.value)
        await self._release_service()
        if self._is_initialized:
            self._is_initialized = False
            self._emit(IS_INITIALIZED, False)
        self._emit(STATE, SessionState.DISPOSED)
        self.events.close()
