"""BLE Heart Rate sensor session with bounded measurement history."""

from .ble import BleakTransport, BLETransport, DeviceDescriptor, GattStatus
from .config import Config, load_config
from .errors import (
    CharacteristicMissing,
    DeviceUnreachable,
    DiscoveryFailed,
    InvalidFrame,
    ServiceUnavailable,
    SessionError,
    TransportError,
)
from .events import EventChannel, StateChange
from .history import MeasurementHistory
from .log import setup_logging
from .parser import Measurement, parse_body_sensor_location, parse_heart_rate
from .server import SessionServer
from .session import HeartRateSession, SessionState

__all__ = [
    "parse_heart_rate",
    "parse_body_sensor_location",
    "Measurement",
    "MeasurementHistory",
    "HeartRateSession",
    "SessionState",
    "EventChannel",
    "StateChange",
    "BLETransport",
    "BleakTransport",
    "DeviceDescriptor",
    "GattStatus",
    "SessionError",
    "DiscoveryFailed",
    "ServiceUnavailable",
    "CharacteristicMissing",
    "DeviceUnreachable",
    "InvalidFrame",
    "TransportError",
    "Config",
    "load_config",
    "setup_logging",
    "SessionServer",
]
