"""Shared test fixtures for pulse_session tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, PropertyMock

import pytest

from pulse_session.ble import DeviceDescriptor
from pulse_session.session import HeartRateSession
from tests.helpers import FakeClock, FakeTransport, make_hr_packet


@pytest.fixture
def hr_packet_simple() -> bytes:
    """Simple 8-bit BPM packet (72 bpm)."""
    return make_hr_packet(72)


@pytest.fixture
def hr_packet_16bit() -> bytes:
    """16-bit BPM packet (180 bpm)."""
    return make_hr_packet(180, is_16bit=True)


@pytest.fixture
def hr_packet_full() -> bytes:
    """Packet with every field populated."""
    return make_hr_packet(
        150,
        is_16bit=True,
        sensor_contact=True,
        energy=1500,
        rr_intervals=[800, 850],
    )


@pytest.fixture
def device() -> DeviceDescriptor:
    return DeviceDescriptor("AA:BB:CC:DD:EE:FF", "HR Monitor")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport(body_location=bytes([2]))


@pytest.fixture
def session(transport, clock) -> HeartRateSession:
    return HeartRateSession(transport, clock=clock)


# Mock fixtures for BLE
@pytest.fixture
def mock_bleak_client():
    """Create a mock BleakClient connected to a device with the HR service."""
    from types import SimpleNamespace

    from pulse_session.ble import BODY_SENSOR_LOCATION_UUID, HR_MEASUREMENT_UUID

    client = AsyncMock()
    client.is_connected = True
    client.connect = AsyncMock(return_value=True)
    client.disconnect = AsyncMock()
    client.start_notify = AsyncMock()
    client.stop_notify = AsyncMock()
    client.read_gatt_char = AsyncMock(return_value=bytearray([1]))

    hr_service = SimpleNamespace(
        characteristics=[
            SimpleNamespace(uuid=HR_MEASUREMENT_UUID, handle=12),
            SimpleNamespace(uuid=BODY_SENSOR_LOCATION_UUID, handle=15),
        ]
    )
    mock_services = MagicMock()
    mock_services.get_service = MagicMock(return_value=hr_service)
    type(client).services = PropertyMock(return_value=mock_services)

    return client


@pytest.fixture
def mock_ble_device():
    """Create a mock BLEDevice."""
    device = MagicMock()
    device.address = "AA:BB:CC:DD:EE:FF"
    device.name = "HR Monitor"
    return device


@pytest.fixture
def mock_advertisement_data():
    """Create mock AdvertisementData with HR service UUID."""
    from bleak.uuids import normalize_uuid_str

    adv = MagicMock()
    adv.service_uuids = [normalize_uuid_str("180D")]
    return adv


# Mock fixtures for WebSocket
@pytest.fixture
def mock_websocket():
    """Create a mock WebSocket connection."""
    ws = AsyncMock()
    ws.send = AsyncMock()
    ws.close = AsyncMock()
    return ws


# Config fixtures
@pytest.fixture
def sample_config_dict() -> dict:
    """Sample config dict as would be parsed from TOML."""
    return {
        "server": {
            "host": "0.0.0.0",
            "port": 9000,
            "broadcast_timeout": 1.0,
        },
        "ble": {
            "scan_timeout": 10.0,
            "connect_timeout": 20.0,
        },
        "device": {
            "address": "11:22:33:44:55:66",
            "name_filter": "Polar",
        },
        "history": {
            "stacking_count": 60,
        },
        "log": {
            "level": "DEBUG",
            "file": "session.log",
        },
    }


@pytest.fixture
def partial_config_dict() -> dict:
    """Partial config dict with some values missing."""
    return {
        "server": {"port": 8080},
        "ble": {"scan_timeout": 3.0},
    }
