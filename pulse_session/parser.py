"""Heart rate measurement and body sensor location decoding.

Follows the Bluetooth Heart Rate Profile layouts for the Heart Rate
Measurement (0x2A37) and Body Sensor Location (0x2A38) characteristics.
"""

from dataclasses import dataclass
from datetime import timedelta

from .errors import InvalidFrame

# Heart Rate Measurement flag bits
HR_FORMAT_UINT16 = 0b1
ENERGY_EXPENDED_PRESENT = 0b1000

BODY_SENSOR_LOCATIONS = {
    0: "Other",
    1: "Chest",
    2: "Wrist",
    3: "Finger",
    4: "Hand",
    5: "Ear Lobe",
    6: "Foot",
}


@dataclass(frozen=True)
class Measurement:
    """One decoded heart rate sample."""

    heart_rate_value: int
    expended_energy: int = 0  # Kilojoules, 0 if not reported
    timestamp: timedelta = timedelta(0)  # Elapsed since session start

    @property
    def offset_seconds(self) -> float:
        """Timestamp truncated (not rounded) to tenths of a second."""
        return (self.timestamp // timedelta(milliseconds=100)) / 10.0

    def __str__(self) -> str:
        return f"{self.heart_rate_value} bpm / {self.expended_energy} @ {self.timestamp}"


def parse_heart_rate(data: bytes) -> Measurement:
    """Parse BLE heart rate measurement characteristic data.

    Sensor contact and RR interval fields are not interpreted; any trailing
    bytes they occupy are ignored.

    Args:
        data: Raw bytes from HR measurement characteristic (0x2A37)

    Returns:
        Measurement with an unset (zero) timestamp

    Raises:
        InvalidFrame: If data is empty or shorter than its flags require
    """
    if not data:
        raise InvalidFrame("Empty HR data received")

    flags = data[0]
    is_16_bit = flags & HR_FORMAT_UINT16 == HR_FORMAT_UINT16
    has_energy = flags & ENERGY_EXPENDED_PRESENT == ENERGY_EXPENDED_PRESENT

    min_len = 1 + (2 if is_16_bit else 1)
    if has_energy:
        min_len += 2
    if len(data) < min_len:
        raise InvalidFrame(f"HR data too short: {len(data)} bytes, need {min_len}")

    if is_16_bit:
        heart_rate = int.from_bytes(data[1:3], "little")
        offset = 3
    else:
        heart_rate = data[1]
        offset = 2

    energy = 0
    if has_energy:
        energy = int.from_bytes(data[offset : offset + 2], "little")

    return Measurement(heart_rate_value=heart_rate, expended_energy=energy)


def parse_body_sensor_location(data: bytes) -> str | None:
    """Map a Body Sensor Location value to its label.

    Unknown codes and empty input give None rather than an error.
    """
    if not data:
        return None
    return BODY_SENSOR_LOCATIONS.get(data[0])
