"""Error conditions reported by the heart rate session."""


class SessionError(Exception):
    """Base class for heart rate session failures."""


class DiscoveryFailed(SessionError):
    """Device discovery could not be completed."""


class ServiceUnavailable(SessionError):
    """No Heart Rate service handle could be opened (access denied or busy)."""


class CharacteristicMissing(SessionError):
    """Device does not expose the Heart Rate Measurement characteristic."""


class DeviceUnreachable(SessionError):
    """Device rejected or never answered the notification subscription."""


class InvalidFrame(SessionError, ValueError):
    """Notification payload is shorter than its flags require."""


class TransportError(Exception):
    """BLE transport failure that carries no GATT status."""
