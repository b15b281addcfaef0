"""Configuration file loading and defaults."""

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8765
    broadcast_timeout: float = 0.5


@dataclass
class BLEConfig:
    scan_timeout: float = 5.0
    connect_timeout: float = 10.0


@dataclass
class DeviceConfig:
    address: str = ""
    name_filter: str = ""


@dataclass
class HistoryConfig:
    stacking_count: int = 30


@dataclass
class LogConfig:
    level: str = "INFO"
    file: str = ""


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    ble: BLEConfig = field(default_factory=BLEConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    log: LogConfig = field(default_factory=LogConfig)


def config_paths() -> list[Path]:
    """Candidate config files, highest priority first."""
    return [
        Path("./config.toml"),
        Path.home() / ".config" / "pulse-session" / "config.toml",
    ]


def load_config() -> Config:
    """Load config from the first file found, with defaults for missing values."""
    for path in config_paths():
        if path.exists():
            try:
                with open(path, "rb") as f:
                    data = tomllib.load(f)
                logger.debug("Loaded config from %s", path)
                return _parse_config(data)
            except tomllib.TOMLDecodeError as e:
                logger.warning("Failed to parse config '%s': %s. Using defaults.", path, e)
                return Config()

    return Config()


def _parse_config(data: dict) -> Config:
    """Parse TOML dict into Config dataclass.

    Uses dataclass defaults for missing values; unknown sections are ignored.
    """
    return Config(
        server=ServerConfig(**data.get("server", {})),
        ble=BLEConfig(**data.get("ble", {})),
        device=DeviceConfig(**data.get("device", {})),
        history=HistoryConfig(**data.get("history", {})),
        log=LogConfig(**data.get("log", {})),
    )
