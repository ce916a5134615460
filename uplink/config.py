"""
Configuration management for Uplink.

Reads configuration from an optional .env file and UPLINK_* environment
variables, with defaults suitable for a single-host deployment.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Default .env file location
DEFAULT_ENV_FILE = Path("/etc/uplink/uplink.env")
DEFAULT_LOG_FILE = "/var/log/uplink/uplink.log"
DEFAULT_FORMATS = ["mp3", "aac", "ogg"]
KNOWN_FORMATS = ("mp3", "aac", "ogg")

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


def _load_env_file():
    """Load environment variables from .env file if it exists."""
    env_file = os.getenv("UPLINK_ENV_FILE", str(DEFAULT_ENV_FILE))
    env_path = Path(env_file)

    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars


def _parse_formats(formats_str: str) -> List[str]:
    """
    Parse a comma-separated fallback format list.

    Args:
        formats_str: e.g. "mp3,aac,ogg"

    Returns:
        Lower-cased format names in the given order

    Raises:
        ValueError: If the list is empty
    """
    formats = [f.strip().lower() for f in formats_str.split(",") if f.strip()]
    if not formats:
        raise ValueError("Format list cannot be empty")
    return formats


def _get_float(name: str, default: str) -> float:
    value = os.getenv(name, default)
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value} (must be a number)")


def _get_int(name: str, default: str) -> int:
    value = os.getenv(name, default)
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value} (must be an integer)")


def _get_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


@dataclass
class UplinkConfig:
    """Uplink configuration."""

    # Executables and installation overrides
    ffmpeg_path: str = "ffmpeg"
    icecast_root: Optional[str] = None
    icecast_exe: Optional[str] = None
    icecast_config: Optional[str] = None
    icecast_log_dir: Optional[str] = None

    # Where encoders deliver audio
    source_host: str = "127.0.0.1"
    default_port: int = 8000

    # Timing windows (seconds)
    encoder_startup_sec: float = 3.0
    stop_grace_sec: float = 5.0
    restart_settle_sec: float = 1.0
    server_startup_sec: float = 3.0
    probe_timeout_sec: float = 5.0

    device_preflight: bool = True

    # Stream defaults
    default_formats: List[str] = field(default_factory=lambda: list(DEFAULT_FORMATS))
    default_bitrate_kbps: int = 192
    default_sample_rate: int = 44100
    default_channels: int = 2

    # Dashboard event ingestion
    status_url: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = DEFAULT_LOG_FILE

    @classmethod
    def load_config(cls) -> "UplinkConfig":
        """
        Load configuration from environment variables.

        Returns:
            UplinkConfig instance with loaded values

        Raises:
            ValueError: If configuration is invalid
        """
        # Load .env file first (if it exists)
        _load_env_file()

        formats_str = os.getenv("UPLINK_DEFAULT_FORMATS", ",".join(DEFAULT_FORMATS))
        try:
            default_formats = _parse_formats(formats_str)
        except ValueError as e:
            raise ValueError(f"Invalid UPLINK_DEFAULT_FORMATS: {e}")

        log_file = os.getenv("UPLINK_LOG_FILE", DEFAULT_LOG_FILE)
        if log_file == "":
            log_file = None

        config = cls(
            ffmpeg_path=os.getenv("UPLINK_FFMPEG_PATH", "ffmpeg"),
            icecast_root=_get_optional("UPLINK_ICECAST_ROOT"),
            icecast_exe=_get_optional("UPLINK_ICECAST_EXE"),
            icecast_config=_get_optional("UPLINK_ICECAST_CONFIG"),
            icecast_log_dir=_get_optional("UPLINK_ICECAST_LOG_DIR"),
            source_host=os.getenv("UPLINK_SOURCE_HOST", "127.0.0.1"),
            default_port=_get_int("UPLINK_DEFAULT_PORT", "8000"),
            encoder_startup_sec=_get_float("UPLINK_ENCODER_STARTUP_SEC", "3.0"),
            stop_grace_sec=_get_float("UPLINK_STOP_GRACE_SEC", "5.0"),
            restart_settle_sec=_get_float("UPLINK_RESTART_SETTLE_SEC", "1.0"),
            server_startup_sec=_get_float("UPLINK_SERVER_STARTUP_SEC", "3.0"),
            probe_timeout_sec=_get_float("UPLINK_PROBE_TIMEOUT_SEC", "5.0"),
            device_preflight=os.getenv("UPLINK_DEVICE_PREFLIGHT", "1").lower() in _TRUE_VALUES,
            default_formats=default_formats,
            default_bitrate_kbps=_get_int("UPLINK_DEFAULT_BITRATE_KBPS", "192"),
            default_sample_rate=_get_int("UPLINK_DEFAULT_SAMPLE_RATE", "44100"),
            default_channels=_get_int("UPLINK_DEFAULT_CHANNELS", "2"),
            status_url=_get_optional("UPLINK_STATUS_URL"),
            log_level=os.getenv("UPLINK_LOG_LEVEL", "INFO"),
            log_file=log_file,
        )

        # Validate configuration
        config.validate()

        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If any value is out of range
        """
        if not (1 <= self.default_port <= 65535):
            raise ValueError(f"Invalid port: {self.default_port} (must be 1-65535)")

        for name in ("encoder_startup_sec", "stop_grace_sec", "server_startup_sec", "probe_timeout_sec"):
            if getattr(self, name) <= 0:
                raise ValueError(f"Invalid {name}: {getattr(self, name)} (must be > 0)")
        if self.restart_settle_sec < 0:
            raise ValueError(f"Invalid restart_settle_sec: {self.restart_settle_sec} (must be >= 0)")

        if not self.default_formats:
            raise ValueError("Default format list cannot be empty")
        unknown = [f for f in self.default_formats if f not in KNOWN_FORMATS]
        if unknown:
            raise ValueError(f"Unknown formats: {', '.join(unknown)} (known: {', '.join(KNOWN_FORMATS)})")

        if self.default_bitrate_kbps <= 0:
            raise ValueError(f"Invalid bitrate: {self.default_bitrate_kbps} (must be > 0)")
        if self.default_sample_rate <= 0:
            raise ValueError(f"Invalid sample rate: {self.default_sample_rate} (must be > 0)")
        if self.default_channels not in (1, 2):
            raise ValueError(f"Invalid channel count: {self.default_channels} (must be 1 or 2)")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {self.log_level}")
