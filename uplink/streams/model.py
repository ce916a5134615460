"""
Stream data model: states, audio formats, configuration and the live record.
"""

import enum
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from uplink.diagnosis.model import Diagnosis
from uplink.errors import StreamConfigError


class StreamState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


# States from which start() may be requested
STARTABLE_STATES = frozenset({StreamState.IDLE, StreamState.STOPPED, StreamState.FAILED})

# States in which the stream holds its device and may own a process
LIVE_STATES = frozenset({StreamState.STARTING, StreamState.RUNNING, StreamState.STOPPING})

LEGAL_TRANSITIONS = {
    StreamState.IDLE: frozenset({StreamState.STARTING, StreamState.FAILED}),
    StreamState.STOPPED: frozenset({StreamState.STARTING, StreamState.FAILED}),
    StreamState.FAILED: frozenset({StreamState.STARTING, StreamState.FAILED, StreamState.STOPPED}),
    StreamState.STARTING: frozenset({StreamState.RUNNING, StreamState.FAILED, StreamState.STOPPING}),
    StreamState.RUNNING: frozenset({StreamState.STOPPING, StreamState.FAILED}),
    StreamState.STOPPING: frozenset({StreamState.STOPPED}),
}


@dataclass(frozen=True)
class AudioFormat:
    name: str
    codec: str
    container: str
    content_type: str


AUDIO_FORMATS: Dict[str, AudioFormat] = {
    "mp3": AudioFormat("mp3", "libmp3lame", "mp3", "audio/mpeg"),
    "aac": AudioFormat("aac", "aac", "adts", "audio/aac"),
    "ogg": AudioFormat("ogg", "libvorbis", "ogg", "audio/ogg"),
}


@dataclass(frozen=True)
class StreamConfig:
    """What an operator asks for when creating a stream."""
    id: str
    device_id: str
    name: Optional[str] = None
    formats: Tuple[str, ...] = ("mp3", "aac", "ogg")
    bitrate_kbps: int = 192
    sample_rate: int = 44100
    channels: int = 2
    mount: Optional[str] = None

    def validate(self) -> None:
        if not self.id or not self.id.strip():
            raise StreamConfigError("Stream id cannot be empty")
        if not self.device_id:
            raise StreamConfigError(f"Stream {self.id}: device id cannot be empty")
        if not self.formats:
            raise StreamConfigError(f"Stream {self.id}: at least one format is required")
        unknown = [f for f in self.formats if f not in AUDIO_FORMATS]
        if unknown:
            raise StreamConfigError(
                f"Stream {self.id}: unknown format(s) {', '.join(unknown)}",
                details={"known": sorted(AUDIO_FORMATS)},
            )
        if self.bitrate_kbps <= 0:
            raise StreamConfigError(f"Stream {self.id}: bitrate must be positive")
        if self.sample_rate <= 0:
            raise StreamConfigError(f"Stream {self.id}: sample rate must be positive")
        if self.channels not in (1, 2):
            raise StreamConfigError(f"Stream {self.id}: channels must be 1 or 2")
        if self.mount is not None and not self.mount.startswith("/"):
            raise StreamConfigError(f"Stream {self.id}: mount must start with '/'")


class Stream:
    """
    Live record of one stream.

    The identifier is fixed for the stream's lifetime. Mutable fields are
    written by StreamSupervisor only, under its state lock; ``lock`` is the
    per-stream sequencing lock held for a whole start/stop/restart.
    """

    def __init__(self, config: StreamConfig):
        self._id = config.id
        self.apply(config)

        self.state = StreamState.IDLE
        self.handle = None
        self.active_format: Optional[AudioFormat] = None
        self.last_diagnosis: Optional[Diagnosis] = None
        self.cancel_event: Optional[threading.Event] = None

        self.created_at = time.time()
        self.state_changed_at = self.created_at
        self.started_at: Optional[float] = None

        self.lock = threading.RLock()

    @property
    def id(self) -> str:
        return self._id

    def apply(self, config: StreamConfig) -> None:
        """Take over the configurable fields of config (same id only)."""
        if config.id != self._id:
            raise StreamConfigError(f"Stream id cannot change ({self._id} -> {config.id})")
        config.validate()
        self.name = (config.name or config.id).strip()
        self.device_id = config.device_id
        self.formats = tuple(config.formats)
        self.bitrate_kbps = config.bitrate_kbps
        self.sample_rate = config.sample_rate
        self.channels = config.channels
        self.mount = config.mount or f"/{config.id}"

    def to_config(self) -> StreamConfig:
        return StreamConfig(
            id=self._id,
            device_id=self.device_id,
            name=self.name,
            formats=self.formats,
            bitrate_kbps=self.bitrate_kbps,
            sample_rate=self.sample_rate,
            channels=self.channels,
            mount=self.mount,
        )

    def to_dict(self) -> Dict[str, Any]:
        uptime = None
        if self.state is StreamState.RUNNING and self.started_at is not None:
            uptime = time.time() - self.started_at
        return {
            "id": self._id,
            "name": self.name,
            "device_id": self.device_id,
            "formats": list(self.formats),
            "format": self.active_format.name if self.active_format else None,
            "bitrate_kbps": self.bitrate_kbps,
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "mount": self.mount,
            "state": self.state.value,
            "pid": getattr(self.handle, "pid", None),
            "uptime_sec": uptime,
            "created_at": self.created_at,
            "state_changed_at": self.state_changed_at,
            "last_diagnosis": self.last_diagnosis.to_dict() if self.last_diagnosis else None,
        }


@dataclass(frozen=True)
class StreamResult:
    """Outcome of a start/stop/restart request."""
    stream_id: str
    state: StreamState
    diagnosis: Optional[Diagnosis] = None
    audio_format: Optional[AudioFormat] = None
    cancelled: bool = False
    attempts: Tuple[str, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return self.state in (StreamState.RUNNING, StreamState.STOPPED, StreamState.IDLE)
