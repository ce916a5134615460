"""
Diagnosis data model.

A Diagnosis is the operator-facing explanation of a failed encoder or server
process: what went wrong, the likely causes and concrete remediation steps.
"""

import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple


class Category(enum.Enum):
    CONNECTION = "connection"
    PORT_CONFLICT = "port_conflict"
    AUTHENTICATION = "authentication"
    MOUNT_POINT = "mount_point"
    DEVICE_NOT_FOUND = "device_not_found"
    DEVICE_BUSY = "device_busy"
    VIRTUAL_AUDIO_DEVICE = "virtual_audio_device"
    OS_AUDIO_SUBSYSTEM = "os_audio_subsystem"
    CODEC_UNAVAILABLE = "codec_unavailable"
    FORMAT_UNSUPPORTED = "format_unsupported"
    RESOURCE_EXHAUSTION = "resource_exhaustion"
    TIMEOUT = "timeout"
    PROCESS_CRASH = "process_crash"
    UNKNOWN = "unknown"


class Severity(enum.Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


# Which process a diagnosis is about
ROLE_ENCODER = "encoder"
ROLE_SERVER = "server"


@dataclass(frozen=True)
class DiagnosisContext:
    """
    Values the engine weaves into titles and remediation text.

    Every field is optional; builders fall back to generic wording (and to
    port 8000) when a value is missing. ``role`` defaults to the encoder.
    """
    stream_id: Optional[str] = None
    stream_name: Optional[str] = None
    device_id: Optional[str] = None
    device_name: Optional[str] = None
    port: Optional[int] = None
    host: Optional[str] = None
    mount: Optional[str] = None
    format_name: Optional[str] = None
    config_path: Optional[str] = None
    executable: Optional[str] = None
    source_limit: Optional[int] = None
    active_sources: Optional[int] = None
    holder: Optional[str] = None
    platform: Optional[str] = None
    role: Optional[str] = None
    log_dir: Optional[str] = None


@dataclass(frozen=True)
class Diagnosis:
    category: Category
    severity: Severity
    title: str
    description: str
    causes: Tuple[str, ...] = ()
    remediation: Tuple[str, ...] = ()
    technical_details: str = ""
    exit_code: Optional[int] = None
    context: DiagnosisContext = field(default_factory=DiagnosisContext)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "causes": list(self.causes),
            "remediation": list(self.remediation),
            "technical_details": self.technical_details,
            "exit_code": self.exit_code,
            "context": {k: v for k, v in asdict(self.context).items() if v is not None},
        }
