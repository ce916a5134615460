"""
Capability Probe.

Discovers the audio capture devices on this host through the platform's own
listing mechanism (ffmpeg's DirectShow and AVFoundation listings, ALSA's
``arecord -l``) and checks whether a device can currently be opened.

Devices are discovered fresh on every call; nothing is cached.
"""

import logging
import re
import subprocess
import sys
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 5.0

# Short capture used to test whether a device can be opened
TEST_CAPTURE_SEC = "0.1"

_DSHOW_LINE = re.compile(r'\[dshow @ [^\]]*\]\s+"([^"]+)"(?:\s+\(([^)]*)\))?')
_AVFOUNDATION_LINE = re.compile(r"\[AVFoundation[^\]]*\]\s+\[(\d+)\]\s+(.+?)\s*$")
_ARECORD_CARD = re.compile(
    r"^card (\d+): (\S+) \[([^\]]*)\], device (\d+): (.*?)\s*\[([^\]]*)\]\s*$"
)
_ARECORD_SUBDEVICES = re.compile(r"^\s*Subdevices: (\d+)/(\d+)")

_BUSY_MARKERS = re.compile(
    r"device or resource busy|device is being used|exclusive access|"
    r"resource temporarily unavailable|access to.*denied",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class AudioDevice:
    id: str
    name: str
    available: bool = True
    backend: str = ""

    def to_dict(self):
        return {"id": self.id, "name": self.name, "available": self.available, "backend": self.backend}


def input_backend(platform: Optional[str] = None) -> str:
    """ffmpeg input format used for capture on the given platform."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return "dshow"
    if platform == "darwin":
        return "avfoundation"
    return "alsa"


def capture_input(backend: str, device_id: str) -> str:
    """Value passed to ffmpeg's -i for a device on the given backend."""
    if backend == "dshow":
        return f"audio={device_id}"
    return device_id


def parse_dshow_devices(output: str) -> List[AudioDevice]:
    """
    Parse ``ffmpeg -list_devices true -f dshow -i dummy`` output.

    Handles both the current one-line form (``"Name" (audio)``) and the older
    sectioned form ("DirectShow audio devices" header followed by names).
    """
    devices = []
    seen = set()
    section = None
    for line in output.splitlines():
        lowered = line.lower()
        if "directshow audio devices" in lowered:
            section = "audio"
            continue
        if "directshow video devices" in lowered:
            section = "video"
            continue
        match = _DSHOW_LINE.search(line)
        if not match:
            continue
        name, kind = match.group(1), match.group(2)
        kind = kind if kind is not None else section
        if not kind or "audio" not in kind or name in seen:
            continue
        seen.add(name)
        devices.append(AudioDevice(id=name, name=name, backend="dshow"))
    return devices


def parse_avfoundation_devices(output: str) -> List[AudioDevice]:
    """Parse ``ffmpeg -f avfoundation -list_devices true -i ""`` output (audio section only)."""
    devices = []
    in_audio = False
    for line in output.splitlines():
        lowered = line.lower()
        if "avfoundation audio devices" in lowered:
            in_audio = True
            continue
        if "avfoundation video devices" in lowered:
            in_audio = False
            continue
        if not in_audio:
            continue
        match = _AVFOUNDATION_LINE.search(line)
        if match:
            devices.append(AudioDevice(
                id=f":{match.group(1)}",
                name=match.group(2),
                backend="avfoundation",
            ))
    return devices


def parse_arecord_devices(output: str) -> List[AudioDevice]:
    """
    Parse ``arecord -l`` output.

    A card whose subdevices are all taken ("Subdevices: 0/1") is reported
    as unavailable.
    """
    entries = []
    for line in output.splitlines():
        card = _ARECORD_CARD.match(line)
        if card:
            entries.append({
                "id": f"hw:{card.group(1)},{card.group(4)}",
                "name": f"{card.group(3)}: {card.group(6)}",
                "available": True,
            })
            continue
        subdevices = _ARECORD_SUBDEVICES.match(line)
        if subdevices and entries:
            entries[-1]["available"] = int(subdevices.group(1)) > 0
    return [AudioDevice(backend="alsa", **entry) for entry in entries]


class CapabilityProbe:
    """
    Enumerates capture devices and checks their accessibility.

    Enumeration failures never raise: a listing that times out or cannot
    run yields an empty list and a warning.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        platform: Optional[str] = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.platform = platform or sys.platform
        self.timeout_sec = timeout_sec
        self.backend = input_backend(self.platform)

    def enumerate(self) -> List[AudioDevice]:
        """List capture devices currently visible to the platform."""
        argv = self._listing_command()
        try:
            output = self._run(argv)
        except subprocess.TimeoutExpired:
            logger.warning(f"Device enumeration timed out after {self.timeout_sec}s ({argv[0]})")
            return []
        except OSError as e:
            logger.warning(f"Device enumeration could not run {argv[0]}: {e}")
            return []

        devices = self._parse(output)
        logger.info(f"Found {len(devices)} audio capture device(s) via {self.backend}")
        return devices

    def find(self, device_id: str) -> Optional[AudioDevice]:
        for device in self.enumerate():
            if device.id == device_id:
                return device
        return None

    def probe_device(self, device_id: str) -> Optional[AudioDevice]:
        """
        Look a device up and test-open it.

        Returns:
            None if the device is not present; otherwise the device with
            ``available`` False when another process holds it
        """
        device = self.find(device_id)
        if device is None or not device.available:
            return device
        if self._held_elsewhere(device_id):
            return AudioDevice(id=device.id, name=device.name, available=False, backend=device.backend)
        return device

    def is_available(self, device_id: str) -> bool:
        """True when the device is present and not held by another process."""
        device = self.probe_device(device_id)
        return device is not None and device.available

    def _held_elsewhere(self, device_id: str) -> bool:
        argv = [
            self.ffmpeg_path, "-hide_banner", "-nostdin",
            "-f", self.backend, "-i", capture_input(self.backend, device_id),
            "-t", TEST_CAPTURE_SEC, "-f", "null", "-",
        ]
        try:
            output = self._run(argv)
        except subprocess.TimeoutExpired:
            # Still capturing at the deadline means it opened
            return False
        except OSError as e:
            logger.warning(f"Device test for {device_id} could not run: {e}")
            return False
        return bool(_BUSY_MARKERS.search(output))

    def _listing_command(self) -> List[str]:
        if self.backend == "dshow":
            return [self.ffmpeg_path, "-hide_banner", "-list_devices", "true", "-f", "dshow", "-i", "dummy"]
        if self.backend == "avfoundation":
            return [self.ffmpeg_path, "-hide_banner", "-f", "avfoundation", "-list_devices", "true", "-i", ""]
        return ["arecord", "-l"]

    def _parse(self, output: str) -> List[AudioDevice]:
        if self.backend == "dshow":
            return parse_dshow_devices(output)
        if self.backend == "avfoundation":
            return parse_avfoundation_devices(output)
        return parse_arecord_devices(output)

    def _run(self, argv: List[str]) -> str:
        # Listing commands exit non-zero by design (dummy input); only output matters
        result = subprocess.run(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=self.timeout_sec,
            check=False,
        )
        return (result.stdout or b"").decode(errors="replace")
