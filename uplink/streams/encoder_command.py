"""
Encoder command construction.

Turns (stream, format, server target) into the ffmpeg argument list. The
same inputs always produce the same list.
"""

import sys
from dataclasses import dataclass
from typing import List, Optional

from uplink.devices.probe import capture_input, input_backend
from uplink.streams.model import AudioFormat, Stream

DEFAULT_SOURCE_USER = "source"
DEFAULT_SOURCE_PASSWORD = "hackme"


@dataclass(frozen=True)
class SourceTarget:
    """Where an encoder publishes its audio."""
    host: str = "127.0.0.1"
    port: int = 8000
    password: str = DEFAULT_SOURCE_PASSWORD
    user: str = DEFAULT_SOURCE_USER

    def url(self, mount: str, masked: bool = False) -> str:
        password = "***" if masked else self.password
        return f"icecast://{self.user}:{password}@{self.host}:{self.port}{mount}"


class EncoderCommandBuilder:
    def __init__(self, ffmpeg_path: str = "ffmpeg", platform: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path
        self.backend = input_backend(platform or sys.platform)

    def build(self, stream: Stream, audio_format: AudioFormat, target: SourceTarget) -> List[str]:
        return self._build(stream, audio_format, target.url(stream.mount))

    def describe(self, stream: Stream, audio_format: AudioFormat, target: SourceTarget) -> str:
        """Loggable command line with the source password masked."""
        return " ".join(self._build(stream, audio_format, target.url(stream.mount, masked=True)))

    def _build(self, stream: Stream, audio_format: AudioFormat, url: str) -> List[str]:
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostdin",
            "-loglevel", "info",
            "-f", self.backend,
            "-i", capture_input(self.backend, stream.device_id),
            "-c:a", audio_format.codec,
            "-b:a", f"{stream.bitrate_kbps}k",
            "-ar", str(stream.sample_rate),
            "-ac", str(stream.channels),
            "-content_type", audio_format.content_type,
            "-f", audio_format.container,
            url,
        ]
