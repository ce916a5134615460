"""Streams: state machine, format fallback and encoder supervision."""

from uplink.streams.encoder_command import EncoderCommandBuilder, SourceTarget
from uplink.streams.model import AUDIO_FORMATS, AudioFormat, Stream, StreamConfig, StreamResult, StreamState
from uplink.streams.supervisor import StreamSupervisor

__all__ = [
    "AUDIO_FORMATS",
    "AudioFormat",
    "EncoderCommandBuilder",
    "SourceTarget",
    "Stream",
    "StreamConfig",
    "StreamResult",
    "StreamState",
    "StreamSupervisor",
]
