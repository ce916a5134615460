"""
Error hierarchy for Uplink.

Operational failures of streams never surface as exceptions (they become a
Failed state plus a Diagnosis). Exceptions are reserved for caller errors and
for server lifecycle failures the caller must react to.
"""

import enum
from typing import Any, Dict, Optional


class ErrorCode(enum.Enum):
    """Stable error codes carried by every UplinkError."""
    ICECAST_NOT_INSTALLED = "ICECAST_NOT_INSTALLED"
    ICECAST_NOT_RUNNING = "ICECAST_NOT_RUNNING"
    ICECAST_ALREADY_RUNNING = "ICECAST_ALREADY_RUNNING"
    ICECAST_START_FAILED = "ICECAST_START_FAILED"
    ICECAST_STOP_FAILED = "ICECAST_STOP_FAILED"
    ICECAST_CONFIG_INVALID = "ICECAST_CONFIG_INVALID"
    PROCESS_SPAWN_FAILED = "PROCESS_SPAWN_FAILED"
    PROCESS_KILL_FAILED = "PROCESS_KILL_FAILED"
    STREAM_NOT_FOUND = "STREAM_NOT_FOUND"
    STREAM_ALREADY_EXISTS = "STREAM_ALREADY_EXISTS"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INVALID_STREAM_CONFIG = "INVALID_STREAM_CONFIG"
    CONFIG_INVALID = "CONFIG_INVALID"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class UplinkError(Exception):
    """Base class for all Uplink errors."""

    default_code = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(UplinkError):
    default_code = ErrorCode.CONFIG_INVALID


class ProcessError(UplinkError):
    default_code = ErrorCode.PROCESS_SPAWN_FAILED


class ServerError(UplinkError):
    """
    Server lifecycle failure.

    Carries the Diagnosis produced for the failure when one exists (for
    example when the server exits inside its startup window).
    """

    default_code = ErrorCode.ICECAST_START_FAILED

    def __init__(self, message, code=None, details=None, diagnosis=None):
        super().__init__(message, code, details)
        self.diagnosis = diagnosis

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.diagnosis is not None:
            data["diagnosis"] = self.diagnosis.to_dict()
        return data


class StreamError(UplinkError):
    pass


class StreamNotFoundError(StreamError):
    default_code = ErrorCode.STREAM_NOT_FOUND


class DuplicateStreamError(StreamError):
    default_code = ErrorCode.STREAM_ALREADY_EXISTS


class InvalidTransitionError(StreamError):
    default_code = ErrorCode.INVALID_TRANSITION


class StreamConfigError(StreamError):
    default_code = ErrorCode.INVALID_STREAM_CONFIG
