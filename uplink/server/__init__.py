"""Icecast server detection, configuration and lifecycle."""

from uplink.server.config_file import ConfigValidation, ServerConfigFile, read_config_file, validate_config_file
from uplink.server.installation import (
    DetectionResult,
    Installation,
    InstallationCandidate,
    candidate_installations,
    detect_installation,
)
from uplink.server.lifecycle import ServerLifecycleManager, ServerState

__all__ = [
    "ConfigValidation",
    "DetectionResult",
    "Installation",
    "InstallationCandidate",
    "ServerConfigFile",
    "ServerLifecycleManager",
    "ServerState",
    "candidate_installations",
    "detect_installation",
    "read_config_file",
    "validate_config_file",
]
