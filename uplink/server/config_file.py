"""
Icecast configuration file (icecast.xml) reading and validation.
"""

import logging
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from uplink.errors import ConfigurationError, ErrorCode

logger = logging.getLogger(__name__)

# Element name (as reported to operators) -> XPath candidates, first hit wins
REQUIRED_ELEMENTS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("hostname", ("./hostname", ".//hostname")),
    ("port", ("./listen-socket/port", ".//listen-socket/port", ".//port")),
    ("source-password", ("./authentication/source-password", ".//source-password")),
    ("admin-password", ("./authentication/admin-password", ".//admin-password")),
)

LOGDIR_PATHS = ("./paths/logdir", ".//logdir")
SOURCE_LIMIT_PATHS = ("./limits/sources", ".//limits/sources")


@dataclass(frozen=True)
class ConfigValidation:
    valid: bool
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


@dataclass(frozen=True)
class ServerConfigFile:
    path: str
    hostname: Optional[str] = None
    port: Optional[int] = None
    source_password: Optional[str] = None
    admin_password: Optional[str] = None
    log_dir: Optional[str] = None
    source_limit: Optional[int] = None


def _find_text(root: ET.Element, paths: Tuple[str, ...]) -> Optional[str]:
    for path in paths:
        element = root.find(path)
        if element is not None:
            text = (element.text or "").strip()
            return text or None
    return None


def _parse(path: str) -> ET.Element:
    if not os.path.isfile(path):
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            ErrorCode.ICECAST_CONFIG_INVALID,
            {"path": path},
        )
    try:
        return ET.parse(path).getroot()
    except ET.ParseError as e:
        raise ConfigurationError(
            f"Configuration file is not well-formed XML: {e}",
            ErrorCode.ICECAST_CONFIG_INVALID,
            {"path": path},
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Configuration file could not be read: {e}",
            ErrorCode.ICECAST_CONFIG_INVALID,
            {"path": path},
        ) from e


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def read_config_file(path: str) -> ServerConfigFile:
    """
    Read the values the supervisor needs from icecast.xml.

    Raises:
        ConfigurationError: If the file is missing or not well-formed
    """
    root = _parse(path)
    values = {name: _find_text(root, paths) for name, paths in REQUIRED_ELEMENTS}
    return ServerConfigFile(
        path=path,
        hostname=values["hostname"],
        port=_to_int(values["port"]),
        source_password=values["source-password"],
        admin_password=values["admin-password"],
        log_dir=_find_text(root, LOGDIR_PATHS),
        source_limit=_to_int(_find_text(root, SOURCE_LIMIT_PATHS)),
    )


def validate_config_file(path: str) -> ConfigValidation:
    """
    Check icecast.xml for every required element.

    Every missing element is reported, not just the first one. An element
    that is present but empty counts as missing.
    """
    try:
        root = _parse(path)
    except ConfigurationError as e:
        return ConfigValidation(valid=False, errors=(e.message,))

    errors: List[str] = []
    for name, paths in REQUIRED_ELEMENTS:
        value = _find_text(root, paths)
        if value is None:
            errors.append(f"Missing required element: <{name}>")
        elif name == "port":
            port = _to_int(value)
            if port is None or not (1 <= port <= 65535):
                errors.append(f"Invalid <port> value: {value}")

    warnings: List[str] = []
    if _find_text(root, LOGDIR_PATHS) is None:
        warnings.append("Missing <paths><logdir>; Icecast will not write access or error logs")

    if errors:
        logger.warning(f"Icecast configuration {path} is invalid: {'; '.join(errors)}")
    return ConfigValidation(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))
