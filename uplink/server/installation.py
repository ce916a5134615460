"""
Icecast installation detection.

Builds the ordered list of places an Icecast install can live on this
platform and picks the first one whose executable, launcher, configuration
file and log directory all exist.
"""

import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallationCandidate:
    root: str
    executable: str
    launcher: str
    config_path: str
    log_dir: str

    def exists(self) -> bool:
        return os.path.isfile(self.executable)

    def missing(self) -> List[str]:
        """Paths of this layout that are not present."""
        missing = [p for p in (self.executable, self.launcher, self.config_path) if not os.path.isfile(p)]
        if not os.path.isdir(self.log_dir):
            missing.append(self.log_dir)
        return missing


@dataclass(frozen=True)
class Installation:
    root: str
    executable: str
    launcher: str
    config_path: str
    log_dir: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "root": self.root,
            "executable": self.executable,
            "launcher": self.launcher,
            "config_path": self.config_path,
            "log_dir": self.log_dir,
        }


@dataclass(frozen=True)
class DetectionResult:
    installation: Optional[Installation]
    searched: Tuple[str, ...]
    problems: Tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.installation is not None


def _windows_layout(root: str) -> InstallationCandidate:
    return InstallationCandidate(
        root=root,
        executable=os.path.join(root, "bin", "icecast.exe"),
        launcher=os.path.join(root, "icecast.bat"),
        config_path=os.path.join(root, "icecast.xml"),
        log_dir=os.path.join(root, "logs"),
    )


def _unix_layout(executable: str, config_path: str, log_dir: str) -> InstallationCandidate:
    return InstallationCandidate(
        root=os.path.dirname(os.path.dirname(executable)),
        executable=executable,
        launcher=executable,
        config_path=config_path,
        log_dir=log_dir,
    )


def _config_beside(executable: str) -> str:
    """icecast.xml next to an explicitly configured executable."""
    exe_dir = os.path.dirname(os.path.abspath(executable))
    parent = os.path.dirname(exe_dir)
    for directory in (parent, os.path.join(parent, "etc"), os.path.join(parent, "conf"), exe_dir):
        path = os.path.join(directory, "icecast.xml")
        if os.path.isfile(path):
            return path
    return os.path.join(parent, "icecast.xml")


def _standard_candidates(platform: str, environ: Mapping[str, str]) -> List[InstallationCandidate]:
    if platform.startswith("win"):
        bases = [environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)"),
                 environ.get("ProgramFiles", r"C:\Program Files")]
        roots = [os.path.join(base, name) for base in bases for name in ("Icecast", "Icecast2")]
        roots.append(r"C:\Icecast")
        return [_windows_layout(root) for root in roots]

    if platform == "darwin":
        return [
            _unix_layout(f"{prefix}/bin/icecast", f"{prefix}/etc/icecast.xml", f"{prefix}/var/log/icecast")
            for prefix in ("/opt/homebrew", "/usr/local")
        ]

    return [
        _unix_layout("/usr/bin/icecast2", "/etc/icecast2/icecast.xml", "/var/log/icecast2"),
        _unix_layout("/usr/bin/icecast", "/etc/icecast.xml", "/var/log/icecast"),
        _unix_layout("/usr/local/bin/icecast", "/usr/local/etc/icecast.xml", "/usr/local/var/log/icecast"),
        _unix_layout("/opt/icecast/bin/icecast", "/opt/icecast/etc/icecast.xml", "/opt/icecast/logs"),
    ]


def candidate_installations(
    platform: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    root: Optional[str] = None,
    executable: Optional[str] = None,
    config_path: Optional[str] = None,
    log_dir: Optional[str] = None,
) -> List[InstallationCandidate]:
    """
    Ordered candidate layouts: explicit paths, explicit root, then standard locations.

    Args:
        platform: sys.platform-style name (defaults to the running platform)
        environ: Environment used for Windows program directories
        root: Explicit installation root (platform layout applied)
        executable, config_path, log_dir: Explicit paths, highest priority
    """
    platform = platform or sys.platform
    environ = os.environ if environ is None else environ
    windows = platform.startswith("win")
    candidates: List[InstallationCandidate] = []

    if executable:
        config = config_path or _config_beside(executable)
        launcher = executable
        if windows:
            bat = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(executable))), "icecast.bat")
            launcher = bat if os.path.isfile(bat) else executable
        candidates.append(InstallationCandidate(
            root=os.path.dirname(config),
            executable=executable,
            launcher=launcher,
            config_path=config,
            log_dir=log_dir or os.path.join(os.path.dirname(config), "logs"),
        ))

    if root:
        if windows:
            candidates.append(_windows_layout(root))
        else:
            candidates.append(InstallationCandidate(
                root=root,
                executable=os.path.join(root, "bin", "icecast"),
                launcher=os.path.join(root, "bin", "icecast"),
                config_path=config_path or os.path.join(root, "etc", "icecast.xml"),
                log_dir=log_dir or os.path.join(root, "logs"),
            ))

    candidates.extend(_standard_candidates(platform, environ))
    return candidates


def detect_installation(candidates: Sequence[InstallationCandidate]) -> DetectionResult:
    """
    Return the first complete installation among candidates.

    A candidate whose executable does not exist is skipped; one that exists
    but misses a required file or directory is recorded as a problem and the
    search continues.
    """
    searched: List[str] = []
    problems: List[str] = []
    for candidate in candidates:
        searched.append(candidate.executable)
        if not candidate.exists():
            continue
        missing = candidate.missing()
        if missing:
            problems.append(f"{candidate.root}: missing {', '.join(missing)}")
            logger.warning(f"Icecast found at {candidate.executable} but incomplete: missing {', '.join(missing)}")
            continue
        installation = Installation(
            root=candidate.root,
            executable=candidate.executable,
            launcher=candidate.launcher,
            config_path=candidate.config_path,
            log_dir=candidate.log_dir,
        )
        logger.info(f"Icecast installation found at {installation.executable}")
        return DetectionResult(installation, tuple(searched), tuple(problems))

    logger.warning(f"No Icecast installation found (searched {len(searched)} location(s))")
    return DetectionResult(None, tuple(searched), tuple(problems))
