"""
Process table capability.

Name-based process lookup and termination, used where a process is not (or
no longer) tracked by a handle: liveness checks for the Icecast server and
best-effort cleanup of a server started outside this service.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    name: str


def _name_matches(process_name: str, wanted: Iterable[str]) -> bool:
    lowered = process_name.lower()
    if lowered.endswith(".exe"):
        lowered = lowered[:-4]
    return any(lowered == w.lower() for w in wanted)


class ProcessTable(ABC):
    """Abstract view of the host's process table."""

    @abstractmethod
    def list_processes_by_name(self, *names: str) -> List[ProcessInfo]:
        """
        List processes whose executable name matches any of names.

        Matching is case-insensitive and ignores a trailing ".exe".
        """
        raise NotImplementedError

    @abstractmethod
    def is_alive(self, pid: int) -> bool:
        raise NotImplementedError

    @abstractmethod
    def terminate(self, pid: int, forceful: bool = False) -> bool:
        """
        Signal a process to exit.

        Returns:
            True if the signal was delivered (or the process was already gone)
        """
        raise NotImplementedError


class PsutilProcessTable(ProcessTable):
    """ProcessTable backed by psutil (Windows, macOS and Linux)."""

    def list_processes_by_name(self, *names: str) -> List[ProcessInfo]:
        found = []
        for proc in psutil.process_iter(["pid", "name"]):
            name = proc.info.get("name") or ""
            if _name_matches(name, names):
                found.append(ProcessInfo(pid=proc.info["pid"], name=name))
        return found

    def is_alive(self, pid: int) -> bool:
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists, owned by someone else
            return True

    def terminate(self, pid: int, forceful: bool = False) -> bool:
        try:
            proc = psutil.Process(pid)
            if forceful:
                proc.kill()
            else:
                proc.terminate()
            logger.info(f"Sent {'kill' if forceful else 'terminate'} to PID {pid}")
            return True
        except psutil.NoSuchProcess:
            return True
        except psutil.AccessDenied as e:
            logger.warning(f"Not allowed to signal PID {pid}: {e}")
            return False
