"""Child process spawning, monitoring and termination."""

from uplink.process.supervisor import ProcessHandle, ProcessSupervisor, StartupOutcome
from uplink.process.table import ProcessInfo, ProcessTable, PsutilProcessTable

__all__ = [
    "ProcessHandle",
    "ProcessInfo",
    "ProcessSupervisor",
    "ProcessTable",
    "PsutilProcessTable",
    "StartupOutcome",
]
