"""
Process Supervisor.

Spawns child processes (encoders, the Icecast server), drains their output
on a background thread so pipes never fill, reports exit through callbacks,
and stops them gracefully first and forcefully second.
"""

from __future__ import annotations

import enum
import logging
import subprocess
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence

from uplink.errors import ErrorCode, ProcessError

logger = logging.getLogger(__name__)

# Captured output kept per process (tail)
DEFAULT_OUTPUT_LIMIT = 10 * 1024

# Slice used when waiting on several conditions at once
POLL_INTERVAL_SEC = 0.05

# How long a forcefully killed process may take to be reaped
KILL_CONFIRM_SEC = 5.0

# Drain thread join bound once the process has exited
DRAIN_JOIN_SEC = 1.0


class StartupOutcome(enum.Enum):
    CONFIRMED = "confirmed"   # still alive when the startup window elapsed
    EXITED = "exited"         # exited inside the window
    CANCELLED = "cancelled"   # cancel event fired during the window


ExitCallback = Callable[["ProcessHandle"], None]


class ProcessHandle:
    """
    A tracked child process.

    Output (stdout and stderr merged) is captured by a drain thread; a monitor
    thread waits for exit, records the return code, sets ``exited`` and then
    runs the exit callbacks in registration order.
    """

    def __init__(
        self,
        name: str,
        argv: Sequence[str],
        popen: subprocess.Popen,
        output_limit: int = DEFAULT_OUTPUT_LIMIT,
    ):
        self.name = name
        self.argv = list(argv)
        self.pid = popen.pid
        self.started_at = time.time()
        self.returncode: Optional[int] = None
        self.exited = threading.Event()

        self._popen = popen
        self._output_limit = output_limit
        self._output = ""
        self._lock = threading.Lock()
        self._callbacks: List[ExitCallback] = []

        self._drain_thread = threading.Thread(
            target=self._drain, daemon=True, name=f"{name}-output"
        )
        self._monitor_thread = threading.Thread(
            target=self._monitor, daemon=True, name=f"{name}-monitor"
        )

    def start_monitoring(self) -> None:
        self._drain_thread.start()
        self._monitor_thread.start()

    @property
    def output(self) -> str:
        """Tail of the captured output."""
        with self._lock:
            return self._output

    def is_alive(self) -> bool:
        return not self.exited.is_set() and self._popen.poll() is None

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for exit; returns the exit code, or None on timeout."""
        if self.exited.wait(timeout):
            return self.returncode
        return None

    def add_exit_callback(self, callback: ExitCallback) -> None:
        """
        Register a callback run once the process has exited.

        If the process already exited, the callback runs immediately on the
        calling thread.
        """
        with self._lock:
            if not self.exited.is_set():
                self._callbacks.append(callback)
                return
        self._run_callback(callback)

    def terminate(self) -> None:
        try:
            self._popen.terminate()
        except OSError as e:
            # Already reaped
            logger.debug(f"[{self.name}] terminate: {e}")

    def kill(self) -> None:
        try:
            self._popen.kill()
        except OSError as e:
            logger.debug(f"[{self.name}] kill: {e}")

    def _append_output(self, line: str) -> None:
        with self._lock:
            self._output = (self._output + line + "\n")[-self._output_limit:]

    def _drain(self) -> None:
        stream = self._popen.stdout
        if stream is None:
            return
        try:
            for raw in iter(stream.readline, b""):
                line = raw.decode(errors="replace").rstrip()
                if line:
                    self._append_output(line)
                    logger.debug(f"[{self.name}] {line}")
        except (OSError, ValueError):
            # Pipe closed underneath us
            pass
        finally:
            try:
                stream.close()
            except OSError:
                pass

    def _monitor(self) -> None:
        returncode = self._popen.wait()
        # Let the drain thread collect the last lines before reporting exit
        self._drain_thread.join(timeout=DRAIN_JOIN_SEC)
        with self._lock:
            self.returncode = returncode
            callbacks = list(self._callbacks)
            self._callbacks.clear()
            self.exited.set()
        logger.info(f"[{self.name}] exited with code {returncode} (PID {self.pid})")
        for callback in callbacks:
            self._run_callback(callback)

    def _run_callback(self, callback: ExitCallback) -> None:
        try:
            callback(self)
        except Exception as e:
            logger.error(f"[{self.name}] exit callback failed: {e}", exc_info=True)

    def __repr__(self) -> str:
        return f"ProcessHandle(name={self.name!r}, pid={self.pid}, returncode={self.returncode})"


class ProcessSupervisor:
    """
    Spawns and stops child processes.

    Owns every ProcessHandle it creates until the process exits; callers keep
    the handle to observe exit and output.
    """

    def __init__(self, output_limit: int = DEFAULT_OUTPUT_LIMIT):
        self._output_limit = output_limit
        self._handles: Dict[int, ProcessHandle] = {}
        self._lock = threading.Lock()

    def spawn(
        self,
        name: str,
        argv: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        on_exit: Optional[ExitCallback] = None,
    ) -> ProcessHandle:
        """
        Launch a process with output capture.

        Args:
            name: Label used in logs and thread names
            argv: Program and arguments (no shell)
            cwd: Working directory
            env: Environment (inherits when None)
            on_exit: Callback registered before monitoring starts

        Returns:
            ProcessHandle for the running process

        Raises:
            ProcessError: PROCESS_SPAWN_FAILED if the OS refused to launch it
        """
        try:
            popen = subprocess.Popen(
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                cwd=cwd,
                env=env,
            )
        except (OSError, ValueError) as e:
            logger.error(f"[{name}] failed to spawn {argv[0] if argv else '?'}: {e}")
            raise ProcessError(
                f"Failed to spawn {name}: {e}",
                ErrorCode.PROCESS_SPAWN_FAILED,
                {"executable": argv[0] if argv else None},
            ) from e

        handle = ProcessHandle(name, argv, popen, self._output_limit)
        if on_exit is not None:
            handle.add_exit_callback(on_exit)
        handle.add_exit_callback(self._forget)
        with self._lock:
            self._handles[handle.pid] = handle
        handle.start_monitoring()

        logger.info(f"[{name}] started (PID {handle.pid})")
        return handle

    def wait_for_startup(
        self,
        handle: ProcessHandle,
        window_sec: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> StartupOutcome:
        """
        Wait out the startup-confirmation window.

        Returns:
            CONFIRMED if the process is still alive when the window elapses,
            EXITED if it exited first, CANCELLED if cancel_event fired first
        """
        deadline = time.monotonic() + window_sec
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if handle.exited.wait(min(POLL_INTERVAL_SEC, remaining)):
                return StartupOutcome.EXITED
            if cancel_event is not None and cancel_event.is_set():
                return StartupOutcome.CANCELLED

        if not handle.is_alive():
            # Exit raced the end of the window; make sure output and code are in
            handle.wait(DRAIN_JOIN_SEC + 1.0)
            return StartupOutcome.EXITED
        return StartupOutcome.CONFIRMED

    def terminate(
        self,
        handle: ProcessHandle,
        grace_sec: float = 5.0,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[int]:
        """
        Stop a process: graceful signal, bounded wait, then forceful kill.

        Args:
            handle: Process to stop
            grace_sec: How long to wait after the graceful signal
            cancel_event: Cuts the grace window short (shutdown)

        Returns:
            Exit code of the process

        Raises:
            ProcessError: PROCESS_KILL_FAILED if the process survives the kill
        """
        if handle.exited.is_set():
            return handle.returncode

        logger.info(f"[{handle.name}] stopping (PID {handle.pid}, grace {grace_sec}s)")
        handle.terminate()

        if self._wait_for_exit(handle, grace_sec, cancel_event):
            return handle.returncode

        logger.warning(f"[{handle.name}] did not exit within {grace_sec}s, killing")
        handle.kill()
        if handle.wait(KILL_CONFIRM_SEC) is None:
            raise ProcessError(
                f"{handle.name} (PID {handle.pid}) did not exit after kill",
                ErrorCode.PROCESS_KILL_FAILED,
                {"pid": handle.pid},
            )
        return handle.returncode

    def active_handles(self) -> List[ProcessHandle]:
        with self._lock:
            return list(self._handles.values())

    def terminate_all(self, grace_sec: float = 5.0) -> None:
        """Stop every process still tracked (shutdown path)."""
        for handle in self.active_handles():
            try:
                self.terminate(handle, grace_sec)
            except ProcessError as e:
                logger.error(str(e))

    def _wait_for_exit(
        self,
        handle: ProcessHandle,
        timeout: float,
        cancel_event: Optional[threading.Event],
    ) -> bool:
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return handle.exited.is_set()
            if handle.exited.wait(min(POLL_INTERVAL_SEC, remaining)):
                return True
            if cancel_event is not None and cancel_event.is_set():
                return False

    def _forget(self, handle: ProcessHandle) -> None:
        with self._lock:
            self._handles.pop(handle.pid, None)
