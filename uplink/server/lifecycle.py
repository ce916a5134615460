"""
Server Lifecycle Manager.

Detects, validates, starts, stops and restarts the local Icecast server and
tracks whether it is running. The running flag is the only state streams
read from here; it is guarded by its own lock, separate from the mutex that
serialises start/stop/restart.
"""

import logging
import sys
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from uplink.config import UplinkConfig
from uplink.diagnosis import ROLE_SERVER, DiagnosisContext, diagnose, diagnose_spawn_failure
from uplink.diagnosis.model import Diagnosis
from uplink.errors import ConfigurationError, ErrorCode, ProcessError, ServerError
from uplink.events.publisher import SERVER_SUBJECT, StatusPublisher
from uplink.process.supervisor import ProcessHandle, ProcessSupervisor, StartupOutcome
from uplink.process.table import ProcessInfo, ProcessTable
from uplink.server.config_file import ConfigValidation, ServerConfigFile, read_config_file, validate_config_file
from uplink.server.installation import Installation, candidate_installations, detect_installation

logger = logging.getLogger(__name__)

SERVER_PROCESS_NAMES = ("icecast", "icecast2")

# Poll interval while waiting for an untracked server to exit
EXTERNAL_POLL_SEC = 0.25
# Wait after a forceful kill of an untracked server
EXTERNAL_KILL_WAIT_SEC = 1.0

RUNNING = "running"
STOPPED = "stopped"


@dataclass(frozen=True)
class ServerState:
    """Point-in-time view of the server."""
    installation: Optional[Installation]
    running: bool
    pid: Optional[int]
    port: int
    config_valid: Optional[bool]
    config_errors: Tuple[str, ...] = ()
    last_diagnosis: Optional[Diagnosis] = None
    searched_paths: Tuple[str, ...] = ()
    external: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "installed": self.installation is not None,
            "installation": self.installation.to_dict() if self.installation else None,
            "running": self.running,
            "pid": self.pid,
            "port": self.port,
            "external": self.external,
            "config_valid": self.config_valid,
            "config_errors": list(self.config_errors),
            "last_diagnosis": self.last_diagnosis.to_dict() if self.last_diagnosis else None,
            "searched_paths": list(self.searched_paths),
        }


class ServerLifecycleManager:
    """
    Owns the Icecast server process.

    start() refuses to run twice; stop() refuses when nothing is running;
    restart() stops if needed and then starts, so it works from any state.
    A server already running when this manager comes up (started by hand or
    by a previous run) is adopted: it counts as running and stop() ends it
    by process name.
    """

    def __init__(
        self,
        process_supervisor: ProcessSupervisor,
        process_table: ProcessTable,
        config: Optional[UplinkConfig] = None,
        publisher: Optional[StatusPublisher] = None,
        platform: Optional[str] = None,
        candidates=None,
    ):
        self._processes = process_supervisor
        self._table = process_table
        self._config = config or UplinkConfig()
        self._publisher = publisher or StatusPublisher()
        self._platform = platform or sys.platform
        self._candidates = candidates

        self._lifecycle_lock = threading.RLock()
        self._flag_lock = threading.Lock()
        self._running = False
        self._handle: Optional[ProcessHandle] = None
        self._stopping = False

        self._installation: Optional[Installation] = None
        self._searched: Tuple[str, ...] = ()
        self._validation: Optional[ConfigValidation] = None
        self._last_diagnosis: Optional[Diagnosis] = None

        self._init_lock = threading.Lock()
        self._initialized = False
        self._shutdown_event = threading.Event()

    # --- queries -------------------------------------------------------------

    def is_running(self) -> bool:
        with self._flag_lock:
            return self._running

    @property
    def installation(self) -> Optional[Installation]:
        return self._installation

    @property
    def handle(self) -> Optional[ProcessHandle]:
        with self._flag_lock:
            return self._handle

    def server_config(self) -> Optional[ServerConfigFile]:
        """Values from icecast.xml, or None if there is no readable file."""
        if self._installation is None:
            return None
        try:
            return read_config_file(self._installation.config_path)
        except ConfigurationError as e:
            logger.warning(f"Could not read Icecast configuration: {e}")
            return None

    @property
    def port(self) -> int:
        server_config = self.server_config()
        if server_config is not None and server_config.port:
            return server_config.port
        return self._config.default_port

    def state(self) -> ServerState:
        with self._flag_lock:
            running = self._running
            handle = self._handle
        validation = self._validation
        return ServerState(
            installation=self._installation,
            running=running,
            pid=handle.pid if handle is not None else None,
            port=self.port,
            config_valid=validation.valid if validation is not None else None,
            config_errors=validation.errors if validation is not None else (),
            last_diagnosis=self._last_diagnosis,
            searched_paths=self._searched,
            external=running and handle is None,
        )

    # --- setup ---------------------------------------------------------------

    def initialize(self) -> ServerState:
        """
        One-time setup: detect the installation, validate its configuration
        and adopt a server that is already running. Repeated or concurrent
        calls return without doing the work again.
        """
        with self._init_lock:
            if self._initialized:
                return self.state()
            self._initialized = True

        self.detect_installation()
        if self._installation is not None:
            self.validate_configuration()
        external = self._find_server_processes()
        if external:
            logger.info(f"Adopting running Icecast server (PID {', '.join(str(p.pid) for p in external)})")
            self._set_running(True)
        return self.state()

    def detect_installation(self) -> ServerState:
        candidates = self._candidates
        if candidates is None:
            candidates = candidate_installations(
                platform=self._platform,
                root=self._config.icecast_root,
                executable=self._config.icecast_exe,
                config_path=self._config.icecast_config,
                log_dir=self._config.icecast_log_dir,
            )
        result = detect_installation(candidates)
        self._installation = result.installation
        self._searched = result.searched
        return self.state()

    def validate_configuration(self) -> ConfigValidation:
        if self._installation is None:
            validation = ConfigValidation(valid=False, errors=("Icecast installation not found",))
        else:
            validation = validate_config_file(self._installation.config_path)
        self._validation = validation
        return validation

    # --- lifecycle -----------------------------------------------------------

    def start(self) -> ServerState:
        """
        Start the server.

        Raises:
            ServerError: ICECAST_NOT_INSTALLED, ICECAST_ALREADY_RUNNING,
                ICECAST_CONFIG_INVALID or ICECAST_START_FAILED (with diagnosis)
        """
        with self._lifecycle_lock:
            self._start_locked()
            return self.state()

    def stop(self) -> ServerState:
        """
        Stop the server, tracked or not.

        Raises:
            ServerError: ICECAST_NOT_RUNNING if nothing is running,
                ICECAST_STOP_FAILED if it survives termination
        """
        with self._lifecycle_lock:
            self._stop_locked()
            return self.state()

    def restart(self) -> ServerState:
        """Stop (if running) then start; valid from any state."""
        with self._lifecycle_lock:
            try:
                self._stop_locked()
            except ServerError as e:
                if e.code is not ErrorCode.ICECAST_NOT_RUNNING:
                    raise
                logger.info("Icecast was not running; starting it")
            self._start_locked()
            return self.state()

    def check_liveness(self) -> bool:
        """
        Re-check that the server process exists; clears the running flag and
        handle when it is gone.
        """
        with self._flag_lock:
            handle = self._handle
            running = self._running
        if not running:
            return False
        alive = handle.is_alive() if handle is not None else bool(self._find_server_processes())
        if not alive:
            logger.warning("Icecast server is no longer running")
            with self._flag_lock:
                if self._handle is handle:
                    self._handle = None
                    self._running = False
            self._publisher.state_changed(SERVER_SUBJECT, RUNNING, STOPPED)
        return alive

    def shutdown(self) -> None:
        """Cut pending waits short; stops the server only if this manager started it."""
        self._shutdown_event.set()
        with self._lifecycle_lock:
            if self.handle is not None:
                try:
                    self._stop_locked()
                except ServerError as e:
                    logger.error(f"Icecast did not stop cleanly: {e}")

    # --- internals -----------------------------------------------------------

    def _start_locked(self) -> None:
        if self._installation is None:
            self.detect_installation()
        if self._installation is None:
            raise ServerError(
                "Icecast installation not found",
                ErrorCode.ICECAST_NOT_INSTALLED,
                {"searched": list(self._searched)},
            )

        if self.is_running():
            raise ServerError("Icecast is already running", ErrorCode.ICECAST_ALREADY_RUNNING)
        external = self._find_server_processes()
        if external:
            self._set_running(True)
            raise ServerError(
                f"Icecast is already running (PID {', '.join(str(p.pid) for p in external)})",
                ErrorCode.ICECAST_ALREADY_RUNNING,
                {"pids": [p.pid for p in external]},
            )

        validation = self.validate_configuration()
        if not validation.valid:
            raise ServerError(
                f"Icecast configuration is invalid: {'; '.join(validation.errors)}",
                ErrorCode.ICECAST_CONFIG_INVALID,
                {"errors": list(validation.errors)},
            )

        installation = self._installation
        context = self._context()
        try:
            handle = self._processes.spawn("icecast", self._launch_command(installation), cwd=installation.root)
        except ProcessError as e:
            self._record_failure(diagnose_spawn_failure(e, context))
            raise ServerError(
                f"Icecast could not be launched: {e}",
                ErrorCode.ICECAST_START_FAILED,
                diagnosis=self._last_diagnosis,
            ) from e

        started_at = time.monotonic()
        outcome = self._processes.wait_for_startup(handle, self._config.server_startup_sec, self._shutdown_event)
        if outcome is StartupOutcome.CANCELLED:
            self._processes.terminate(handle, self._config.stop_grace_sec, self._shutdown_event)
            raise ServerError("Icecast startup cancelled by shutdown", ErrorCode.ICECAST_START_FAILED)

        if outcome is StartupOutcome.EXITED:
            # A daemonizing launcher exits once the server has forked
            remaining = self._config.server_startup_sec - (time.monotonic() - started_at)
            if remaining > 0 and self._shutdown_event.wait(remaining):
                raise ServerError("Icecast startup cancelled by shutdown", ErrorCode.ICECAST_START_FAILED)
            detached = self._find_server_processes()
            if detached:
                self._set_running(True)
                self._last_diagnosis = None
                logger.info(
                    f"Icecast launcher exited (code {handle.returncode}); "
                    f"server running detached (PID {', '.join(str(p.pid) for p in detached)})"
                )
                self._publisher.state_changed(SERVER_SUBJECT, STOPPED, RUNNING)
                return
            self._fail_startup(handle, context)

        if not (handle.is_alive() or self._find_server_processes()):
            self._fail_startup(handle, context)

        with self._flag_lock:
            self._handle = handle
            self._running = True
        handle.add_exit_callback(self._on_server_exit)
        self._last_diagnosis = None
        logger.info(f"Icecast started (PID {handle.pid}, port {self.port})")
        self._publisher.state_changed(SERVER_SUBJECT, STOPPED, RUNNING)

    def _fail_startup(self, handle: ProcessHandle, context: DiagnosisContext) -> None:
        diagnosis = diagnose(handle.output, handle.returncode, context)
        self._record_failure(diagnosis)
        raise ServerError(
            f"Icecast exited during startup: {diagnosis.title}",
            ErrorCode.ICECAST_START_FAILED,
            {"exit_code": handle.returncode},
            diagnosis=diagnosis,
        )

    def _stop_locked(self) -> None:
        handle = self.handle
        external = [] if handle is not None else self._find_server_processes()
        if handle is None and not external:
            self._set_running(False)
            raise ServerError("Icecast is not running", ErrorCode.ICECAST_NOT_RUNNING)

        with self._flag_lock:
            self._stopping = True
        try:
            if handle is not None:
                try:
                    self._processes.terminate(handle, self._config.stop_grace_sec, self._shutdown_event)
                except ProcessError as e:
                    raise ServerError(str(e), ErrorCode.ICECAST_STOP_FAILED, e.details) from e
            else:
                logger.info(f"Stopping untracked Icecast (PID {', '.join(str(p.pid) for p in external)})")
                self._terminate_external(external)

            # Re-verify by name; a launcher wrapper may leave the server behind
            leftovers = self._find_server_processes()
            if leftovers:
                self._terminate_external(leftovers)
                leftovers = self._find_server_processes()
            if leftovers:
                raise ServerError(
                    "Icecast is still running after stop",
                    ErrorCode.ICECAST_STOP_FAILED,
                    {"pids": [p.pid for p in leftovers]},
                )
        finally:
            with self._flag_lock:
                self._stopping = False

        with self._flag_lock:
            self._handle = None
            self._running = False
        logger.info("Icecast stopped")
        self._publisher.state_changed(SERVER_SUBJECT, RUNNING, STOPPED)

    def _terminate_external(self, processes: List[ProcessInfo]) -> None:
        for proc in processes:
            self._table.terminate(proc.pid, forceful=False)

        deadline = time.monotonic() + self._config.stop_grace_sec
        remaining = [p for p in processes if self._table.is_alive(p.pid)]
        while remaining and time.monotonic() < deadline:
            if self._shutdown_event.wait(EXTERNAL_POLL_SEC):
                break
            remaining = [p for p in remaining if self._table.is_alive(p.pid)]

        if remaining:
            logger.warning(f"Icecast did not exit within {self._config.stop_grace_sec}s, killing")
            for proc in remaining:
                self._table.terminate(proc.pid, forceful=True)
            time.sleep(EXTERNAL_KILL_WAIT_SEC)

    def _on_server_exit(self, handle: ProcessHandle) -> None:
        with self._flag_lock:
            if self._handle is not handle:
                return
            self._handle = None
            self._running = False
            intentional = self._stopping
        if intentional:
            return
        diagnosis = diagnose(handle.output, handle.returncode, self._context())
        logger.error(f"Icecast exited unexpectedly (code {handle.returncode}): {diagnosis.title}")
        self._record_failure(diagnosis)
        self._publisher.state_changed(SERVER_SUBJECT, RUNNING, STOPPED)

    def _record_failure(self, diagnosis: Diagnosis) -> None:
        self._last_diagnosis = diagnosis
        self._publisher.diagnosed(SERVER_SUBJECT, diagnosis)

    def _set_running(self, running: bool) -> None:
        with self._flag_lock:
            self._running = running

    def _find_server_processes(self) -> List[ProcessInfo]:
        return self._table.list_processes_by_name(*SERVER_PROCESS_NAMES)

    def _launch_command(self, installation: Installation) -> List[str]:
        command = [installation.launcher, "-c", installation.config_path]
        if installation.launcher.lower().endswith(".bat"):
            return ["cmd.exe", "/c"] + command
        return command

    def _context(self) -> DiagnosisContext:
        return DiagnosisContext(
            port=self.port,
            host=self._config.source_host,
            config_path=self._installation.config_path if self._installation else None,
            executable=self._installation.executable if self._installation else None,
            platform=self._platform,
            role=ROLE_SERVER,
            log_dir=self._installation.log_dir if self._installation else None,
        )
