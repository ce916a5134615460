"""
Stream Supervisor.

Drives every stream through its state machine:

    Idle|Stopped|Failed -> Starting -> Running -> Stopping -> Stopped
                                   \\-> Failed   (every format failed)
                 Running -> Failed              (encoder exited on its own)

Starting walks the stream's format list in order, spawning one encoder per
format and keeping the first that survives the startup window. Requests for
one stream are queued and run one at a time, in the order they were made,
on that stream's worker thread; requests for different streams run
concurrently. A stop issued while a stream is Starting cancels the
in-flight attempt before queueing.
"""

import collections
import dataclasses
import logging
import sys
import threading
import time
from concurrent.futures import Future
from functools import partial
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple

from uplink.config import UplinkConfig
from uplink.devices.probe import CapabilityProbe
from uplink.devices.reservations import DeviceReservationTable
from uplink.diagnosis import Category, DiagnosisContext, build_diagnosis, diagnose, diagnose_spawn_failure
from uplink.diagnosis.model import Diagnosis
from uplink.errors import (
    DuplicateStreamError,
    InvalidTransitionError,
    ProcessError,
    StreamConfigError,
    StreamError,
    StreamNotFoundError,
)
from uplink.events.publisher import StatusPublisher
from uplink.process.supervisor import ProcessHandle, ProcessSupervisor, StartupOutcome
from uplink.server.lifecycle import ServerLifecycleManager
from uplink.streams.encoder_command import DEFAULT_SOURCE_PASSWORD, EncoderCommandBuilder, SourceTarget
from uplink.streams.model import (
    AUDIO_FORMATS,
    LEGAL_TRANSITIONS,
    LIVE_STATES,
    STARTABLE_STATES,
    Stream,
    StreamConfig,
    StreamResult,
    StreamState,
)

logger = logging.getLogger(__name__)


class StreamSupervisor:
    """
    Owns the stream registry and every stream's encoder.

    start/stop/restart return a Future resolving to a StreamResult. Caller
    mistakes (unknown id, illegal transition) raise; operational failures
    end in Failed with a Diagnosis attached.
    """

    def __init__(
        self,
        process_supervisor: ProcessSupervisor,
        server: ServerLifecycleManager,
        probe: Optional[CapabilityProbe] = None,
        config: Optional[UplinkConfig] = None,
        publisher: Optional[StatusPublisher] = None,
        reservations: Optional[DeviceReservationTable] = None,
        command_builder: Optional[EncoderCommandBuilder] = None,
        platform: Optional[str] = None,
    ):
        self._processes = process_supervisor
        self._server = server
        self._probe = probe
        self._config = config or UplinkConfig()
        self._publisher = publisher or StatusPublisher()
        self._reservations = reservations or DeviceReservationTable()
        self._platform = platform or sys.platform
        self._commands = command_builder or EncoderCommandBuilder(self._config.ffmpeg_path, self._platform)

        self._streams: Dict[str, Stream] = {}
        self._registry_lock = threading.Lock()
        # Guards the mutable fields of every Stream record
        self._state_lock = threading.Lock()

        self._shutdown_event = threading.Event()
        self._workers: Set[threading.Thread] = set()
        self._workers_lock = threading.Lock()
        # Per-stream FIFO of (op, stream, body, future); guarded by _workers_lock
        self._pending: Dict[str, Deque[Tuple[str, Stream, Callable[[Stream], StreamResult], Future]]] = {}
        self._draining: Set[str] = set()

    # --- registry ------------------------------------------------------------

    def add_stream(self, config: StreamConfig) -> Stream:
        """
        Register a new stream in Idle.

        Raises:
            DuplicateStreamError: id or display name (case-insensitive) taken
            StreamConfigError: invalid configuration
        """
        stream = Stream(config)
        with self._registry_lock:
            if stream.id in self._streams:
                raise DuplicateStreamError(f"Stream {stream.id} already exists")
            self._check_unique_name(stream.name, exclude=None)
            self._streams[stream.id] = stream
        logger.info(f"[{stream.id}] added (device={stream.device_id!r}, formats={','.join(stream.formats)})")
        self._publisher.state_changed(stream.id, None, stream.state.value)
        return stream

    def update_stream(self, stream_id: str, **changes: Any) -> Stream:
        """Change the configuration of a stream that is not live."""
        if "id" in changes:
            raise StreamConfigError("Stream id cannot be changed")
        stream = self.get_stream(stream_id)
        with stream.lock:
            with self._state_lock:
                if stream.state in LIVE_STATES:
                    raise InvalidTransitionError(
                        f"Stream {stream_id} is {stream.state.value}; stop it before changing it"
                    )
            try:
                new_config = dataclasses.replace(stream.to_config(), **changes)
            except TypeError as e:
                raise StreamConfigError(f"Stream {stream_id}: {e}") from e
            new_config.validate()
            with self._registry_lock:
                self._check_unique_name((new_config.name or stream_id).strip(), exclude=stream_id)
                with self._state_lock:
                    stream.apply(new_config)
        logger.info(f"[{stream_id}] updated ({', '.join(sorted(changes))})")
        return stream

    def remove_stream(self, stream_id: str) -> None:
        """Remove a stream that is Idle, Stopped or Failed."""
        stream = self.get_stream(stream_id)
        with stream.lock:
            with self._state_lock:
                if stream.state in LIVE_STATES:
                    raise InvalidTransitionError(
                        f"Stream {stream_id} is {stream.state.value}; stop it before removing it"
                    )
            with self._registry_lock:
                self._streams.pop(stream_id, None)
        logger.info(f"[{stream_id}] removed")

    def get_stream(self, stream_id: str) -> Stream:
        with self._registry_lock:
            stream = self._streams.get(stream_id)
        if stream is None:
            raise StreamNotFoundError(f"Stream {stream_id} not found", details={"stream_id": stream_id})
        return stream

    def list_streams(self) -> List[Stream]:
        with self._registry_lock:
            return list(self._streams.values())

    def state_of(self, stream_id: str) -> StreamState:
        stream = self.get_stream(stream_id)
        with self._state_lock:
            return stream.state

    def snapshot(self) -> List[Dict[str, Any]]:
        """JSON-ready view of every stream for status polling."""
        streams = self.list_streams()
        with self._state_lock:
            return [stream.to_dict() for stream in streams]

    def stats(self) -> Dict[str, int]:
        streams = self.list_streams()
        counts = {state.value: 0 for state in StreamState}
        with self._state_lock:
            for stream in streams:
                counts[stream.state.value] += 1
        counts["total"] = len(streams)
        return counts

    # --- operations ----------------------------------------------------------

    def start(self, stream_id: str) -> "Future[StreamResult]":
        stream = self.get_stream(stream_id)
        return self._submit("start", stream, self._start_sequenced)

    def stop(self, stream_id: str) -> "Future[StreamResult]":
        stream = self.get_stream(stream_id)
        self._cancel_pending_start(stream)
        return self._submit("stop", stream, self._stop_sequenced)

    def restart(self, stream_id: str) -> "Future[StreamResult]":
        stream = self.get_stream(stream_id)
        self._cancel_pending_start(stream)
        return self._submit("restart", stream, self._restart_sequenced)

    def stop_all(self) -> Dict[str, Any]:
        """Stop every live stream and wait for the results."""
        live = [s for s in self.list_streams() if self._state(s) in LIVE_STATES]
        futures = {s.id: self.stop(s.id) for s in live}
        results = self._collect(futures)
        stopped = sum(1 for r in results if r["state"] == StreamState.STOPPED.value)
        return {
            "success": stopped == len(futures),
            "message": f"Stopped {stopped} of {len(futures)} stream(s)",
            "stopped": stopped,
            "failed": len(futures) - stopped,
            "results": results,
        }

    def start_all_stopped(self) -> Dict[str, Any]:
        """Start every stream that is not live and wait for the results."""
        idle = [s for s in self.list_streams() if self._state(s) in STARTABLE_STATES]
        futures = {s.id: self.start(s.id) for s in idle}
        results = self._collect(futures)
        started = sum(1 for r in results if r["state"] == StreamState.RUNNING.value)
        return {
            "success": started == len(futures),
            "message": f"Started {started} of {len(futures)} stream(s)",
            "started": started,
            "failed": len(futures) - started,
            "results": results,
        }

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop everything. Pending waits are cut short and encoders that do not
        exit on the graceful signal are killed without waiting out the grace.
        """
        logger.info("Stream supervisor shutting down")
        self._shutdown_event.set()
        futures = {}
        for stream in self.list_streams():
            self._cancel_pending_start(stream)
            if self._state(stream) in LIVE_STATES:
                futures[stream.id] = self._submit("stop", stream, self._stop_sequenced)
        self._collect(futures, timeout)

        with self._workers_lock:
            workers = list(self._workers)
        for worker in workers:
            worker.join(timeout=timeout)

    # --- sequenced bodies ----------------------------------------------------

    def _start_sequenced(self, stream: Stream) -> StreamResult:
        with stream.lock:
            return self._start_locked(stream)

    def _stop_sequenced(self, stream: Stream) -> StreamResult:
        with stream.lock:
            return self._stop_locked(stream)

    def _restart_sequenced(self, stream: Stream) -> StreamResult:
        with stream.lock:
            self._stop_locked(stream)
            settle = self._config.restart_settle_sec
            if settle > 0 and self._shutdown_event.wait(settle):
                raise StreamError(f"Stream {stream.id}: restart abandoned, supervisor shutting down")
            return self._start_locked(stream)

    def _start_locked(self, stream: Stream) -> StreamResult:
        state = self._state(stream)
        if state not in STARTABLE_STATES:
            raise InvalidTransitionError(
                f"Stream {stream.id} is {state.value}; start is only allowed from idle, stopped or failed",
                details={"stream_id": stream.id, "state": state.value},
            )
        if self._shutdown_event.is_set():
            raise StreamError(f"Stream {stream.id}: supervisor is shutting down")

        holder = self._reservations.reserve(stream.device_id, stream.id)
        if holder is not None:
            diagnosis = build_diagnosis(
                Category.DEVICE_BUSY,
                self._context(stream, holder=self._display_name(holder)),
            )
            logger.warning(f"[{stream.id}] device {stream.device_id!r} already held by stream {holder}")
            return self._fail(stream, diagnosis)

        target = self._source_target()
        diagnosis = self._preflight(stream, target)
        if diagnosis is not None:
            self._reservations.release(stream.device_id, stream.id)
            return self._fail(stream, diagnosis)

        cancel = threading.Event()
        with self._state_lock:
            stream.cancel_event = cancel
        self._transition(stream, StreamState.STARTING)
        return self._run_fallback(stream, target, cancel)

    def _run_fallback(self, stream: Stream, target: SourceTarget, cancel: threading.Event) -> StreamResult:
        last_diagnosis: Optional[Diagnosis] = None
        attempts: List[str] = []

        for format_name in stream.formats:
            if cancel.is_set() or self._shutdown_event.is_set():
                break
            audio_format = AUDIO_FORMATS[format_name]
            attempts.append(format_name)
            context = self._context(stream, format_name=format_name, port=target.port)

            logger.info(f"[{stream.id}] starting encoder ({format_name}): "
                        f"{self._commands.describe(stream, audio_format, target)}")
            try:
                handle = self._processes.spawn(
                    f"encoder-{stream.id}",
                    self._commands.build(stream, audio_format, target),
                    on_exit=partial(self._on_encoder_exit, stream),
                )
            except ProcessError as e:
                last_diagnosis = diagnose_spawn_failure(
                    e, dataclasses.replace(context, executable=self._config.ffmpeg_path)
                )
                logger.warning(f"[{stream.id}] {format_name}: {last_diagnosis.title}")
                continue

            with self._state_lock:
                stream.handle = handle

            outcome = self._processes.wait_for_startup(handle, self._config.encoder_startup_sec, cancel)
            if outcome is StartupOutcome.CONFIRMED:
                with self._state_lock:
                    stream.active_format = audio_format
                    stream.cancel_event = None
                self._transition(stream, StreamState.RUNNING)
                logger.info(f"[{stream.id}] streaming {format_name} to {target.url(stream.mount, masked=True)}")
                return StreamResult(stream.id, StreamState.RUNNING, audio_format=audio_format,
                                    attempts=tuple(attempts))
            if outcome is StartupOutcome.CANCELLED:
                break

            last_diagnosis = diagnose(handle.output, handle.returncode, context)
            with self._state_lock:
                stream.handle = None
            logger.warning(f"[{stream.id}] {format_name} encoder exited with code {handle.returncode}: "
                           f"{last_diagnosis.title}")

        if cancel.is_set() or self._shutdown_event.is_set():
            # The stop request queued behind us ends the stream
            logger.info(f"[{stream.id}] start cancelled")
            return StreamResult(stream.id, StreamState.STARTING, cancelled=True, attempts=tuple(attempts))

        self._reservations.release(stream.device_id, stream.id)
        with self._state_lock:
            stream.cancel_event = None
            stream.active_format = None
        logger.error(f"[{stream.id}] all formats failed ({', '.join(attempts)})")
        self._transition(stream, StreamState.FAILED, last_diagnosis)
        return StreamResult(stream.id, StreamState.FAILED, diagnosis=last_diagnosis, attempts=tuple(attempts))

    def _stop_locked(self, stream: Stream) -> StreamResult:
        with self._state_lock:
            state = stream.state
            handle = stream.handle

        if state in (StreamState.IDLE, StreamState.STOPPED):
            return StreamResult(stream.id, state)
        if state is StreamState.FAILED:
            self._transition(stream, StreamState.STOPPED)
            return StreamResult(stream.id, StreamState.STOPPED, diagnosis=stream.last_diagnosis)

        self._transition(stream, StreamState.STOPPING)
        if handle is not None:
            try:
                self._processes.terminate(handle, self._config.stop_grace_sec, self._shutdown_event)
            except ProcessError as e:
                logger.error(f"[{stream.id}] {e}")

        with self._state_lock:
            stream.handle = None
            stream.active_format = None
            stream.cancel_event = None
            stream.started_at = None
        self._reservations.release(stream.device_id, stream.id)
        self._transition(stream, StreamState.STOPPED)
        return StreamResult(stream.id, StreamState.STOPPED)

    # --- callbacks -----------------------------------------------------------

    def _on_encoder_exit(self, stream: Stream, handle: ProcessHandle) -> None:
        """Exit of an encoder; only an unsolicited exit while Running matters."""
        with stream.lock:
            with self._state_lock:
                if stream.handle is not handle or stream.state is not StreamState.RUNNING:
                    return
                stream.handle = None
                format_name = stream.active_format.name if stream.active_format else None
                stream.active_format = None

            diagnosis = diagnose(
                handle.output,
                handle.returncode,
                self._context(stream, format_name=format_name),
            )
            logger.error(f"[{stream.id}] encoder exited unexpectedly (code {handle.returncode}): {diagnosis.title}")
            self._reservations.release(stream.device_id, stream.id)
            self._transition(stream, StreamState.FAILED, diagnosis)

    # --- helpers -------------------------------------------------------------

    def _preflight(self, stream: Stream, target: SourceTarget) -> Optional[Diagnosis]:
        """Checks that fail a start before any process is spawned."""
        if not self._server.is_running():
            logger.warning(f"[{stream.id}] Icecast is not running")
            return build_diagnosis(Category.CONNECTION, self._context(stream, port=target.port))

        server_config = self._server.server_config()
        limit = server_config.source_limit if server_config is not None else None
        if limit is not None:
            active = sum(
                1 for s in self.list_streams()
                if s.id != stream.id and self._state(s) in (StreamState.STARTING, StreamState.RUNNING)
            )
            if active >= limit:
                logger.warning(f"[{stream.id}] source limit reached ({active}/{limit})")
                return build_diagnosis(
                    Category.MOUNT_POINT,
                    self._context(stream, port=target.port, source_limit=limit, active_sources=active),
                )

        if self._config.device_preflight and self._probe is not None:
            device = self._probe.probe_device(stream.device_id)
            if device is None:
                return build_diagnosis(Category.DEVICE_NOT_FOUND, self._context(stream))
            if not device.available:
                return build_diagnosis(Category.DEVICE_BUSY, self._context(stream, device_name=device.name))
        return None

    def _fail(self, stream: Stream, diagnosis: Diagnosis) -> StreamResult:
        self._transition(stream, StreamState.FAILED, diagnosis)
        return StreamResult(stream.id, StreamState.FAILED, diagnosis=diagnosis)

    def _transition(
        self,
        stream: Stream,
        new_state: StreamState,
        diagnosis: Optional[Diagnosis] = None,
    ) -> None:
        if new_state is StreamState.FAILED and diagnosis is None:
            raise ValueError(f"Stream {stream.id}: Failed requires a diagnosis")
        with self._state_lock:
            old_state = stream.state
            if new_state not in LEGAL_TRANSITIONS[old_state]:
                raise InvalidTransitionError(
                    f"Stream {stream.id}: {old_state.value} -> {new_state.value} is not allowed",
                    details={"stream_id": stream.id, "from": old_state.value, "to": new_state.value},
                )
            stream.state = new_state
            stream.state_changed_at = time.time()
            if new_state is StreamState.RUNNING:
                stream.started_at = stream.state_changed_at
            if diagnosis is not None:
                stream.last_diagnosis = diagnosis

        logger.info(f"[{stream.id}] {old_state.value} -> {new_state.value}")
        # Notify outside lock
        self._publisher.state_changed(stream.id, old_state.value, new_state.value)
        if new_state is StreamState.FAILED:
            self._publisher.diagnosed(stream.id, diagnosis)

    def _state(self, stream: Stream) -> StreamState:
        with self._state_lock:
            return stream.state

    def _cancel_pending_start(self, stream: Stream) -> None:
        with self._state_lock:
            if stream.state is StreamState.STARTING and stream.cancel_event is not None:
                stream.cancel_event.set()

    def _check_unique_name(self, name: str, exclude: Optional[str]) -> None:
        # Caller holds the registry lock
        wanted = name.strip().lower()
        for other in self._streams.values():
            if other.id != exclude and other.name.strip().lower() == wanted:
                raise DuplicateStreamError(f"A stream named {name!r} already exists ({other.id})")

    def _display_name(self, stream_id: str) -> str:
        with self._registry_lock:
            other = self._streams.get(stream_id)
        return other.name if other is not None else stream_id

    def _source_target(self) -> SourceTarget:
        server_config = self._server.server_config()
        port = self._config.default_port
        password = DEFAULT_SOURCE_PASSWORD
        if server_config is not None:
            port = server_config.port or port
            password = server_config.source_password or password
        return SourceTarget(host=self._config.source_host, port=port, password=password)

    def _context(self, stream: Stream, **overrides: Any) -> DiagnosisContext:
        values = dict(
            stream_id=stream.id,
            stream_name=stream.name,
            device_id=stream.device_id,
            host=self._config.source_host,
            mount=stream.mount,
            platform=self._platform,
        )
        values.update(overrides)
        return DiagnosisContext(**values)

    def _submit(self, op: str, stream: Stream, body: Callable[[Stream], StreamResult]) -> "Future[StreamResult]":
        """
        Queue a request behind the stream's earlier ones. Each stream has at
        most one worker, which drains its queue in submission order and exits
        when the queue is empty.
        """
        future: "Future[StreamResult]" = Future()
        with self._workers_lock:
            self._pending.setdefault(stream.id, collections.deque()).append((op, stream, body, future))
            if stream.id in self._draining:
                return future
            self._draining.add(stream.id)
            worker = threading.Thread(
                target=self._drain, args=(stream.id,), daemon=True, name=f"stream-worker-{stream.id}"
            )
            self._workers.add(worker)
            worker.start()
        return future

    def _drain(self, stream_id: str) -> None:
        while True:
            with self._workers_lock:
                queue = self._pending.get(stream_id)
                if not queue:
                    self._pending.pop(stream_id, None)
                    self._draining.discard(stream_id)
                    self._workers.discard(threading.current_thread())
                    return
                op, stream, body, future = queue.popleft()
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(body(stream))
            except Exception as e:
                logger.debug(f"[{stream_id}] {op} raised {type(e).__name__}: {e}")
                future.set_exception(e)

    def _collect(self, futures: Dict[str, "Future[StreamResult]"], timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        results = []
        for stream_id, future in futures.items():
            try:
                result = future.result(timeout=timeout)
                results.append({
                    "id": stream_id,
                    "state": result.state.value,
                    "format": result.audio_format.name if result.audio_format else None,
                    "error": result.diagnosis.title if result.diagnosis else None,
                })
            except Exception as e:
                logger.error(f"[{stream_id}] {e}")
                results.append({"id": stream_id, "state": None, "format": None, "error": str(e)})
        return results
