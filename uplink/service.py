# uplink/service.py

import logging
import threading
import time
from typing import Any, Dict, List, Optional

from uplink.config import UplinkConfig
from uplink.devices.probe import AudioDevice, CapabilityProbe
from uplink.errors import ErrorCode, ServerError
from uplink.events.http_sink import HttpEventSink
from uplink.events.publisher import StatusPublisher
from uplink.process.supervisor import ProcessSupervisor
from uplink.process.table import ProcessTable, PsutilProcessTable
from uplink.server.lifecycle import ServerLifecycleManager
from uplink.streams.model import Stream, StreamConfig
from uplink.streams.supervisor import StreamSupervisor

logger = logging.getLogger(__name__)


class UplinkService:
    """
    Composition root: wires the probe, process supervisor, server manager and
    stream supervisor around one configuration and one status publisher.
    """

    def __init__(
        self,
        config: Optional[UplinkConfig] = None,
        process_table: Optional[ProcessTable] = None,
        process_supervisor: Optional[ProcessSupervisor] = None,
        probe: Optional[CapabilityProbe] = None,
        server: Optional[ServerLifecycleManager] = None,
    ):
        self.config = config or UplinkConfig.load_config()
        self.publisher = StatusPublisher()
        self.event_sink: Optional[HttpEventSink] = None
        if self.config.status_url:
            self.event_sink = HttpEventSink(self.config.status_url)
            self.publisher.subscribe(self.event_sink)

        self.processes = process_supervisor or ProcessSupervisor()
        self.process_table = process_table or PsutilProcessTable()
        self.probe = probe or CapabilityProbe(
            ffmpeg_path=self.config.ffmpeg_path,
            timeout_sec=self.config.probe_timeout_sec,
        )
        self.server = server or ServerLifecycleManager(
            self.processes,
            self.process_table,
            config=self.config,
            publisher=self.publisher,
        )
        self.streams = StreamSupervisor(
            self.processes,
            self.server,
            probe=self.probe,
            config=self.config,
            publisher=self.publisher,
        )

        self._init_lock = threading.Lock()
        self._initialized = False
        self._started_server = False
        self._stop_event = threading.Event()

    def initialize(self) -> Dict[str, Any]:
        """
        Single initialisation entry point; safe to call repeatedly and from
        several threads. Only the first call does the work.
        """
        with self._init_lock:
            if self._initialized:
                return self.status()
            self._initialized = True

        logger.info("=== Uplink initializing ===")
        state = self.server.initialize()
        if state.installation is None:
            logger.warning("Icecast is not installed; streams cannot start until it is")
        elif state.config_valid is False:
            logger.warning(f"Icecast configuration has problems: {'; '.join(state.config_errors)}")
        return self.status()

    def ensure_server(self) -> None:
        """Start Icecast unless it is already running (ours or adopted)."""
        if self.server.is_running():
            return
        try:
            self.server.start()
            self._started_server = True
        except ServerError as e:
            if e.code is not ErrorCode.ICECAST_ALREADY_RUNNING:
                raise
            logger.info("Using the Icecast server that is already running")

    def devices(self) -> List[AudioDevice]:
        return self.probe.enumerate()

    def add_stream(self, config: StreamConfig) -> Stream:
        return self.streams.add_stream(config)

    def new_stream_config(self, stream_id: str, device_id: str, name: Optional[str] = None, **overrides: Any) -> StreamConfig:
        """StreamConfig filled in with the configured defaults."""
        values = dict(
            id=stream_id,
            device_id=device_id,
            name=name,
            formats=tuple(self.config.default_formats),
            bitrate_kbps=self.config.default_bitrate_kbps,
            sample_rate=self.config.default_sample_rate,
            channels=self.config.default_channels,
        )
        values.update(overrides)
        return StreamConfig(**values)

    def status(self) -> Dict[str, Any]:
        """Pull-style snapshot of the whole system."""
        return {
            "server": self.server.state().to_dict(),
            "streams": self.streams.snapshot(),
            "stats": self.streams.stats(),
        }

    def run_forever(self) -> None:
        """Block until stop() is called or the process is interrupted."""
        try:
            while not self._stop_event.wait(1.0):
                self.server.check_liveness()
        except KeyboardInterrupt:
            logger.info("Uplink shutdown requested")
        finally:
            self.shutdown()

    def stop(self) -> None:
        self._stop_event.set()

    def shutdown(self) -> None:
        logger.info("Shutting down Uplink...")
        start = time.monotonic()
        self.streams.shutdown(timeout=self.config.stop_grace_sec + 5.0)
        if self._started_server:
            self.server.shutdown()
        if self.event_sink is not None:
            self.event_sink.close()
        logger.info(f"Uplink stopped ({time.monotonic() - start:.1f}s)")
