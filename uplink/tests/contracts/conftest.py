"""
Shared pytest fixtures for contract tests.
"""
import threading
from unittest.mock import Mock

import pytest

from uplink.config import UplinkConfig
from uplink.events.publisher import StatusPublisher
from uplink.server.lifecycle import ServerLifecycleManager
from uplink.streams.model import StreamConfig
from uplink.streams.supervisor import StreamSupervisor
from uplink.tests.contracts.test_doubles import FakeProcessSupervisor


@pytest.fixture
def fast_config():
    """Configuration with short timing windows and no device pre-check."""
    return UplinkConfig(
        encoder_startup_sec=0.05,
        stop_grace_sec=0.1,
        restart_settle_sec=0.0,
        server_startup_sec=0.05,
        probe_timeout_sec=0.5,
        device_preflight=False,
        log_file=None,
    )


@pytest.fixture
def events():
    """Publisher plus the list of events it delivered."""
    publisher = StatusPublisher()
    received = []
    publisher.subscribe(received.append)
    return publisher, received


@pytest.fixture
def server():
    """Running server with no readable icecast.xml (default port and password)."""
    server = Mock(spec=ServerLifecycleManager)
    server.is_running.return_value = True
    server.server_config.return_value = None
    return server


@pytest.fixture
def make_supervisor(fast_config, events, server):
    """
    Factory for a StreamSupervisor over a FakeProcessSupervisor.

    Returns:
        callable(outcomes=None, default=None, **kwargs) -> (supervisor, processes)
    """
    created = []

    def factory(outcomes=None, default=None, **kwargs):
        processes = FakeProcessSupervisor(outcomes, default)
        kwargs.setdefault("config", fast_config)
        kwargs.setdefault("publisher", events[0])
        kwargs.setdefault("platform", "linux")
        supervisor = StreamSupervisor(processes, server, **kwargs)
        created.append((supervisor, processes))
        return supervisor, processes

    yield factory

    for supervisor, processes in created:
        processes.release_startup.set()
        supervisor.shutdown(timeout=2.0)


@pytest.fixture
def stream_config():
    def factory(stream_id="lobby", device_id="hw:1,0", **kwargs):
        return StreamConfig(id=stream_id, device_id=device_id, **kwargs)
    return factory


@pytest.fixture(autouse=False)  # Request explicitly in tests that must not leak threads
def thread_leak_guard():
    """Fail the test if it leaves non-daemon threads behind."""
    before = set(t.ident for t in threading.enumerate())
    yield
    after = set(t.ident for t in threading.enumerate())
    leaked = [t for t in threading.enumerate() if t.ident in after - before and not t.daemon]
    if leaked:
        thread_info = "\n".join(f"  - {t.name}" for t in leaked)
        assert False, f"Thread leak detected, shutdown incomplete.\nLeaked threads:\n{thread_info}"
