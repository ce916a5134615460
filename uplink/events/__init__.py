"""State-change and diagnosis events for dashboards."""

from uplink.events.http_sink import HttpEventSink
from uplink.events.publisher import SERVER_SUBJECT, StatusEvent, StatusPublisher

__all__ = ["HttpEventSink", "SERVER_SUBJECT", "StatusEvent", "StatusPublisher"]
