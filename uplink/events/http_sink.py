"""
HTTP event sink for a dashboard.

Posts every StatusEvent as JSON to the dashboard's ingestion URL. Publishing
only enqueues; one daemon thread does the HTTP work, so a slow dashboard
never holds up a stream or server transition. The sink is transport-only:
it never retries and never raises.
"""

import logging
import queue
import threading
from typing import Optional

import httpx

from uplink.events.publisher import StatusEvent

logger = logging.getLogger(__name__)

_CLOSE = object()


class HttpEventSink:
    """
    StatusPublisher subscriber that forwards events over HTTP.

    Args:
        url: Dashboard event ingestion endpoint
        timeout: Per-request timeout in seconds
        max_pending: Events queued for the sender before new ones are dropped
    """

    def __init__(self, url: str, timeout: float = 0.5, max_pending: int = 256):
        self.url = url
        self.timeout = timeout
        self.dropped = 0

        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=max_pending)
        self._closed = threading.Event()

        # Suppress httpx INFO level logging (one line per event otherwise)
        logging.getLogger("httpx").setLevel(logging.WARNING)

        self._thread = threading.Thread(target=self._run, daemon=True, name="event-sink")
        self._thread.start()

        logger.info(f"HttpEventSink initialized (url={self.url})")

    def __call__(self, event: StatusEvent) -> None:
        if self._closed.is_set():
            return
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            # Keep the oldest events; drop the newest
            self.dropped += 1
            logger.warning(f"[EVENTS] Sender backlog full, dropping {event.kind} for {event.subject}")

    def send_event(self, event: StatusEvent) -> bool:
        """
        Send one event on the calling thread.

        Returns:
            True if the dashboard accepted it, False otherwise
        """
        try:
            response = httpx.post(self.url, json=event.to_dict(), timeout=self.timeout)
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.debug(f"[EVENTS] Failed to send {event.kind} for {event.subject}: {e}")
            return False

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued event has been handed to the dashboard (or failed)."""
        done = threading.Event()

        def waiter() -> None:
            self._queue.join()
            done.set()

        threading.Thread(target=waiter, daemon=True, name="event-sink-flush").start()
        return done.wait(timeout)

    def close(self, timeout: float = 2.0) -> None:
        """Send what is already queued, then stop the sender thread."""
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._queue.put(_CLOSE, timeout=timeout)
        except queue.Full:
            logger.warning("[EVENTS] Sender backlog did not drain before close")
            return
        self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _CLOSE:
                    return
                self.send_event(item)
            finally:
                self._queue.task_done()
