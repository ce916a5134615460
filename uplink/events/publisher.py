"""
Status Publisher.

Fans stream and server state changes (and the diagnoses that go with
failures) out to subscribers such as a dashboard. Delivery is best-effort and
at-most-once: a subscriber that raises is logged and skipped.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from uplink.diagnosis.model import Diagnosis

logger = logging.getLogger(__name__)

SERVER_SUBJECT = "server"

STATE_CHANGE = "state_change"
DIAGNOSIS = "diagnosis"


@dataclass(frozen=True)
class StatusEvent:
    kind: str
    subject: str
    old_state: Optional[str] = None
    new_state: Optional[str] = None
    diagnosis: Optional[Diagnosis] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind,
            "subject": self.subject,
            "timestamp": self.timestamp,
        }
        if self.kind == STATE_CHANGE:
            data["old_state"] = self.old_state
            data["new_state"] = self.new_state
        if self.diagnosis is not None:
            data["diagnosis"] = self.diagnosis.to_dict()
        return data


Subscriber = Callable[[StatusEvent], None]


class StatusPublisher:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a callable that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: StatusEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        # Deliver outside lock
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.warning(f"Status subscriber {subscriber!r} failed for {event.kind}/{event.subject}: {e}")

    def state_changed(self, subject: str, old_state: Optional[str], new_state: str) -> None:
        self.publish(StatusEvent(STATE_CHANGE, subject, old_state=old_state, new_state=new_state))

    def diagnosed(self, subject: str, diagnosis: Diagnosis) -> None:
        self.publish(StatusEvent(DIAGNOSIS, subject, diagnosis=diagnosis))
