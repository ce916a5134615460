"""
Device reservation table.

At most one stream may hold a capture device while it is Starting or
Running. The critical section is the check-and-set itself; nothing slow
(spawning, probing) happens under the lock.
"""

import logging
import threading
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class DeviceReservationTable:
    def __init__(self):
        self._lock = threading.Lock()
        self._holders: Dict[str, str] = {}

    def reserve(self, device_id: str, stream_id: str) -> Optional[str]:
        """
        Reserve a device for a stream.

        Returns:
            None if the device is now reserved for stream_id (including when it
            already was); otherwise the id of the stream holding it
        """
        with self._lock:
            holder = self._holders.get(device_id)
            if holder is not None and holder != stream_id:
                return holder
            self._holders[device_id] = stream_id
        logger.debug(f"Device {device_id!r} reserved by stream {stream_id}")
        return None

    def release(self, device_id: str, stream_id: str) -> bool:
        """Release a reservation; only the holding stream can release it."""
        with self._lock:
            if self._holders.get(device_id) != stream_id:
                return False
            del self._holders[device_id]
        logger.debug(f"Device {device_id!r} released by stream {stream_id}")
        return True

    def holder(self, device_id: str) -> Optional[str]:
        with self._lock:
            return self._holders.get(device_id)

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._holders)
