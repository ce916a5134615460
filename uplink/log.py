"""
Logging setup for Uplink.

Console logging always; a rotation-tolerant log file when the path is
writable. Logging must never take the service down.
"""

import logging
import logging.handlers
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def _watched_file_handler(path: str) -> logging.Handler:
    # WatchedFileHandler reopens the file after external rotation
    handler = logging.handlers.WatchedFileHandler(path, mode="a")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    original_emit = handler.emit

    def safe_emit(record):
        try:
            original_emit(record)
        except (IOError, OSError):
            # Write failures degrade silently
            pass

    handler.emit = safe_emit
    return handler


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure root logging for the process.

    Args:
        level: Root log level name
        log_file: Optional path for a WatchedFileHandler; skipped if it cannot be opened
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    # Suppress httpx INFO level logging (one line per dashboard event otherwise)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if not log_file:
        return

    root = logging.getLogger()
    # Prevent duplicate handlers on repeated configuration
    if any(isinstance(h, logging.handlers.WatchedFileHandler)
           and getattr(h, "baseFilename", None) == os.path.abspath(log_file)
           for h in root.handlers):
        return

    try:
        root.addHandler(_watched_file_handler(log_file))
    except OSError as e:
        logger.warning(f"File logging disabled ({log_file}): {e}")
