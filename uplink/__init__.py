"""
Uplink: supervises an Icecast server and the FFmpeg encoders that feed it.

Each capture device on the host becomes a stream; the supervisor starts an
encoder per stream, falls back through audio formats when one fails, and turns
raw process failures into operator-readable diagnoses.
"""

__version__ = "0.4.0"
