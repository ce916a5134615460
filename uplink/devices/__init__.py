"""Audio capture device discovery and per-device reservations."""

from uplink.devices.probe import AudioDevice, CapabilityProbe
from uplink.devices.reservations import DeviceReservationTable

__all__ = ["AudioDevice", "CapabilityProbe", "DeviceReservationTable"]
