"""OSC protocol engine for serialosc grid and arc devices."""

from .discovery import DISCOVERY_TIMEOUT_MS, DeviceWatcher, enumerate_devices, watch_device_changes
from .errors import (
    ChannelClosed,
    ChannelFull,
    HandshakeError,
    HandshakeTimeoutError,
    NoDevicesError,
    PortExhaustedError,
    ProtocolDecodeError,
    ProtocolViolationError,
    SerialGridError,
)
from .handshake import HandshakeState, setup
from .models import (
    DeviceAdded,
    DeviceChangeEvent,
    DeviceDescriptor,
    DeviceKind,
    DeviceRemoved,
    EncoderDelta,
    EncoderKey,
    Event,
    GridKey,
    KeyDirection,
    SessionDescriptor,
    Tilt,
    TransportStats,
)
from .session import Session
from .transport import SERIALOSC_PORT, START_PORT, UdpEndpoint

__all__ = [
    "ChannelClosed",
    "ChannelFull",
    "DISCOVERY_TIMEOUT_MS",
    "DeviceAdded",
    "DeviceChangeEvent",
    "DeviceDescriptor",
    "DeviceKind",
    "DeviceRemoved",
    "DeviceWatcher",
    "EncoderDelta",
    "EncoderKey",
    "Event",
    "GridKey",
    "HandshakeError",
    "HandshakeState",
    "HandshakeTimeoutError",
    "KeyDirection",
    "NoDevicesError",
    "PortExhaustedError",
    "ProtocolDecodeError",
    "ProtocolViolationError",
    "SERIALOSC_PORT",
    "START_PORT",
    "SerialGridError",
    "Session",
    "SessionDescriptor",
    "Tilt",
    "TransportStats",
    "UdpEndpoint",
    "enumerate_devices",
    "setup",
    "watch_device_changes",
]
