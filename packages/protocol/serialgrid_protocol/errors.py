"""Exception hierarchy for discovery, handshake, and transport failures."""

from __future__ import annotations


class SerialGridError(RuntimeError):
    """Base class for every error raised by this package."""


class NoDevicesError(SerialGridError):
    pass


class PortExhaustedError(SerialGridError):
    def __init__(self, start_port: int, max_port: int) -> None:
        super().__init__(f"Could not bind socket: no free port in {start_port}..{max_port}")
        self.start_port = start_port
        self.max_port = max_port


class HandshakeError(SerialGridError):
    pass


class HandshakeTimeoutError(HandshakeError):
    def __init__(self, timeout_s: float, missing: list[str]) -> None:
        super().__init__(f"Device did not answer within {timeout_s:.1f}s (missing: {', '.join(missing)})")
        self.timeout_s = timeout_s
        self.missing = missing


class ProtocolDecodeError(SerialGridError):
    """Raised when a datagram is not a well-formed OSC message or bundle."""


class ProtocolViolationError(SerialGridError):
    """Raised when a well-formed packet arrives where the protocol forbids it."""


class ChannelError(SerialGridError):
    pass


class ChannelFull(ChannelError):
    pass


class ChannelClosed(ChannelError):
    pass
