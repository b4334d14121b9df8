"""Per-device setup exchange: point the device at us, then collect its /sys/info answers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from pythonosc.osc_message import OscMessage

from .codec import decode_packet, encode_message, first_int, first_str, int_args, is_bundle
from .errors import HandshakeError, HandshakeTimeoutError, ProtocolViolationError
from .models import DeviceDescriptor, SessionDescriptor
from .transport import START_PORT, UdpEndpoint

_log = logging.getLogger("serialgrid.handshake")


@dataclass
class HandshakeState:
    """Accumulates the six /sys/info answers, which may arrive in any order."""

    port: int | None = None
    host: str | None = None
    id: str | None = None
    prefix: str | None = None
    rotation: int | None = None
    size: tuple[int, int] | None = None

    def complete(self) -> bool:
        return not self.missing()

    def missing(self) -> list[str]:
        return [name for name in _FIELD_NAMES if getattr(self, name) is None]

    def fill(self, message: OscMessage) -> bool:
        """Route one message through the address table. Returns True if a field was set."""
        handler = _FIELDS.get(message.address)
        if handler is None:
            _log.debug("ignoring %s during setup", message.address)
            return False
        if not handler(self, message.params):
            _log.warning("malformed %s answer: %s", message.address, message.params)
            return False
        return True

    def build(self) -> SessionDescriptor:
        if not self.complete():
            raise HandshakeError(f"Setup incomplete, missing: {', '.join(self.missing())}")
        width, height = self.size  # type: ignore[misc]
        return SessionDescriptor(
            port=self.port,  # type: ignore[arg-type]
            host=self.host,  # type: ignore[arg-type]
            id=self.id,  # type: ignore[arg-type]
            prefix=self.prefix,  # type: ignore[arg-type]
            rotation=self.rotation,  # type: ignore[arg-type]
            width=width,
            height=height,
        )


def _set_port(state: HandshakeState, params: Sequence[Any]) -> bool:
    port = first_int(params)
    if port is None:
        return False
    state.port = port
    return True


def _set_host(state: HandshakeState, params: Sequence[Any]) -> bool:
    host = first_str(params)
    if host is None:
        return False
    state.host = host
    return True


def _set_id(state: HandshakeState, params: Sequence[Any]) -> bool:
    device_id = first_str(params)
    if device_id is None:
        return False
    state.id = device_id
    return True


def _set_prefix(state: HandshakeState, params: Sequence[Any]) -> bool:
    prefix = first_str(params)
    if prefix is None:
        return False
    state.prefix = prefix
    return True


def _set_rotation(state: HandshakeState, params: Sequence[Any]) -> bool:
    rotation = first_int(params)
    if rotation is None:
        return False
    state.rotation = rotation
    return True


def _set_size(state: HandshakeState, params: Sequence[Any]) -> bool:
    size = int_args(params, 2)
    if size is None:
        return False
    state.size = (size[0], size[1])
    return True


_FIELDS: dict[str, Callable[[HandshakeState, Sequence[Any]], bool]] = {
    "/sys/port": _set_port,
    "/sys/host": _set_host,
    "/sys/id": _set_id,
    "/sys/prefix": _set_prefix,
    "/sys/rotation": _set_rotation,
    "/sys/size": _set_size,
}
_FIELD_NAMES = ("port", "host", "id", "prefix", "rotation", "size")


def _collect(endpoint: UdpEndpoint, timeout_s: float | None) -> HandshakeState:
    state = HandshakeState()
    deadline = None if timeout_s is None else time.monotonic() + timeout_s
    while not state.complete():
        remaining = None if deadline is None else deadline - time.monotonic()
        if remaining is not None and remaining <= 0:
            raise HandshakeTimeoutError(timeout_s or 0.0, state.missing())
        data = endpoint.recv(remaining)
        if data is None:
            continue
        packet = decode_packet(data)
        if is_bundle(packet):
            raise ProtocolViolationError("OSC bundle received during device setup")
        state.fill(packet)
    return state


def setup(
    prefix: str,
    device: DeviceDescriptor,
    *,
    start_port: int = START_PORT,
    timeout_s: float | None = None,
) -> tuple[SessionDescriptor, UdpEndpoint]:
    """Negotiate port, host, and prefix with ``device`` and read back its info.

    With ``timeout_s=None`` this waits for the device indefinitely.
    """
    if not prefix.startswith("/"):
        raise ValueError(f"Prefix must start with '/', got {prefix!r}")

    endpoint = UdpEndpoint.bind_first_free(start_port=start_port)
    try:
        local_host, local_port = endpoint.local_address
        for address, args in (
            ("/sys/port", [local_port]),
            ("/sys/host", [local_host]),
            ("/sys/prefix", [prefix]),
            ("/sys/info", []),
        ):
            endpoint.send_to(encode_message(address, args), device.port, device.host)
            _log.debug("-> %s %s", address, args)

        descriptor = _collect(endpoint, timeout_s).build()
    except BaseException:
        endpoint.close()
        raise

    _log.info(
        "device %s ready on port %d (%dx%d, prefix %s)",
        descriptor.id,
        local_port,
        descriptor.width,
        descriptor.height,
        descriptor.prefix,
        extra={"event": "handshake_ok"},
    )
    return descriptor, endpoint
