"""Session facade: the object applications hold for one set-up grid or arc."""

from __future__ import annotations

import dataclasses
import logging
import threading
import weakref
from typing import Any, Sequence

from . import encoder
from .codec import OscArg, decode_packet, encode_message
from .decoder import decode_event
from .discovery import enumerate_devices
from .errors import ChannelClosed, ChannelFull, NoDevicesError, ProtocolDecodeError
from .handshake import setup
from .models import DeviceDescriptor, DeviceKind, Event, SessionDescriptor, TransportStats
from .reactor import INBOUND_CAPACITY, OUTBOUND_CAPACITY, FrameChannel, Reactor
from .transport import SERIALOSC_PORT, START_PORT, UdpEndpoint

_log = logging.getLogger("serialgrid.session")


class Session:
    """A live, set-up device.

    Commands are encoded and queued for the background reactor and return at once;
    ``poll`` returns at most one pending input event without waiting. Commands that
    do not apply to the device kind are logged and ignored. Frames that do not fit
    in the outbound queue are dropped and counted in ``stats``.
    """

    def __init__(
        self,
        device: DeviceDescriptor,
        descriptor: SessionDescriptor,
        endpoint: UdpEndpoint,
        *,
        start: bool = True,
    ) -> None:
        self._device = device
        self._descriptor = descriptor
        self._lock = threading.RLock()
        self.stats = TransportStats()
        self._outbound = FrameChannel(OUTBOUND_CAPACITY)
        self._inbound = FrameChannel(INBOUND_CAPACITY)
        self._reactor = Reactor(
            endpoint,
            device.port,
            self._outbound,
            self._inbound,
            self.stats,
            device_host=device.host,
        )
        # Dropping the session closes the outbound channel, which stops the reactor.
        self._finalizer = weakref.finalize(self, self._outbound.close)
        if start:
            self._reactor.start()

    @classmethod
    def from_device(
        cls,
        device: DeviceDescriptor,
        prefix: str,
        *,
        start_port: int = START_PORT,
        timeout_s: float | None = None,
    ) -> "Session":
        descriptor, endpoint = setup(prefix, device, start_port=start_port, timeout_s=timeout_s)
        return cls(device, descriptor, endpoint)

    @classmethod
    def connect(
        cls,
        prefix: str,
        daemon_port: int = SERIALOSC_PORT,
        *,
        start_port: int = START_PORT,
        timeout_s: float | None = None,
    ) -> "Session":
        """Set up the first device serialosc reports."""
        devices = enumerate_devices(daemon_port, start_port=start_port)
        if not devices:
            raise NoDevicesError("No devices detected")
        return cls.from_device(devices[0], prefix, start_port=start_port, timeout_s=timeout_s)

    # Accessors

    @property
    def device(self) -> DeviceDescriptor:
        return self._device

    @property
    def descriptor(self) -> SessionDescriptor:
        return self._descriptor

    @property
    def name(self) -> str:
        return self._device.name

    @property
    def type_name(self) -> str:
        return self._device.type_name

    @property
    def kind(self) -> DeviceKind:
        return self._device.kind

    @property
    def device_port(self) -> int:
        return self._device.port

    @property
    def host(self) -> str:
        return self._descriptor.host

    @property
    def id(self) -> str:
        return self._descriptor.id

    @property
    def prefix(self) -> str:
        return self._descriptor.prefix

    @property
    def rotation(self) -> int:
        return self._descriptor.rotation

    @property
    def size(self) -> tuple[int, int]:
        return self._descriptor.size

    @property
    def width(self) -> int:
        return self._descriptor.width

    @property
    def height(self) -> int:
        return self._descriptor.height

    @property
    def running(self) -> bool:
        return self._reactor.running

    @property
    def pending_outbound(self) -> int:
        return len(self._outbound)

    # Grid commands

    def set(self, x: int, y: int, arg: Any) -> None:
        """Set one led: ``arg`` is a bool (on/off) or an intensity in [0, 15]."""
        if self._require(DeviceKind.GRID, "set"):
            self._send(encoder.led_set(x, y, arg))

    def all(self, arg: Any) -> None:
        if self._require(DeviceKind.GRID, "all"):
            self._send(encoder.led_all(arg))

    def map(self, x_offset: int, y_offset: int, arg: Any) -> None:
        """Set one 8x8 quadrant from 8 row masks, 64 booleans, or 64 intensities."""
        if self._require(DeviceKind.GRID, "map"):
            self._send(encoder.led_map(x_offset, y_offset, arg))

    def row(self, x_offset: int, y: int, arg: Any) -> None:
        if self._require(DeviceKind.GRID, "row"):
            self._send(encoder.led_row(x_offset, y, arg))

    def col(self, x: int, y_offset: int, arg: Any) -> None:
        if self._require(DeviceKind.GRID, "col"):
            self._send(encoder.led_col(x, y_offset, arg))

    def set_all(self, leds: Sequence[bool]) -> None:
        """Set every led on or off from a row-major sequence of width*height booleans."""
        if self._require_quadrants("set_all"):
            for command in encoder.led_frame(leds, self.width, self.height):
                self._send(command)

    def set_all_intensity(self, levels: Sequence[int]) -> None:
        """Set every led from a row-major sequence of width*height intensities."""
        if self._require_quadrants("set_all_intensity"):
            for command in encoder.led_level_frame(levels, self.width, self.height):
                self._send(command)

    # Arc commands

    def ring_set(self, n: int, index: int, level: int) -> None:
        if self._require(DeviceKind.ARC, "ring_set"):
            self._send(encoder.ring_set(n, index, level))

    def ring_all(self, n: int, level: int) -> None:
        if self._require(DeviceKind.ARC, "ring_all"):
            self._send(encoder.ring_all(n, level))

    def ring_range(self, n: int, start: int, end: int, level: int) -> None:
        if self._require(DeviceKind.ARC, "ring_range"):
            self._send(encoder.ring_range(n, start, end, level))

    def ring_map(self, n: int, levels: Sequence[int]) -> None:
        if self._require(DeviceKind.ARC, "ring_map"):
            self._send(encoder.ring_map(n, levels))

    # Device settings

    def tilt_all(self, on: bool) -> None:
        """Enable or disable tilt reports from sensor 0."""
        self._send(encoder.tilt_set(0, on))

    def set_rotation(self, rotation: int) -> None:
        command = encoder.sys_rotation(rotation)
        with self._lock:
            self._send_raw(command.address, command.args)
            self._descriptor = dataclasses.replace(self._descriptor, rotation=rotation)

    def set_prefix(self, prefix: str) -> None:
        command = encoder.sys_prefix(prefix)
        with self._lock:
            self._send_raw(command.address, command.args)
            self._descriptor = dataclasses.replace(self._descriptor, prefix=prefix)

    # Input

    def poll(self) -> Event | None:
        """Return the next input event, or None right away if nothing is pending."""
        frame = self._inbound.try_get()
        if frame is None:
            return None
        try:
            packet = decode_packet(frame)
        except ProtocolDecodeError as exc:
            self.stats.decode_errors += 1
            _log.warning("dropping undecodable frame: %s", exc, extra={"event": "decode_error"})
            return None
        return decode_event(packet, self.prefix)

    # Lifetime

    def close(self, timeout_s: float | None = 1.0) -> bool:
        """Stop accepting commands and wait for the reactor to flush and exit."""
        self._finalizer()
        return self._reactor.shutdown(timeout_s)

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()

    # Internals

    def _require(self, kind: DeviceKind, method: str) -> bool:
        if self._device.kind is kind:
            return True
        self.stats.capability_mismatches += 1
        _log.error(
            "called %s method %s on a %s device",
            kind.value,
            method,
            self._device.kind.value,
            extra={"event": "capability_mismatch"},
        )
        return False

    def _require_quadrants(self, method: str) -> bool:
        if not self._require(DeviceKind.GRID, method):
            return False
        if self.width % encoder.QUAD_SIZE or self.height % encoder.QUAD_SIZE:
            self.stats.capability_mismatches += 1
            _log.error(
                "%s needs a grid made of 8x8 quadrants, device is %dx%d",
                method,
                self.width,
                self.height,
                extra={"event": "capability_mismatch"},
            )
            return False
        return True

    def _send(self, command: encoder.Command) -> None:
        with self._lock:
            self._send_raw(f"{self.prefix}{command.address}", command.args)

    def _send_raw(self, address: str, args: Sequence[OscArg]) -> None:
        frame = encode_message(address, args)
        _log.debug("-> %s %s", address, list(args))
        try:
            self._outbound.try_put(frame)
        except ChannelFull:
            self.stats.outbound_dropped += 1
            _log.error("outbound queue full, dropping %s", address, extra={"event": "outbound_dropped"})
        except ChannelClosed:
            self.stats.outbound_dropped += 1
            _log.error("session closed, dropping %s", address, extra={"event": "outbound_dropped"})
        else:
            self.stats.frames_queued += 1

    def __repr__(self) -> str:
        d = self._descriptor
        text = (
            f"Session {self.name}\n\ttype: {self.kind.value}\n\tport: {self.device_port}\n\thost: {d.host}"
            f"\n\tid: {d.id}\n\tprefix: {d.prefix}\n\trotation: {d.rotation}"
        )
        if self.kind is DeviceKind.GRID:
            text += f"\n\tsize: {d.width}:{d.height}"
        return text
