"""Inbound message classification into typed input events."""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from pythonosc.osc_message import OscMessage

from .codec import Packet, decode_packet, first_str, int_args, is_bundle
from .errors import ProtocolDecodeError, ProtocolViolationError
from .models import EncoderDelta, EncoderKey, Event, GridKey, KeyDirection, Tilt


SERIALOSC_NAMESPACE = "/serialosc"
SYSTEM_NAMESPACE = "/sys"

_log = logging.getLogger("serialgrid.decoder")


def _grid_key(args: Sequence[Any]) -> Event | None:
    values = int_args(args, 3)
    if values is None:
        return None
    x, y, state = values
    return GridKey(x=x, y=y, direction=KeyDirection.from_value(state))


def _tilt(args: Sequence[Any]) -> Event | None:
    values = int_args(args, 4)
    if values is None:
        return None
    sensor, x, y, z = values
    return Tilt(sensor=sensor, x=x, y=y, z=z)


def _enc_delta(args: Sequence[Any]) -> Event | None:
    values = int_args(args, 2)
    if values is None:
        return None
    n, delta = values
    return EncoderDelta(n=n, delta=delta)


def _enc_key(args: Sequence[Any]) -> Event | None:
    values = int_args(args, 2)
    if values is None:
        return None
    n, state = values
    return EncoderKey(n=n, direction=KeyDirection.from_value(state))


EVENT_PARSERS: dict[str, Callable[[Sequence[Any]], Event | None]] = {
    "/grid/key": _grid_key,
    "/tilt": _tilt,
    "/enc/delta": _enc_delta,
    "/enc/key": _enc_key,
}


def _daemon_message(message: OscMessage) -> None:
    name = first_str(message.params)
    if message.address == "/serialosc/add" and name is not None:
        _log.info("device added: %s", name, extra={"event": "device_added"})
    elif message.address == "/serialosc/remove" and name is not None:
        _log.info("device removed: %s", name, extra={"event": "device_removed"})
    else:
        _log.info("serialosc message %s %s", message.address, message.params)


def _in_namespace(address: str, namespace: str) -> bool:
    return address == namespace or address.startswith(namespace + "/")


def decode_message(message: OscMessage, prefix: str) -> Event | None:
    address = message.address
    if _in_namespace(address, SERIALOSC_NAMESPACE):
        _daemon_message(message)
        return None
    if _in_namespace(address, SYSTEM_NAMESPACE):
        _log.debug("unexpected system message after setup: %s %s", address, message.params)
        return None
    if not address.startswith(prefix):
        _log.debug("message outside prefix %s: %s", prefix, address)
        return None

    parser = EVENT_PARSERS.get(address[len(prefix):])
    if parser is None:
        _log.error("not handled: %s", address, extra={"event": "unhandled_message"})
        return None
    event = parser(message.params)
    if event is None:
        _log.error("invalid %s message received: %s", address, message.params, extra={"event": "invalid_message"})
    return event


def decode_event(packet: Packet, prefix: str) -> Event | None:
    if is_bundle(packet):
        raise ProtocolViolationError("OSC bundle received from device; only single messages are expected")
    return decode_message(packet, prefix)


def decode(frame: bytes, prefix: str) -> Event | None:
    """Decode one raw frame, skipping (and logging) bytes that are not valid OSC."""
    try:
        packet = decode_packet(frame)
    except ProtocolDecodeError as exc:
        _log.warning("dropping undecodable frame: %s", exc, extra={"event": "decode_error"})
        return None
    return decode_event(packet, prefix)
