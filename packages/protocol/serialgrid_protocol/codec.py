"""Thin adapter over python-osc for building and parsing OSC datagrams."""

from __future__ import annotations

from typing import Any, Sequence, Union

from pythonosc import osc_bundle, osc_message
from pythonosc.osc_bundle import OscBundle
from pythonosc.osc_message import OscMessage
from pythonosc.osc_message_builder import BuildError, OscMessageBuilder

from .errors import ProtocolDecodeError

OscArg = Union[int, str]
Packet = Union[OscMessage, OscBundle]


def encode_message(address: str, args: Sequence[OscArg] = ()) -> bytes:
    """Encode one message. Ints are always sent as int32, strings as OSC strings."""
    builder = OscMessageBuilder(address=address)
    for arg in args:
        if isinstance(arg, str):
            builder.add_arg(arg, OscMessageBuilder.ARG_TYPE_STRING)
        elif isinstance(arg, int):
            builder.add_arg(int(arg), OscMessageBuilder.ARG_TYPE_INT)
        else:
            raise TypeError(f"Unsupported OSC argument type: {type(arg).__name__}")
    try:
        return builder.build().dgram
    except BuildError as exc:
        raise ValueError(f"Cannot encode message for {address!r}: {exc}") from exc


def decode_packet(dgram: bytes) -> Packet:
    # python-osc raises UnicodeDecodeError (a ValueError) for invalid UTF-8 in addresses and strings.
    if OscBundle.dgram_is_bundle(dgram):
        try:
            return OscBundle(dgram)
        except (osc_bundle.ParseError, ValueError) as exc:
            raise ProtocolDecodeError(f"Malformed bundle ({len(dgram)} bytes): {exc}") from exc
    if OscMessage.dgram_is_message(dgram):
        try:
            return OscMessage(dgram)
        except (osc_message.ParseError, ValueError) as exc:
            raise ProtocolDecodeError(f"Malformed message ({len(dgram)} bytes): {exc}") from exc
    raise ProtocolDecodeError(f"Datagram is neither an OSC message nor a bundle: {dgram[:16].hex()}")


def is_bundle(packet: Packet) -> bool:
    return isinstance(packet, OscBundle)


def _is_int(value: Any) -> bool:
    # python-osc decodes T/F type tags to bool, which must not pass as an int.
    return isinstance(value, int) and not isinstance(value, bool)


def int_args(params: Sequence[Any], count: int) -> tuple[int, ...] | None:
    """Return the params as ints when there are exactly ``count`` int arguments."""
    if len(params) != count or not all(_is_int(p) for p in params):
        return None
    return tuple(int(p) for p in params)


def first_str(params: Sequence[Any]) -> str | None:
    if params and isinstance(params[0], str):
        return params[0]
    return None


def first_int(params: Sequence[Any]) -> int | None:
    if params and _is_int(params[0]):
        return int(params[0])
    return None
