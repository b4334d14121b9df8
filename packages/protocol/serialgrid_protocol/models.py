"""Typed models for devices, sessions, input events, and transport counters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


LOCALHOST = "127.0.0.1"


class DeviceKind(str, Enum):
    GRID = "grid"
    ARC = "arc"
    UNKNOWN = "unknown"

    @classmethod
    def from_type_name(cls, type_name: str) -> "DeviceKind":
        lowered = type_name.lower()
        if "arc" in lowered:
            return cls.ARC
        if "monome" in lowered or "grid" in lowered:
            return cls.GRID
        return cls.UNKNOWN


class KeyDirection(str, Enum):
    UP = "up"
    DOWN = "down"

    @classmethod
    def from_value(cls, value: int) -> "KeyDirection":
        return cls.DOWN if value == 1 else cls.UP


@dataclass(frozen=True)
class DeviceDescriptor:
    """A device as announced by serialosc, before any handshake."""

    name: str
    type_name: str
    kind: DeviceKind
    port: int
    host: str = LOCALHOST

    def __str__(self) -> str:
        return f"{self.name}: {self.kind.value} ({self.port})"


@dataclass(frozen=True)
class SessionDescriptor:
    port: int
    host: str
    id: str
    prefix: str
    rotation: int
    width: int
    height: int

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True)
class GridKey:
    x: int
    y: int
    direction: KeyDirection


@dataclass(frozen=True)
class Tilt:
    sensor: int
    x: int
    y: int
    z: int


@dataclass(frozen=True)
class EncoderDelta:
    n: int
    delta: int


@dataclass(frozen=True)
class EncoderKey:
    n: int
    direction: KeyDirection


Event = Union[GridKey, Tilt, EncoderDelta, EncoderKey]


@dataclass(frozen=True)
class DeviceAdded:
    id: str


@dataclass(frozen=True)
class DeviceRemoved:
    id: str


DeviceChangeEvent = Union[DeviceAdded, DeviceRemoved]


@dataclass
class TransportStats:
    frames_queued: int = 0
    frames_sent: int = 0
    frames_received: int = 0
    outbound_dropped: int = 0
    inbound_dropped: int = 0
    send_errors: int = 0
    decode_errors: int = 0
    capability_mismatches: int = 0
