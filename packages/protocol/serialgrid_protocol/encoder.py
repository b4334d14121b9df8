"""Command encoding for grid LEDs, arc rings, tilt, and device system settings.

Every command is a ``Command(address, args)`` whose address is relative to the
session prefix, except the ``/sys/*`` setters which address the device directly.
LED arguments come in a small closed set of variants; each knows its address
fragment (``"level/"`` for intensity forms, ``""`` for on/off forms) and its
integer argument list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence, Union

from .codec import OscArg


QUAD_SIZE = 8
QUAD_LEDS = QUAD_SIZE * QUAD_SIZE
MAX_LEVEL = 15
RING_LEDS = 64
LEVEL_FRAGMENT = "level/"
ROTATIONS = (0, 90, 180, 270)


def _check_level(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Intensity must be an int, got {type(value).__name__}")
    if not 0 <= value <= MAX_LEVEL:
        raise ValueError(f"Intensity must be in [0, {MAX_LEVEL}], got {value}")
    return value


def _check_byte(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFF:
        raise ValueError(f"Mask must be an int in [0, 255], got {value!r}")
    return value


@dataclass(frozen=True)
class Intensity:
    value: int

    def __post_init__(self) -> None:
        _check_level(self.value)

    def encode(self) -> tuple[str, list[int]]:
        return LEVEL_FRAGMENT, [self.value]


@dataclass(frozen=True)
class OnOff:
    on: bool

    def encode(self) -> tuple[str, list[int]]:
        return "", [1 if self.on else 0]


@dataclass(frozen=True)
class Mask:
    value: int

    def __post_init__(self) -> None:
        _check_byte(self.value)

    def encode(self) -> tuple[str, list[int]]:
        return "", [self.value]


@dataclass(frozen=True)
class Mask8:
    masks: tuple[int, ...]

    def __post_init__(self) -> None:
        masks = tuple(_check_byte(m) for m in self.masks)
        if len(masks) != QUAD_SIZE:
            raise ValueError(f"Mask8 needs {QUAD_SIZE} row masks, got {len(masks)}")
        object.__setattr__(self, "masks", masks)

    def encode(self) -> tuple[str, list[int]]:
        return "", list(self.masks)


@dataclass(frozen=True)
class IntensityArray64:
    values: tuple[int, ...]

    def __post_init__(self) -> None:
        values = tuple(_check_level(v) for v in self.values)
        if len(values) != QUAD_LEDS:
            raise ValueError(f"IntensityArray64 needs {QUAD_LEDS} values, got {len(values)}")
        object.__setattr__(self, "values", values)

    def encode(self) -> tuple[str, list[int]]:
        return LEVEL_FRAGMENT, list(self.values)


@dataclass(frozen=True)
class BoolArray64:
    leds: tuple[bool, ...]

    def __post_init__(self) -> None:
        leds = tuple(bool(v) for v in self.leds)
        if len(leds) != QUAD_LEDS:
            raise ValueError(f"BoolArray64 needs {QUAD_LEDS} values, got {len(leds)}")
        object.__setattr__(self, "leds", leds)

    def encode(self) -> tuple[str, list[int]]:
        return "", pack_masks(self.leds)


ScalarArg = Union[Intensity, OnOff]
VectorArg = Union[Mask, Mask8, IntensityArray64, BoolArray64]


def scalar_arg(value: Any) -> ScalarArg:
    """Coerce a bool (on/off) or an int (intensity) into a scalar LED argument."""
    if isinstance(value, (Intensity, OnOff)):
        return value
    if isinstance(value, bool):
        return OnOff(value)
    if isinstance(value, int):
        return Intensity(value)
    raise ValueError(f"Expected a bool or an intensity, got {type(value).__name__}")


def vector_arg(value: Any) -> VectorArg:
    """Coerce a mask, 8 row masks, 64 levels, or 64 booleans into a vector LED argument."""
    if isinstance(value, (Mask, Mask8, IntensityArray64, BoolArray64)):
        return value
    if isinstance(value, bool):
        raise ValueError("A single bool is not a valid LED block")
    if isinstance(value, int):
        return Mask(value)
    items = list(value)
    if len(items) == QUAD_LEDS:
        if all(isinstance(v, bool) for v in items):
            return BoolArray64(tuple(items))
        return IntensityArray64(tuple(items))
    if len(items) == QUAD_SIZE:
        return Mask8(tuple(items))
    raise ValueError(f"Expected 8 masks or 64 values, got {len(items)} items")


def pack_masks(leds: Sequence[bool]) -> list[int]:
    """Pack 64 row-major booleans into 8 row bytes; bit k of byte i is led (k, i)."""
    if len(leds) != QUAD_LEDS:
        raise ValueError(f"Expected {QUAD_LEDS} leds, got {len(leds)}")
    masks = []
    for row in range(QUAD_SIZE):
        mask = 0
        for col in range(QUAD_SIZE):
            if leds[row * QUAD_SIZE + col]:
                mask |= 1 << col
        masks.append(mask)
    return masks


def unpack_masks(masks: Sequence[int]) -> list[bool]:
    if len(masks) != QUAD_SIZE:
        raise ValueError(f"Expected {QUAD_SIZE} masks, got {len(masks)}")
    return [bool(masks[row] >> col & 1) for row in range(QUAD_SIZE) for col in range(QUAD_SIZE)]


def quadrant_origins(width: int, height: int) -> list[tuple[int, int]]:
    """Origins (x, y) of every 8x8 quadrant, quadrant rows first."""
    if width <= 0 or height <= 0 or width % QUAD_SIZE or height % QUAD_SIZE:
        raise ValueError(f"Grid size {width}x{height} is not a multiple of {QUAD_SIZE}")
    return [
        (qx * QUAD_SIZE, qy * QUAD_SIZE)
        for qy in range(height // QUAD_SIZE)
        for qx in range(width // QUAD_SIZE)
    ]


def extract_quadrant(values: Sequence[Any], width: int, x_offset: int, y_offset: int) -> list[Any]:
    return [
        values[(y_offset + row) * width + x_offset + col]
        for row in range(QUAD_SIZE)
        for col in range(QUAD_SIZE)
    ]


@dataclass(frozen=True)
class Command:
    address: str
    args: tuple[OscArg, ...] = ()

    def prefixed(self, prefix: str) -> "Command":
        return Command(f"{prefix}{self.address}", self.args)


def _grid(method: str, fragment: str, head: Iterable[int], tail: Iterable[int]) -> Command:
    return Command(f"/grid/led/{fragment}{method}", (*head, *tail))


def led_set(x: int, y: int, arg: Any) -> Command:
    fragment, args = scalar_arg(arg).encode()
    return _grid("set", fragment, (x, y), args)


def led_all(arg: Any) -> Command:
    fragment, args = scalar_arg(arg).encode()
    return _grid("all", fragment, (), args)


def led_map(x_offset: int, y_offset: int, arg: Any) -> Command:
    fragment, args = vector_arg(arg).encode()
    return _grid("map", fragment, (x_offset, y_offset), args)


def led_row(x_offset: int, y: int, arg: Any) -> Command:
    fragment, args = vector_arg(arg).encode()
    return _grid("row", fragment, (x_offset, y), args)


def led_col(x: int, y_offset: int, arg: Any) -> Command:
    fragment, args = vector_arg(arg).encode()
    return _grid("col", fragment, (x, y_offset), args)


def _check_frame(values: Sequence[Any], width: int, height: int) -> list[tuple[int, int]]:
    origins = quadrant_origins(width, height)
    if len(values) != width * height:
        raise ValueError(f"Expected {width * height} leds for a {width}x{height} grid, got {len(values)}")
    return origins


def led_frame(leds: Sequence[bool], width: int, height: int) -> list[Command]:
    """One on/off map command per quadrant for a full row-major grid of booleans."""
    return [
        led_map(x, y, BoolArray64(tuple(extract_quadrant(leds, width, x, y))))
        for x, y in _check_frame(leds, width, height)
    ]


def led_level_frame(levels: Sequence[int], width: int, height: int) -> list[Command]:
    """One level map command per quadrant for a full row-major grid of intensities."""
    return [
        led_map(x, y, IntensityArray64(tuple(extract_quadrant(levels, width, x, y))))
        for x, y in _check_frame(levels, width, height)
    ]


def ring_set(n: int, index: int, level: int) -> Command:
    return Command("/ring/set", (n, index, _check_level(level)))


def ring_all(n: int, level: int) -> Command:
    return Command("/ring/all", (n, _check_level(level)))


def ring_range(n: int, start: int, end: int, level: int) -> Command:
    return Command("/ring/range", (n, start, end, _check_level(level)))


def ring_map(n: int, levels: Sequence[int]) -> Command:
    if len(levels) != RING_LEDS:
        raise ValueError(f"Expected {RING_LEDS} ring levels, got {len(levels)}")
    return Command("/ring/map", (n, *(_check_level(v) for v in levels)))


def tilt_set(sensor: int, on: bool) -> Command:
    return Command("/tilt/set", (sensor, 1 if on else 0))


def sys_rotation(rotation: int) -> Command:
    if rotation not in ROTATIONS:
        raise ValueError(f"Rotation must be one of {ROTATIONS}, got {rotation}")
    return Command("/sys/rotation", (rotation,))


def sys_prefix(prefix: str) -> Command:
    if not prefix.startswith("/"):
        raise ValueError(f"Prefix must start with '/', got {prefix!r}")
    return Command("/sys/prefix", (prefix,))
