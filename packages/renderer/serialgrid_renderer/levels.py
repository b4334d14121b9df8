"""Grayscale test patterns and conversion of Pillow images to grid led levels."""

from __future__ import annotations

from typing import Sequence

from PIL import Image

from serialgrid_protocol.encoder import MAX_LEVEL, extract_quadrant, quadrant_origins


PATTERNS = ("black", "white", "quadrants", "h-gradient", "v-gradient", "checkerboard", "diagonal")


def build_test_pattern(name: str, width: int, height: int) -> Image.Image:
    """Render a named pattern as an 8-bit grayscale image, one pixel per led."""
    if name not in PATTERNS:
        raise ValueError(f"Unknown pattern: {name}")
    img = Image.new("L", (width, height), 0)
    px = img.load()

    for y in range(height):
        for x in range(width):
            if name == "black":
                v = 0
            elif name == "white":
                v = 255
            elif name == "quadrants":
                if x < width // 2 and y < height // 2:
                    v = 255
                elif x >= width // 2 and y < height // 2:
                    v = 170
                elif x < width // 2 and y >= height // 2:
                    v = 85
                else:
                    v = 0
            elif name == "h-gradient":
                v = int(255 * (x / max(width - 1, 1)))
            elif name == "v-gradient":
                v = int(255 * (y / max(height - 1, 1)))
            elif name == "checkerboard":
                v = 255 if (x + y) % 2 == 0 else 0
            else:
                v = 255 if x == (y * width) // max(height, 1) else 0
            px[x, y] = v
    return img


def _grayscale(image: Image.Image, width: int | None, height: int | None) -> Image.Image:
    if image.mode != "L":
        image = image.convert("L")
    size = (width or image.width, height or image.height)
    if image.size != size:
        image = image.resize(size, Image.Resampling.NEAREST)
    return image


def image_to_levels(image: Image.Image, width: int | None = None, height: int | None = None) -> list[int]:
    """Row-major led intensities in [0, 15], resizing first when a target size is given."""
    gray = _grayscale(image, width, height)
    return [(v * MAX_LEVEL + 127) // 255 for v in gray.tobytes()]


def image_to_leds(
    image: Image.Image,
    width: int | None = None,
    height: int | None = None,
    threshold: int = 128,
) -> list[bool]:
    gray = _grayscale(image, width, height)
    return [v >= threshold for v in gray.tobytes()]


def changed_quadrants(
    previous: Sequence[int] | None,
    current: Sequence[int],
    width: int,
    height: int,
) -> list[tuple[int, int]]:
    """Origins of the 8x8 quadrants whose values differ between two frames.

    With no previous frame every quadrant counts as changed.
    """
    if len(current) != width * height:
        raise ValueError(f"Frame has {len(current)} values, expected {width * height}")
    origins = quadrant_origins(width, height)
    if previous is None:
        return origins
    if len(previous) != len(current):
        raise ValueError("Frame sizes must match")

    return [
        (x, y)
        for x, y in origins
        if extract_quadrant(previous, width, x, y) != extract_quadrant(current, width, x, y)
    ]
