"""Renderer package turning Pillow images into grid led frames."""

from .levels import PATTERNS, build_test_pattern, changed_quadrants, image_to_leds, image_to_levels

__all__ = [
    "PATTERNS",
    "build_test_pattern",
    "changed_quadrants",
    "image_to_leds",
    "image_to_levels",
]
