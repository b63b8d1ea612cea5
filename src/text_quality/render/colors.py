"""Score-to-color mapping by linear RGB interpolation."""

from __future__ import annotations

import re

from text_quality.config import ColorConfig

_RGB_FUNCTION = re.compile(r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)", flags=re.IGNORECASE)
_WHITE = (255, 255, 255)

RGB = tuple[int, int, int]


def hex_to_rgb(value: str) -> RGB:
    digits = value.strip().lstrip("#")
    if len(digits) == 3:
        digits = "".join(char * 2 for char in digits)
    if len(digits) != 6:
        raise ValueError(f"not a hex color: {value!r}")
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def rgb_to_hex(rgb: RGB) -> str:
    return "#" + "".join(f"{max(0, min(255, channel)):02x}" for channel in rgb)


def css_color_to_rgb(value: str | None) -> RGB:
    """Parse `#hex` or `rgb()/rgba()`; anything unparseable is white."""

    if not value or not value.strip():
        return _WHITE
    color = value.strip()
    if color.startswith("#"):
        try:
            return hex_to_rgb(color)
        except ValueError:
            return _WHITE
    match = _RGB_FUNCTION.match(color)
    if match:
        return int(match.group(1)), int(match.group(2)), int(match.group(3))
    return _WHITE


def interpolate_color(start: str, end: str, t: float) -> str:
    a = hex_to_rgb(start)
    b = hex_to_rgb(end)
    t = max(0.0, min(1.0, t))
    return rgb_to_hex(
        (
            round(a[0] + (b[0] - a[0]) * t),
            round(a[1] + (b[1] - a[1]) * t),
            round(a[2] + (b[2] - a[2]) * t),
        )
    )


class ColorMapper:
    """Background from SNR, foreground from complexity.

    Low SNR sits at the configured highlight color and high SNR fades into
    the host background, so noisy paragraphs stand out.
    """

    def __init__(self, config: ColorConfig | None = None) -> None:
        self.config = config or ColorConfig()

    def background_for(self, normalized_snr: float, base_color: str | None = None) -> str:
        base = rgb_to_hex(css_color_to_rgb(base_color))
        return interpolate_color(self.config.snr_max_color, base, normalized_snr)

    def text_color_for(self, normalized_complexity: float) -> str:
        return interpolate_color(
            self.config.complexity_min_color,
            self.config.complexity_max_color,
            normalized_complexity,
        )
