"""
Cosmetic CSS-style image adjustments.

The viewer applies brightness/contrast/saturation (and friends) outside the
convolution pipeline, so whatever the sampler captures has them baked in.
This module parses the same filter strings and applies them to RGBA pixels.
"""

import math
import re
from typing import List, Tuple

import numpy as np

from ..core.errors import DegenerateInput

_FUNCTION_RE = re.compile(r"([a-z-]+)\(\s*([^)]*?)\s*\)")
_ANGLE_UNITS = {"deg": math.pi / 180.0, "rad": 1.0, "turn": 2.0 * math.pi, "grad": math.pi / 200.0}

_LUMA = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)


def parse_css_filters(css: str) -> List[Tuple[str, float]]:
    """
    Parse a CSS filter string into (function, amount) pairs.

    Percentages become fractions ("250%" -> 2.5); hue-rotate angles become
    radians. An empty string parses to an empty list.

    Raises:
        DegenerateInput: For unsupported functions or unparsable amounts
    """
    if not css or not css.strip():
        return []

    filters = []
    consumed = 0
    for match in _FUNCTION_RE.finditer(css):
        if css[consumed:match.start()].strip():
            raise DegenerateInput(f"Unparsable CSS filter text: {css[consumed:match.start()]!r}")
        consumed = match.end()

        name, raw = match.group(1), match.group(2)
        if name not in _FILTERS:
            raise DegenerateInput(f"Unsupported CSS filter '{name}'")
        filters.append((name, _parse_amount(name, raw)))

    if css[consumed:].strip():
        raise DegenerateInput(f"Unparsable CSS filter text: {css[consumed:]!r}")
    return filters


def _parse_amount(name: str, raw: str) -> float:
    if raw == "":
        return 0.0 if name == "hue-rotate" else 1.0
    try:
        if name == "hue-rotate":
            number = re.match(r"^(-?[\d.]+)\s*([a-z]*)$", raw)
            if number is None:
                raise ValueError(raw)
            unit = number.group(2) or "deg"
            return float(number.group(1)) * _ANGLE_UNITS[unit]
        if raw.endswith("%"):
            return float(raw[:-1]) / 100.0
        return float(raw)
    except (ValueError, KeyError):
        raise DegenerateInput(f"Invalid amount {raw!r} for CSS filter '{name}'") from None


def _brightness(rgb: np.ndarray, amount: float) -> np.ndarray:
    return rgb * amount


def _contrast(rgb: np.ndarray, amount: float) -> np.ndarray:
    return (rgb - 0.5) * amount + 0.5


def _invert(rgb: np.ndarray, amount: float) -> np.ndarray:
    amount = min(max(amount, 0.0), 1.0)
    return rgb + amount * (1.0 - 2.0 * rgb)


def _saturate(rgb: np.ndarray, amount: float) -> np.ndarray:
    s = amount
    matrix = np.array([
        [0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s],
    ], dtype=np.float32)
    return rgb @ matrix.T


def _grayscale(rgb: np.ndarray, amount: float) -> np.ndarray:
    amount = min(max(amount, 0.0), 1.0)
    gray = rgb @ _LUMA
    return rgb * (1.0 - amount) + gray[..., None] * amount


def _sepia(rgb: np.ndarray, amount: float) -> np.ndarray:
    k = 1.0 - min(max(amount, 0.0), 1.0)
    matrix = np.array([
        [0.393 + 0.607 * k, 0.769 - 0.769 * k, 0.189 - 0.189 * k],
        [0.349 - 0.349 * k, 0.686 + 0.314 * k, 0.168 - 0.168 * k],
        [0.272 - 0.272 * k, 0.534 - 0.534 * k, 0.131 + 0.869 * k],
    ], dtype=np.float32)
    return rgb @ matrix.T


def _hue_rotate(rgb: np.ndarray, angle: float) -> np.ndarray:
    c, s = math.cos(angle), math.sin(angle)
    matrix = np.array([
        [0.213 + c * 0.787 - s * 0.213, 0.715 - c * 0.715 - s * 0.715, 0.072 - c * 0.072 + s * 0.928],
        [0.213 - c * 0.213 + s * 0.143, 0.715 + c * 0.285 + s * 0.140, 0.072 - c * 0.072 - s * 0.283],
        [0.213 - c * 0.213 - s * 0.787, 0.715 - c * 0.715 + s * 0.715, 0.072 + c * 0.928 + s * 0.072],
    ], dtype=np.float32)
    return rgb @ matrix.T


_FILTERS = {
    "brightness": _brightness,
    "contrast": _contrast,
    "invert": _invert,
    "saturate": _saturate,
    "grayscale": _grayscale,
    "sepia": _sepia,
    "hue-rotate": _hue_rotate,
}


def is_neutral(css: str) -> bool:
    """True when the filter string leaves every pixel unchanged."""
    for name, amount in parse_css_filters(css):
        if name in ("brightness", "contrast", "saturate") and amount != 1.0:
            return False
        if name in ("invert", "grayscale", "sepia", "hue-rotate") and amount != 0.0:
            return False
    return True


def apply_css_filters(pixels: np.ndarray, css: str) -> np.ndarray:
    """
    Apply a CSS filter string to uint8 RGB or RGBA pixels.

    Functions are applied left to right, each result clamped to [0, 1] as the
    browser does. Alpha is passed through untouched.
    """
    filters = parse_css_filters(css)
    if not filters:
        return pixels

    rgb = pixels[..., :3].astype(np.float32) / 255.0
    for name, amount in filters:
        rgb = np.clip(_FILTERS[name](rgb, amount), 0.0, 1.0)

    out = pixels.copy()
    out[..., :3] = np.round(rgb * 255.0).astype(np.uint8)
    return out
