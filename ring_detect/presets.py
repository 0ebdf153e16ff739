"""Image-adjustment presets for ring detection.

An adjustment set mixes CSS-style filters (brightness, contrast, saturate,
invert) that are baked into captures, and convolution strengths (emboss,
edge_detect, sharpness) that drive the tile enhancement pipeline.

Usage:
    from ring_detect.presets import get_preset, to_filter_passes, to_css

    settings = get_preset("detection")
    viewer.set_filter_passes(to_filter_passes(settings))
    result = await sampler.sample_region(a, b, 50, css_adjustments=to_css(settings))
"""

from typing import Any, Dict, List

from .constants import GL_FILTER_NAMES
from .core.types import FilterPass

# Slider ranges (CSS values in percent, convolution strengths as fractions)
ADJUSTMENT_RANGES = {
    "brightness": (0, 300),
    "contrast": (50, 350),
    "saturate": (0, 350),
    "emboss": (0.0, 1.0),
    "edge_detect": (0.0, 1.0),
    "sharpness": (0.0, 1.0),
}

CSS_FILTERS = ("brightness", "contrast", "saturate")

PRESETS: Dict[str, Dict[str, Any]] = {
    "default": {
        "brightness": 100,
        "contrast": 100,
        "saturate": 100,
        "invert": False,
        "emboss": 0.0,
        "edge_detect": 0.0,
        "sharpness": 0.0,
    },
    # Settings applied while sampling for automatic detection
    "detection": {
        "brightness": 100,
        "contrast": 250,
        "saturate": 100,
        "invert": False,
        "emboss": 0.0,
        "edge_detect": 0.05,
        "sharpness": 0.0,
    },
    "griffin": {
        "brightness": 100,
        "contrast": 100,
        "saturate": 100,
        "invert": False,
        "emboss": 0.15,
        "edge_detect": 0.0,
        "sharpness": 0.2,
    },
}


def get_preset(preset_name: str) -> Dict[str, Any]:
    """Get preset adjustments by name.

    Args:
        preset_name: Name of preset ('default', 'detection', 'griffin')

    Returns:
        Dictionary of adjustment values

    Raises:
        ValueError: If preset_name is not recognized
    """
    if preset_name not in PRESETS:
        available = ", ".join(PRESETS.keys())
        raise ValueError(
            f"Unknown preset '{preset_name}'. Available presets: {available}"
        )
    return PRESETS[preset_name].copy()


def validate_adjustments(settings: Dict[str, Any]) -> None:
    """Raise ValueError for unknown keys or values outside their slider range."""
    for name, value in settings.items():
        if name == "invert":
            continue
        if name not in ADJUSTMENT_RANGES:
            raise ValueError(f"Unknown adjustment '{name}'")
        low, high = ADJUSTMENT_RANGES[name]
        if not (low <= float(value) <= high):
            raise ValueError(f"{name} must be between {low} and {high}, got {value}")


def to_css(settings: Dict[str, Any]) -> str:
    """CSS filter string for the cosmetic part of an adjustment set."""
    validate_adjustments(settings)
    css = f"invert({1 if settings.get('invert') else 0})"
    for name in CSS_FILTERS:
        css += f"{name}({settings.get(name, 100)}%) "
    return css


def to_filter_passes(settings: Dict[str, Any]) -> List[FilterPass]:
    """Convolution passes for the enhancement part, in slider order."""
    validate_adjustments(settings)
    return [
        FilterPass(kernel_name, float(settings.get(name, 0.0)))
        for name, kernel_name in GL_FILTER_NAMES.items()
    ]
