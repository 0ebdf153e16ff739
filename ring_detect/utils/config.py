"""
Configuration utilities for ring detection.
"""

from ..detection import resolve_algorithm


def parse_algorithm_info(algorithm):
    """
    Resolve an algorithm name or alias to its display name and short tag.

    Args:
        algorithm: String like "classification", "pc", "ed", "threshold"

    Returns:
        tuple: (display_name, tag)
    """
    resolved = resolve_algorithm(algorithm)
    names = {
        "classification": ("Brightness classification", "pc"),
        "derivative": ("Derivative smoothing", "ed"),
        "threshold": ("Global threshold trace", "gt"),
    }
    return names[resolved.value]


def get_config_text(config, zoom=None, settings=None, css=None):
    """
    Generate a configuration text block for reports.
    """
    display_name, tag = parse_algorithm_info(config.algorithm)
    config_text = (
        f"Algorithm: {display_name} ({tag})\n"
        f"Zoom: {config.zoom if zoom is None else zoom}\n"
        f"Band Height: {config.band_height}px\n"
        f"Color Channel: {config.color_channel}\n"
        f"Blur Radius: {config.blur_radius}\n"
        f"Minimum Gap: {config.min_gap}\n"
        f"Direction: {config.direction.value}"
    )
    if settings is not None:
        for name, value in settings.to_dict().items():
            if name in ("color_channel", "blur_radius", "min_gap"):
                continue
            config_text += f"\n{name.replace('_', ' ').title()}: {value}"
    if css:
        config_text += f"\nCSS Adjustments: {css.strip()}"
    return config_text
