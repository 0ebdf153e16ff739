"""
Pre-detection preprocessing: channel reduction and median blur.
"""

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ..constants import CHANNEL_WEIGHTS

# Columns blurred per chunk; keeps the window view copy small for long bands
_BLUR_CHUNK = 1024


def reduce_channel(pixels: np.ndarray, channel: str = "intensity") -> np.ndarray:
    """Weighted sum of RGB: "intensity" is the plain mean, "r"/"g"/"b" pick one channel."""
    weights = np.asarray(CHANNEL_WEIGHTS[channel], dtype=np.float64)
    return pixels[..., :3].astype(np.float64) @ weights


def median_blur(values: np.ndarray, radius: int) -> np.ndarray:
    """
    Median over a (2r+1) x (2r+1) window with edge-clamped borders.

    Args:
        values: (H, W) float array
        radius: Window radius; 0 returns a copy

    Returns:
        (H, W) float array
    """
    if radius <= 0:
        return values.astype(np.float64, copy=True)

    padded = np.pad(values, radius, mode="edge")
    size = 2 * radius + 1
    h, w = values.shape
    out = np.empty((h, w), dtype=np.float64)
    for start in range(0, w, _BLUR_CHUNK):
        stop = min(start + _BLUR_CHUNK, w)
        windows = sliding_window_view(padded[:, start:stop + 2 * radius], (size, size))
        out[:, start:stop] = np.median(windows, axis=(-2, -1))
    return out


def preprocess(pixels: np.ndarray, channel: str = "intensity", blur_radius: int = 0) -> np.ndarray:
    """Reduce a pixel band to one channel and median-blur it."""
    return median_blur(reduce_channel(pixels, channel), blur_radius)
