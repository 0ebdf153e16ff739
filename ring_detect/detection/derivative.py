"""
Derivative / exponential-smoothing boundary detection.

Each row gets an exponentially smoothed first derivative and a smoothed
derivative of that. Zero crossings of the second, where the first is close
to the row's extreme, mark per-row edges. Edges are forward-filled into a
light/dark map, columns vote, and vote flips become boundaries.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..constants import DEFAULT_COL_PERCENTILE, DEFAULT_EXTREMA_THRESHOLD, DEFAULT_SMOOTHING_ALPHA
from ..core.errors import DegenerateInput
from .base import (
    Algorithm,
    AlgorithmSettings,
    BoundaryAlgorithm,
    _check_fraction,
    column_flips,
    enforce_min_gap,
    register,
)
from .preprocessing import preprocess


@dataclass
class DerivativeSettings(AlgorithmSettings):
    alpha: float = DEFAULT_SMOOTHING_ALPHA
    extrema_threshold: float = DEFAULT_EXTREMA_THRESHOLD
    col_percentile: float = DEFAULT_COL_PERCENTILE

    def validate(self) -> None:
        super().validate()
        _check_fraction("alpha", self.alpha)
        _check_fraction("extrema_threshold", self.extrema_threshold)
        _check_fraction("col_percentile", self.col_percentile)
        if self.alpha == 0:
            raise DegenerateInput("alpha must be greater than 0")


def smoothed_derivative(values: np.ndarray, alpha: float) -> np.ndarray:
    """
    Exponentially smoothed difference along the last axis.

    d[0] = 0, d[j] = alpha * (v[j] - v[j-1]) + (1 - alpha) * d[j-1]
    """
    out = np.zeros(values.shape, dtype=np.float64)
    diffs = np.diff(values, axis=-1)
    for j in range(1, values.shape[-1]):
        out[..., j] = alpha * diffs[..., j - 1] + (1.0 - alpha) * out[..., j - 1]
    return out


def row_edges(d1: np.ndarray, d2: np.ndarray, threshold: float) -> List[tuple]:
    """
    (column, class) edges of one row: zero crossings of ``d2`` where ``d1`` is
    beyond ``threshold`` times the row's max (rising) or min (falling).
    """
    high, low = d1.max(), d1.min()
    edges = []
    for j in range(1, len(d2)):
        a, b = d2[j - 1], d2[j]
        if not ((a > 0 >= b) or (a < 0 <= b)):
            continue
        c = j - 1 if abs(d1[j - 1]) > abs(d1[j]) else j
        if d1[c] > 0 and high > 0 and d1[c] > threshold * high:
            edges.append((c, 1.0))
        elif d1[c] < 0 and low < 0 and d1[c] < threshold * low:
            edges.append((c, 0.0))
    return edges


def fill_row(width: int, edges: List[tuple]) -> np.ndarray:
    """
    Light/dark map of one row: each edge sets its class, later columns carry
    it forward, columns before the first edge get the opposite class. Rows
    without edges stay unclassified (NaN).
    """
    row = np.full(width, np.nan)
    if not edges:
        return row
    first_class = edges[0][1]
    current = 1.0 - first_class
    tags = dict(edges)
    for j in range(width):
        if j in tags:
            current = tags[j]
        row[j] = current
    return row


@register
class DerivativeAlgorithm(BoundaryAlgorithm):
    algorithm = Algorithm.DERIVATIVE
    settings_class = DerivativeSettings

    def _detect(self, pixels: np.ndarray, settings: DerivativeSettings) -> List[int]:
        values = preprocess(pixels, settings.color_channel, settings.blur_radius)
        d1 = smoothed_derivative(values, settings.alpha)
        d2 = smoothed_derivative(d1, settings.alpha)

        h, w = values.shape
        class_map = np.vstack([
            fill_row(w, row_edges(d1[i], d2[i], settings.extrema_threshold)) for i in range(h)
        ])

        columns = self._vote(class_map, settings.col_percentile)
        return enforce_min_gap(column_flips(columns), settings.min_gap)

    def _vote(self, class_map: np.ndarray, col_percentile: float) -> List[Optional[float]]:
        """Per-column class; columns without a clear majority keep the previous class."""
        h = class_map.shape[0]
        needed = col_percentile * h
        light = np.sum(class_map == 1.0, axis=0)
        dark = np.sum(class_map == 0.0, axis=0)

        columns: List[Optional[float]] = []
        previous = None
        for j in range(class_map.shape[1]):
            if light[j] >= needed and light[j] > 0:
                previous = 1.0
            elif dark[j] >= needed and dark[j] > 0:
                previous = 0.0
            columns.append(previous)
        return columns
