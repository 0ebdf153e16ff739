"""
Brightness-classification boundary detection.

Pixels are classed dark / light / ambiguous around a boundary brightness,
columns vote light when enough of the band is light, and boundaries are the
columns where the vote flips.
"""

from dataclasses import dataclass
from typing import List

import numpy as np

from ..constants import (
    ANNUAL_SKIP_FACTOR,
    CLASSIFICATION_MARGIN,
    DEFAULT_BOUNDARY_BRIGHTNESS,
    DEFAULT_COL_PERCENTILE,
)
from ..core.errors import DegenerateInput
from .base import Algorithm, AlgorithmSettings, BoundaryAlgorithm, _check_fraction, register
from .preprocessing import preprocess

DARK, AMBIGUOUS, LIGHT = 0.0, 0.5, 1.0


@dataclass
class ClassificationSettings(AlgorithmSettings):
    boundary_brightness: float = DEFAULT_BOUNDARY_BRIGHTNESS
    col_percentile: float = DEFAULT_COL_PERCENTILE
    margin: float = CLASSIFICATION_MARGIN
    sub_annual: bool = False
    zoom: int = 0  # Sampling zoom, scales the annual-mode skip
    annual_skip_factor: int = ANNUAL_SKIP_FACTOR

    def validate(self) -> None:
        super().validate()
        _check_fraction("col_percentile", self.col_percentile)
        if self.margin < 0:
            raise DegenerateInput("margin must be non-negative")
        if self.annual_skip_factor < 0:
            raise DegenerateInput("annual_skip_factor must be non-negative")


def classify_pixels(values: np.ndarray, boundary: float, margin: float) -> np.ndarray:
    """0 below ``boundary - margin``, 1 above ``boundary + margin``, 0.5 in between."""
    classes = np.full(values.shape, AMBIGUOUS, dtype=np.float64)
    classes[values < boundary - margin] = DARK
    classes[values > boundary + margin] = LIGHT
    return classes


def classify_columns(classes: np.ndarray, col_percentile: float) -> np.ndarray:
    """True where a column's summed classification reaches ``col_percentile * H``."""
    return classes.sum(axis=0) >= col_percentile * classes.shape[0]


def annual_skip(zoom: int, factor: int = ANNUAL_SKIP_FACTOR) -> int:
    """Columns skipped after an annual boundary; fewer at higher zoom."""
    return max(1, int(round(factor / max(zoom, 1))))


@register
class ClassificationAlgorithm(BoundaryAlgorithm):
    algorithm = Algorithm.CLASSIFICATION
    settings_class = ClassificationSettings

    def _detect(self, pixels: np.ndarray, settings: ClassificationSettings) -> List[int]:
        values = preprocess(pixels, settings.color_channel, settings.blur_radius)
        classes = classify_pixels(values, settings.boundary_brightness, settings.margin)
        light = classify_columns(classes, settings.col_percentile)

        if settings.sub_annual:
            return self._sub_annual(light, settings.min_gap)
        return self._annual(light, settings.min_gap, annual_skip(settings.zoom, settings.annual_skip_factor))

    def _sub_annual(self, light: np.ndarray, min_gap: int) -> List[int]:
        """Every flip counts, but directions must alternate."""
        boundaries: List[int] = []
        expected = None  # direction of the next flip (True = dark -> light)
        for j in range(1, len(light)):
            if light[j] == light[j - 1]:
                continue
            rising = bool(light[j])
            if expected is not None and rising != expected:
                continue
            if boundaries and j - boundaries[-1] <= min_gap:
                continue
            boundaries.append(j)
            expected = not rising
        return boundaries

    def _annual(self, light: np.ndarray, min_gap: int, skip: int) -> List[int]:
        """
        Only dark -> light flips (start of the next earlywood) count.

        The annual rule is also stated as "light -> dark at the previous light
        column"; that reading cannot report a single dark-to-light step at its
        own column, so the flip is taken where the earlywood begins.
        """
        boundaries: List[int] = []
        j = 1
        while j < len(light):
            if light[j] and not light[j - 1] and (not boundaries or j - boundaries[-1] > min_gap):
                boundaries.append(j)
                j += skip
                continue
            j += 1
        return boundaries
