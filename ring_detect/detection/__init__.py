# Boundary detection algorithms

from .base import (
    ALIASES,
    Algorithm,
    AlgorithmSettings,
    BoundaryAlgorithm,
    available_algorithms,
    enforce_min_gap,
    get_algorithm,
    resolve_algorithm,
)
from .classification import ClassificationAlgorithm, ClassificationSettings
from .derivative import DerivativeAlgorithm, DerivativeSettings
from .preprocessing import median_blur, preprocess, reduce_channel
from .threshold import ThresholdAlgorithm, ThresholdSettings


def detect_boundaries(buffer, algorithm="classification", settings=None):
    """
    Run one detection algorithm over a sampled band.

    Args:
        buffer: SampleBuffer or (H, W, 3) array
        algorithm: "classification" ("pc"), "derivative" ("ed") or "threshold"
        settings: Settings dataclass or dict for that algorithm (None = defaults)

    Returns:
        Strictly increasing boundary column offsets
    """
    return get_algorithm(algorithm).detect(buffer, settings)


__all__ = [
    'detect_boundaries',
    'Algorithm',
    'ALIASES',
    'AlgorithmSettings',
    'BoundaryAlgorithm',
    'ClassificationAlgorithm',
    'ClassificationSettings',
    'DerivativeAlgorithm',
    'DerivativeSettings',
    'ThresholdAlgorithm',
    'ThresholdSettings',
    'available_algorithms',
    'enforce_min_gap',
    'get_algorithm',
    'resolve_algorithm',
    'median_blur',
    'preprocess',
    'reduce_channel',
]
